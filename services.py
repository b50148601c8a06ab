from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, TypeVar

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from config import get_settings
from defaults import DEFAULT_CATEGORIES
from errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ledger import ZERO, money_sum, to_money
from models import (
    DEBT_CATEGORY_TYPES,
    EXPENSE_CATEGORY_TYPES,
    INCOME_CATEGORY_TYPES,
    Category,
    CategoryType,
    Debt,
    DebtPayment,
    Expense,
    Income,
    Saving,
    SavingDeposit,
)
from schemas import (
    CategoryIn,
    CategoryUpdate,
    DebtIn,
    DebtUpdate,
    DepositIn,
    ExpenseIn,
    ExpenseUpdate,
    IncomeIn,
    IncomeUpdate,
    PaymentIn,
    SavingIn,
    SavingUpdate,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def seed_default_categories(session: Session) -> int:
    existing = {
        (row.name, row.type)
        for row in session.execute(
            select(Category.name, Category.type).where(
                Category.user_id.is_(None), Category.is_default.is_(True)
            )
        )
    }
    created = 0
    for name, category_type, icon, color in DEFAULT_CATEGORIES:
        if (name, category_type) in existing:
            continue
        session.add(
            Category(
                user_id=None,
                name=name,
                type=category_type,
                icon=icon,
                color=color,
                is_default=True,
            )
        )
        created += 1
    session.commit()
    return created


def _require(data, fields: set[str], *names: str) -> None:
    for name in names:
        if name in fields and getattr(data, name) is None:
            raise ValidationError(f"{name} cannot be null", field=name)


def _retry_on_stale(
    session: Session, operation: Callable[[], T], *, label: str
) -> T:
    """Run ``operation`` and commit, retrying when a versioned row went stale.

    ``operation`` must re-read the rows it mutates, since a retry starts from a
    rolled-back session.
    """
    attempts = max(1, get_settings().balance_retry_attempts)
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            session.commit()
            return result
        except StaleDataError:
            session.rollback()
            logger.warning(f"{label}: concurrent balance update, attempt={attempt}")
    raise ConflictError("The balance was modified concurrently, please retry")


@dataclass
class IncomeFilters:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    category_id: Optional[int] = None
    source: Optional[str] = None


@dataclass
class ExpenseFilters:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    category_id: Optional[int] = None
    category_type: Optional[CategoryType] = None


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return or_(
            and_(Category.user_id.is_(None), Category.is_default.is_(True)),
            Category.user_id == self.user_id,
        )

    def list_all(self, category_type: Optional[CategoryType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(self._visible())
            .order_by(Category.is_default.desc(), Category.name)
        )
        if category_type:
            stmt = stmt.where(Category.type == category_type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(Category.id == category_id, self._visible())
        )
        if not category:
            raise NotFoundError("Category not found")
        return category

    def eligible(
        self,
        category_id: int,
        allowed_types: frozenset[CategoryType],
        *,
        field: str = "category_id",
    ) -> Category:
        """Resolve a category the user may attach to a record of a given kind.

        Raises ``ValidationError`` when the category is missing, belongs to
        another user, or has a type outside ``allowed_types``.
        """
        category = self.session.scalar(
            select(Category).where(
                Category.id == category_id,
                self._visible(),
                Category.type.in_(allowed_types),
            )
        )
        if not category:
            raise ValidationError("Invalid category", field=field)
        return category

    def _own(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError(
                "Category not found or default categories cannot be changed"
            )
        return category

    def _ensure_unique_name(
        self, name: str, category_type: CategoryType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == category_type,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ConflictError("Category with this name already exists", field="name")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        self._ensure_unique_name(name, data.type)
        category = Category(
            user_id=self.user_id,
            name=name,
            type=data.type,
            icon=data.icon,
            color=data.color,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self._own(category_id)
        fields = data.model_fields_set
        _require(data, fields, "name")
        if "name" in fields:
            name = data.name.strip()
            self._ensure_unique_name(name, category.type, exclude_id=category.id)
            category.name = name
        if "icon" in fields:
            category.icon = data.icon
        if "color" in fields:
            category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self._own(category_id)
        in_use = sum(
            self.session.execute(
                select(func.count(model.id)).where(model.category_id == category.id)
            ).scalar_one()
            for model in (Expense, Income, Debt)
        )
        if in_use:
            raise ConflictError("Cannot delete category that is in use")
        self.session.delete(category)
        self.session.commit()


class IncomeService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.categories = CategoryService(session, user_id)

    def list(
        self, filters: IncomeFilters, limit: int = 10, offset: int = 0
    ) -> tuple[list[Income], int]:
        conditions = [Income.user_id == self.user_id]
        if filters.start:
            conditions.append(Income.date >= filters.start)
        if filters.end:
            conditions.append(Income.date <= filters.end)
        if filters.category_id:
            conditions.append(Income.category_id == filters.category_id)
        if filters.source:
            like = f"%{filters.source.lower()}%"
            conditions.append(func.lower(func.coalesce(Income.source, "")).like(like))

        stmt = (
            select(Income)
            .options(joinedload(Income.category))
            .where(*conditions)
            .order_by(Income.date.desc(), Income.id.desc())
            .offset(offset)
            .limit(limit)
        )
        total = self.session.execute(
            select(func.count(Income.id)).where(*conditions)
        ).scalar_one()
        return self.session.scalars(stmt).all(), int(total)

    def get(self, income_id: int) -> Income:
        income = self.session.scalar(
            select(Income)
            .options(joinedload(Income.category))
            .where(Income.id == income_id, Income.user_id == self.user_id)
        )
        if not income:
            raise NotFoundError("Income not found")
        return income

    def create(self, data: IncomeIn) -> Income:
        if data.category_id is not None:
            self.categories.eligible(data.category_id, INCOME_CATEGORY_TYPES)
        income = Income(
            user_id=self.user_id,
            amount=to_money(data.amount),
            description=data.description.strip(),
            source=data.source,
            date=data.date,
            is_recurring=data.is_recurring,
            category_id=data.category_id,
        )
        self.session.add(income)
        self.session.commit()
        return self.get(income.id)

    def update(self, income_id: int, data: IncomeUpdate) -> Income:
        income = self.get(income_id)
        fields = data.model_fields_set
        _require(data, fields, "amount", "description", "date", "is_recurring")
        if "category_id" in fields and data.category_id is not None:
            self.categories.eligible(data.category_id, INCOME_CATEGORY_TYPES)

        if "amount" in fields:
            income.amount = to_money(data.amount)
        for name in ("description", "source", "date", "is_recurring", "category_id"):
            if name in fields:
                setattr(income, name, getattr(data, name))
        self.session.commit()
        return self.get(income.id)

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.categories = CategoryService(session, user_id)

    def _conditions(self, filters: ExpenseFilters) -> list:
        conditions = [Expense.user_id == self.user_id]
        if filters.start:
            conditions.append(Expense.date >= filters.start)
        if filters.end:
            conditions.append(Expense.date <= filters.end)
        if filters.category_id:
            conditions.append(Expense.category_id == filters.category_id)
        if filters.category_type:
            conditions.append(
                Expense.category.has(Category.type == filters.category_type)
            )
        return conditions

    def list(
        self, filters: ExpenseFilters, limit: int = 10, offset: int = 0
    ) -> tuple[list[Expense], int]:
        conditions = self._conditions(filters)
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(*conditions)
            .order_by(Expense.date.desc(), Expense.id.desc())
            .offset(offset)
            .limit(limit)
        )
        total = self.session.execute(
            select(func.count(Expense.id)).where(*conditions)
        ).scalar_one()
        return self.session.scalars(stmt).all(), int(total)

    def get(self, expense_id: int) -> Expense:
        expense = self.session.scalar(
            select(Expense)
            .options(joinedload(Expense.category))
            .where(Expense.id == expense_id, Expense.user_id == self.user_id)
        )
        if not expense:
            raise NotFoundError("Expense not found")
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        self.categories.eligible(data.category_id, EXPENSE_CATEGORY_TYPES)
        expense = Expense(
            user_id=self.user_id,
            amount=to_money(data.amount),
            description=data.description.strip(),
            date=data.date,
            is_recurring=data.is_recurring,
            category_id=data.category_id,
        )
        self.session.add(expense)
        self.session.commit()
        return self.get(expense.id)

    def update(self, expense_id: int, data: ExpenseUpdate) -> Expense:
        expense = self.get(expense_id)
        fields = data.model_fields_set
        _require(
            data, fields, "amount", "description", "date", "is_recurring", "category_id"
        )
        if "category_id" in fields:
            self.categories.eligible(data.category_id, EXPENSE_CATEGORY_TYPES)

        if "amount" in fields:
            expense.amount = to_money(data.amount)
        for name in ("description", "date", "is_recurring", "category_id"):
            if name in fields:
                setattr(expense, name, getattr(data, name))
        self.session.commit()
        return self.get(expense.id)

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()

    def summary(self, filters: ExpenseFilters) -> dict[str, object]:
        """Totals for the filtered expenses, split into fixed and variable."""

        def totals(category_type: Optional[CategoryType]) -> dict[str, object]:
            conditions = self._conditions(filters)
            if category_type:
                conditions.append(Expense.category.has(Category.type == category_type))
            row = self.session.execute(
                select(
                    money_sum(Expense.amount).label("total"),
                    func.count(Expense.id).label("count"),
                ).where(*conditions)
            ).one()
            return {"total": to_money(row.total), "count": int(row.count or 0)}

        overall = totals(None)
        return {
            **overall,
            "fixed": totals(CategoryType.fixed),
            "variable": totals(CategoryType.variable),
        }


class DebtService:
    """Debts and their payment history.

    ``remaining_amount`` is bookkept on every payment write: a payment lowers it
    by ``applied_amount`` (the payment amount, capped at what was still owed) and
    deleting one gives that ``applied_amount`` back, never above
    ``total_amount``. Each balance change commits together with the payment row
    it belongs to.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.categories = CategoryService(session, user_id)

    def list(
        self, is_paid_off: Optional[bool] = None, limit: int = 10, offset: int = 0
    ) -> tuple[list[Debt], int]:
        conditions = [Debt.user_id == self.user_id]
        if is_paid_off is True:
            conditions.append(Debt.remaining_amount <= 0)
        elif is_paid_off is False:
            conditions.append(Debt.remaining_amount > 0)
        stmt = (
            select(Debt)
            .options(joinedload(Debt.category))
            .where(*conditions)
            .order_by(Debt.created_at.desc(), Debt.id.desc())
            .offset(offset)
            .limit(limit)
        )
        total = self.session.execute(
            select(func.count(Debt.id)).where(*conditions)
        ).scalar_one()
        return self.session.scalars(stmt).all(), int(total)

    def get(self, debt_id: int) -> Debt:
        debt = self.session.scalar(
            select(Debt)
            .options(joinedload(Debt.category))
            .where(Debt.id == debt_id, Debt.user_id == self.user_id)
        )
        if not debt:
            raise NotFoundError("Debt not found")
        return debt

    def _load_for_update(self, debt_id: int) -> Debt:
        debt = self.session.get(
            Debt, debt_id, populate_existing=True, with_for_update=True
        )
        if not debt or debt.user_id != self.user_id:
            raise NotFoundError("Debt not found")
        return debt

    def create(self, data: DebtIn) -> Debt:
        if data.category_id is not None:
            self.categories.eligible(data.category_id, DEBT_CATEGORY_TYPES)
        total = to_money(data.total_amount)
        debt = Debt(
            user_id=self.user_id,
            name=data.name.strip(),
            total_amount=total,
            remaining_amount=total,
            interest_rate=data.interest_rate,
            minimum_payment=data.minimum_payment,
            due_date=data.due_date,
            start_date=data.start_date,
            category_id=data.category_id,
        )
        self.session.add(debt)
        self.session.commit()
        logger.info(f"debt_created: debt_id={debt.id} total={total}")
        return self.get(debt.id)

    def update(self, debt_id: int, data: DebtUpdate) -> Debt:
        fields = data.model_fields_set
        _require(data, fields, "name", "total_amount")
        if "category_id" in fields and data.category_id is not None:
            self.categories.eligible(data.category_id, DEBT_CATEGORY_TYPES)

        def apply() -> Debt:
            debt = self._load_for_update(debt_id)
            if "total_amount" in fields:
                new_total = to_money(data.total_amount)
                old_total = to_money(debt.total_amount)
                if new_total != old_total:
                    paid = old_total - to_money(debt.remaining_amount)
                    debt.remaining_amount = max(ZERO, new_total - paid)
                    debt.total_amount = new_total
            if "name" in fields:
                debt.name = data.name.strip()
            for name in ("interest_rate", "minimum_payment", "due_date", "category_id"):
                if name in fields:
                    setattr(debt, name, getattr(data, name))
            self.session.flush()
            return debt

        debt = _retry_on_stale(self.session, apply, label="debt_update")
        return self.get(debt.id)

    def delete(self, debt_id: int) -> None:
        debt = self.get(debt_id)
        self.session.delete(debt)
        self.session.commit()
        logger.info(f"debt_deleted: debt_id={debt_id}")

    def payments(self, debt_id: int) -> list[DebtPayment]:
        debt = self.get(debt_id)
        stmt = (
            select(DebtPayment)
            .where(DebtPayment.debt_id == debt.id)
            .order_by(DebtPayment.date.desc(), DebtPayment.id.desc())
        )
        return self.session.scalars(stmt).all()

    def add_payment(self, debt_id: int, data: PaymentIn) -> DebtPayment:
        amount = to_money(data.amount)

        def apply() -> DebtPayment:
            debt = self._load_for_update(debt_id)
            if debt.is_paid_off:
                raise InvalidStateError("This debt is already paid off")
            remaining = to_money(debt.remaining_amount)
            applied = min(amount, remaining)
            payment = DebtPayment(
                debt_id=debt.id,
                amount=amount,
                applied_amount=applied,
                date=data.date,
                note=data.note,
            )
            self.session.add(payment)
            debt.remaining_amount = remaining - applied
            self.session.flush()
            return payment

        payment = _retry_on_stale(self.session, apply, label="debt_payment_add")
        logger.info(
            f"debt_payment_added: debt_id={debt_id} payment_id={payment.id} "
            f"amount={amount}"
        )
        return payment

    def delete_payment(self, payment_id: int) -> None:
        def apply() -> Decimal:
            payment = self.session.scalar(
                select(DebtPayment)
                .join(Debt, Debt.id == DebtPayment.debt_id)
                .where(DebtPayment.id == payment_id, Debt.user_id == self.user_id)
            )
            if not payment:
                raise NotFoundError("Payment not found")
            debt = self._load_for_update(payment.debt_id)
            restored = to_money(debt.remaining_amount) + to_money(
                payment.applied_amount
            )
            debt.remaining_amount = min(restored, to_money(debt.total_amount))
            self.session.delete(payment)
            self.session.flush()
            return debt.remaining_amount

        remaining = _retry_on_stale(self.session, apply, label="debt_payment_delete")
        logger.info(
            f"debt_payment_deleted: payment_id={payment_id} remaining={remaining}"
        )

    def summary(self) -> dict[str, object]:
        debts = self.session.scalars(
            select(Debt).where(Debt.user_id == self.user_id)
        ).all()
        total_debt = sum((to_money(d.total_amount) for d in debts), ZERO)
        total_remaining = sum((to_money(d.remaining_amount) for d in debts), ZERO)
        active = sum(1 for d in debts if not d.is_paid_off)
        return {
            "total_debt": total_debt,
            "total_remaining": total_remaining,
            "total_paid": total_debt - total_remaining,
            "active_debts": active,
            "paid_off_debts": len(debts) - active,
            "debt_count": len(debts),
        }


class SavingService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Saving]:
        stmt = (
            select(Saving)
            .where(Saving.user_id == self.user_id)
            .order_by(Saving.created_at.desc(), Saving.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, saving_id: int) -> Saving:
        saving = self.session.scalar(
            select(Saving).where(
                Saving.id == saving_id, Saving.user_id == self.user_id
            )
        )
        if not saving:
            raise NotFoundError("Saving not found")
        return saving

    def _load_for_update(self, saving_id: int) -> Saving:
        saving = self.session.get(
            Saving, saving_id, populate_existing=True, with_for_update=True
        )
        if not saving or saving.user_id != self.user_id:
            raise NotFoundError("Saving not found")
        return saving

    def create(self, data: SavingIn) -> Saving:
        saving = Saving(
            user_id=self.user_id,
            name=data.name.strip(),
            target_amount=to_money(data.target_amount),
            current_amount=ZERO,
            target_date=data.target_date,
            description=data.description,
            color=data.color,
        )
        self.session.add(saving)
        self.session.commit()
        self.session.refresh(saving)
        return saving

    def update(self, saving_id: int, data: SavingUpdate) -> Saving:
        fields = data.model_fields_set
        _require(data, fields, "name", "target_amount")

        def apply() -> Saving:
            saving = self._load_for_update(saving_id)
            if "name" in fields:
                saving.name = data.name.strip()
            if "target_amount" in fields:
                saving.target_amount = to_money(data.target_amount)
            for name in ("target_date", "description", "color"):
                if name in fields:
                    setattr(saving, name, getattr(data, name))
            self.session.flush()
            return saving

        saving = _retry_on_stale(self.session, apply, label="saving_update")
        return self.get(saving.id)

    def delete(self, saving_id: int) -> None:
        saving = self.get(saving_id)
        self.session.delete(saving)
        self.session.commit()

    def deposits(self, saving_id: int) -> list[SavingDeposit]:
        saving = self.get(saving_id)
        stmt = (
            select(SavingDeposit)
            .where(SavingDeposit.saving_id == saving.id)
            .order_by(SavingDeposit.date.desc(), SavingDeposit.id.desc())
        )
        return self.session.scalars(stmt).all()

    def add_deposit(self, saving_id: int, data: DepositIn) -> SavingDeposit:
        amount = to_money(data.amount)

        def apply() -> SavingDeposit:
            saving = self._load_for_update(saving_id)
            deposit = SavingDeposit(
                saving_id=saving.id, amount=amount, date=data.date, note=data.note
            )
            self.session.add(deposit)
            saving.current_amount = to_money(saving.current_amount) + amount
            self.session.flush()
            return deposit

        deposit = _retry_on_stale(self.session, apply, label="saving_deposit_add")
        logger.info(
            f"saving_deposit_added: saving_id={saving_id} deposit_id={deposit.id} "
            f"amount={amount}"
        )
        return deposit

    def delete_deposit(self, deposit_id: int) -> None:
        def apply() -> Decimal:
            deposit = self.session.scalar(
                select(SavingDeposit)
                .join(Saving, Saving.id == SavingDeposit.saving_id)
                .where(SavingDeposit.id == deposit_id, Saving.user_id == self.user_id)
            )
            if not deposit:
                raise NotFoundError("Deposit not found")
            saving = self._load_for_update(deposit.saving_id)
            saving.current_amount = max(
                ZERO, to_money(saving.current_amount) - to_money(deposit.amount)
            )
            self.session.delete(deposit)
            self.session.flush()
            return saving.current_amount

        current = _retry_on_stale(self.session, apply, label="saving_deposit_delete")
        logger.info(f"saving_deposit_deleted: deposit_id={deposit_id} current={current}")

    def summary(self) -> dict[str, object]:
        savings = self.list_all()
        total_target = sum((to_money(s.target_amount) for s in savings), ZERO)
        total_current = sum((to_money(s.current_amount) for s in savings), ZERO)
        total_remaining = sum(
            (max(ZERO, to_money(s.target_amount) - to_money(s.current_amount)) for s in savings),
            ZERO,
        )
        percent = (
            to_money(total_current / total_target * 100) if total_target > 0 else ZERO
        )
        return {
            "total_savings": len(savings),
            "total_target": total_target,
            "total_current": total_current,
            "total_remaining": total_remaining,
            "percent_complete": percent,
        }

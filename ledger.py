from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from models import MONEY, Category, Debt, Expense, Income
from periods import Period

LedgerModel = Union[type[Income], type[Expense]]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: object) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(column):
    """``SUM(column)`` typed as money, ``0`` when no rows match.

    SQLite adds NUMERIC values as binary floats. The ``MONEY`` result type
    brings the sum back as a two-place ``Decimal`` before it reaches Python
    arithmetic.
    """
    return func.coalesce(func.sum(column), 0, type_=MONEY)


@dataclass(frozen=True)
class Totals:
    total: Decimal
    count: int


@dataclass(frozen=True)
class CategoryTotals:
    category_id: Optional[int]
    total: Decimal
    count: int


class LedgerStore:
    """Read-side query primitives over one user's ledger rows.

    Every query is scoped to ``user_id`` and, where it takes a period, to the
    closed interval ``[period.start, period.end]``. Empty results come back as
    zero totals, never ``None``.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _in_period(self, model: LedgerModel, period: Period):
        return (
            model.user_id == self.user_id,
            model.date >= period.start,
            model.date <= period.end,
        )

    def totals(self, model: LedgerModel, period: Period) -> Totals:
        if period.is_empty:
            return Totals(ZERO, 0)
        stmt = select(
            money_sum(model.amount).label("total"),
            func.count(model.id).label("count"),
        ).where(*self._in_period(model, period))
        row = self.session.execute(stmt).one()
        return Totals(to_money(row.total), int(row.count or 0))

    def totals_by_category(
        self, model: LedgerModel, period: Period
    ) -> list[CategoryTotals]:
        if period.is_empty:
            return []
        total = money_sum(model.amount)
        stmt = (
            select(
                model.category_id.label("category_id"),
                total.label("total"),
                func.count(model.id).label("count"),
            )
            .where(*self._in_period(model, period))
            .group_by(model.category_id)
            .order_by(total.desc())
        )
        return [
            CategoryTotals(row.category_id, to_money(row.total), int(row.count or 0))
            for row in self.session.execute(stmt)
        ]

    def categories_by_id(self, category_ids: set[int]) -> dict[int, Category]:
        if not category_ids:
            return {}
        stmt = select(Category).where(Category.id.in_(category_ids))
        return {category.id: category for category in self.session.scalars(stmt)}

    def latest(self, model: LedgerModel, limit: int) -> list:
        stmt = (
            select(model)
            .options(joinedload(model.category))
            .where(model.user_id == self.user_id)
            .order_by(model.date.desc(), model.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def debt_totals(self) -> tuple[Decimal, int]:
        remaining = self.session.execute(
            select(money_sum(Debt.remaining_amount)).where(
                Debt.user_id == self.user_id
            )
        ).scalar_one()
        active = self.session.execute(
            select(func.count(Debt.id)).where(
                Debt.user_id == self.user_id, Debt.remaining_amount > 0
            )
        ).scalar_one()
        return to_money(remaining), int(active or 0)

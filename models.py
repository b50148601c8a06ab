from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

MONEY = Numeric(12, 2, asdecimal=True)


class CategoryType(str, Enum):
    fixed = "FIXED"
    variable = "VARIABLE"
    debt = "DEBT"
    income = "INCOME"


CATEGORY_TYPE_ENUM = SAEnum(
    CategoryType,
    name="categorytype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)

EXPENSE_CATEGORY_TYPES = frozenset({CategoryType.fixed, CategoryType.variable})
DEBT_CATEGORY_TYPES = frozenset({CategoryType.debt})
INCOME_CATEGORY_TYPES = frozenset({CategoryType.income})


class TransactionKind(str, Enum):
    income = "income"
    expense = "expense"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(CATEGORY_TYPE_ENUM, nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    color: Mapped[Optional[str]] = mapped_column(String(7))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "icon": self.icon,
            "color": self.color,
            "is_default": self.is_default,
        }


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(100))
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL")
    )

    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        Index("ix_incomes_user_date", "user_id", "date"),
        CheckConstraint("amount > 0", name="ck_incomes_amount_positive"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )

    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category_id", "date"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )


class Debt(Base, TimestampMixin):
    __tablename__ = "debts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    interest_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    minimum_payment: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL")
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    category: Mapped[Optional["Category"]] = relationship("Category")
    payments: Mapped[list["DebtPayment"]] = relationship(
        "DebtPayment",
        back_populates="debt",
        cascade="all, delete-orphan",
        order_by="DebtPayment.date.desc()",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_debts_user", "user_id"),
        CheckConstraint("total_amount > 0", name="ck_debts_total_positive"),
        CheckConstraint("remaining_amount >= 0", name="ck_debts_remaining_non_negative"),
    )

    @property
    def is_paid_off(self) -> bool:
        return self.remaining_amount <= 0


class DebtPayment(Base, TimestampMixin):
    __tablename__ = "debt_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    debt_id: Mapped[int] = mapped_column(
        ForeignKey("debts.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    # portion of amount that lowered the balance; less than amount on overpayment
    applied_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    debt: Mapped["Debt"] = relationship("Debt", back_populates="payments")

    __table_args__ = (
        Index("ix_debt_payments_debt_date", "debt_id", "date"),
        CheckConstraint("amount > 0", name="ck_debt_payments_amount_positive"),
        CheckConstraint(
            "applied_amount >= 0 AND applied_amount <= amount",
            name="ck_debt_payments_applied_within_amount",
        ),
    )


class Saving(Base, TimestampMixin):
    __tablename__ = "savings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    target_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    description: Mapped[Optional[str]] = mapped_column(Text)
    color: Mapped[Optional[str]] = mapped_column(String(7))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    deposits: Mapped[list["SavingDeposit"]] = relationship(
        "SavingDeposit",
        back_populates="saving",
        cascade="all, delete-orphan",
        order_by="SavingDeposit.date.desc()",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_savings_user", "user_id"),
        CheckConstraint("target_amount > 0", name="ck_savings_target_positive"),
        CheckConstraint("current_amount >= 0", name="ck_savings_current_non_negative"),
    )


class SavingDeposit(Base, TimestampMixin):
    __tablename__ = "saving_deposits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    saving_id: Mapped[int] = mapped_column(
        ForeignKey("savings.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    saving: Mapped["Saving"] = relationship("Saving", back_populates="deposits")

    __table_args__ = (
        Index("ix_saving_deposits_saving_date", "saving_id", "date"),
        CheckConstraint("amount > 0", name="ck_saving_deposits_amount_positive"),
    )

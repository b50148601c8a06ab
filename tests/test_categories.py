from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from database import Base
from defaults import DEFAULT_CATEGORIES
from errors import ConflictError, NotFoundError, ValidationError
from models import (
    DEBT_CATEGORY_TYPES,
    EXPENSE_CATEGORY_TYPES,
    INCOME_CATEGORY_TYPES,
    Category,
    CategoryType,
)
from schemas import CategoryIn, CategoryUpdate, ExpenseIn, ExpenseUpdate, IncomeIn
from services import (
    CategoryService,
    ExpenseFilters,
    ExpenseService,
    IncomeFilters,
    IncomeService,
    seed_default_categories,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _default(session, category_type: CategoryType) -> Category:
    return session.scalar(
        select(Category)
        .where(Category.is_default.is_(True), Category.type == category_type)
        .order_by(Category.id)
    )


def test_seed_default_categories_is_idempotent() -> None:
    session = make_session()

    created = seed_default_categories(session)
    assert created == len(DEFAULT_CATEGORIES)
    assert seed_default_categories(session) == 0

    count = session.scalar(select(func.count(Category.id)))
    assert count == len(DEFAULT_CATEGORIES)


def test_defaults_are_visible_to_every_user() -> None:
    session = make_session()
    seed_default_categories(session)
    mine = CategoryService(session, user_id=1)
    mine.create(CategoryIn(name="Gym", type=CategoryType.variable))

    theirs = CategoryService(session, user_id=2)
    names = {category.name for category in theirs.list_all()}

    assert "Gym" not in names
    assert len(names) == len(DEFAULT_CATEGORIES)
    income_only = theirs.list_all(CategoryType.income)
    assert income_only
    assert all(c.type == CategoryType.income for c in income_only)


def test_eligibility_checks_owner_and_type() -> None:
    session = make_session()
    seed_default_categories(session)
    mine = CategoryService(session, user_id=1)
    rent = mine.create(CategoryIn(name="Rent", type=CategoryType.fixed))
    theirs = CategoryService(session, user_id=2)

    assert mine.eligible(rent.id, EXPENSE_CATEGORY_TYPES).id == rent.id

    with pytest.raises(ValidationError) as excinfo:
        theirs.eligible(rent.id, EXPENSE_CATEGORY_TYPES)
    assert excinfo.value.field == "category_id"

    with pytest.raises(ValidationError):
        mine.eligible(rent.id, INCOME_CATEGORY_TYPES)
    with pytest.raises(ValidationError):
        mine.eligible(rent.id, DEBT_CATEGORY_TYPES)
    with pytest.raises(ValidationError):
        mine.eligible(9999, EXPENSE_CATEGORY_TYPES)

    default_income = _default(session, CategoryType.income)
    assert theirs.eligible(default_income.id, INCOME_CATEGORY_TYPES)


def test_duplicate_name_conflicts_within_type() -> None:
    session = make_session()
    categories = CategoryService(session, user_id=1)
    categories.create(CategoryIn(name="Travel", type=CategoryType.variable))

    with pytest.raises(ConflictError) as excinfo:
        categories.create(CategoryIn(name="travel ", type=CategoryType.variable))
    assert excinfo.value.field == "name"

    # same name under another type is allowed
    categories.create(CategoryIn(name="Travel", type=CategoryType.fixed))
    # and other users may reuse it
    CategoryService(session, user_id=2).create(
        CategoryIn(name="Travel", type=CategoryType.variable)
    )


def test_rename_keeps_uniqueness() -> None:
    session = make_session()
    categories = CategoryService(session, user_id=1)
    food = categories.create(CategoryIn(name="Food", type=CategoryType.variable))
    categories.create(CategoryIn(name="Fun", type=CategoryType.variable))

    with pytest.raises(ConflictError):
        categories.update(food.id, CategoryUpdate(name="Fun"))

    renamed = categories.update(food.id, CategoryUpdate(name="Groceries", color="#00ff00"))
    assert renamed.name == "Groceries"
    assert renamed.color == "#00ff00"

    with pytest.raises(ValidationError):
        categories.update(food.id, CategoryUpdate(name=None))


def test_default_and_foreign_categories_cannot_be_changed() -> None:
    session = make_session()
    seed_default_categories(session)
    categories = CategoryService(session, user_id=1)
    default = _default(session, CategoryType.fixed)
    theirs = CategoryService(session, user_id=2).create(
        CategoryIn(name="Private", type=CategoryType.fixed)
    )

    with pytest.raises(NotFoundError):
        categories.update(default.id, CategoryUpdate(name="Mine"))
    with pytest.raises(NotFoundError):
        categories.delete(default.id)
    with pytest.raises(NotFoundError):
        categories.delete(theirs.id)
    with pytest.raises(NotFoundError):
        categories.get(theirs.id)


def test_category_in_use_cannot_be_deleted() -> None:
    session = make_session()
    categories = CategoryService(session, user_id=1)
    food = categories.create(CategoryIn(name="Food", type=CategoryType.variable))
    spare = categories.create(CategoryIn(name="Spare", type=CategoryType.variable))
    expenses = ExpenseService(session, user_id=1)
    expense = expenses.create(
        ExpenseIn(
            amount=Decimal("12.40"),
            description="Market",
            date=datetime(2025, 3, 2),
            category_id=food.id,
        )
    )

    with pytest.raises(ConflictError):
        categories.delete(food.id)

    categories.delete(spare.id)
    expenses.delete(expense.id)
    categories.delete(food.id)
    assert categories.list_all() == []


def test_expense_requires_eligible_category() -> None:
    session = make_session()
    categories = CategoryService(session, user_id=1)
    food = categories.create(CategoryIn(name="Food", type=CategoryType.variable))
    salary = categories.create(CategoryIn(name="Salary", type=CategoryType.income))
    expenses = ExpenseService(session, user_id=1)

    with pytest.raises(ValidationError):
        expenses.create(
            ExpenseIn(
                amount=Decimal("10"),
                description="Wrong type",
                date=datetime(2025, 3, 2),
                category_id=salary.id,
            )
        )

    expense = expenses.create(
        ExpenseIn(
            amount=Decimal("10"),
            description="Lunch",
            date=datetime(2025, 3, 2),
            category_id=food.id,
        )
    )
    with pytest.raises(ValidationError):
        expenses.update(expense.id, ExpenseUpdate(category_id=None))
    with pytest.raises(ValidationError):
        expenses.update(expense.id, ExpenseUpdate(category_id=salary.id))

    updated = expenses.update(expense.id, ExpenseUpdate(amount=Decimal("11.5")))
    assert updated.amount == Decimal("11.50")
    assert updated.category_id == food.id


def test_expense_listing_filters_and_summary() -> None:
    session = make_session()
    categories = CategoryService(session, user_id=1)
    rent = categories.create(CategoryIn(name="Rent", type=CategoryType.fixed))
    food = categories.create(CategoryIn(name="Food", type=CategoryType.variable))
    expenses = ExpenseService(session, user_id=1)
    for day, amount, category in [
        (1, "700", rent),
        (3, "20", food),
        (8, "35.25", food),
        (20, "14.75", food),
    ]:
        expenses.create(
            ExpenseIn(
                amount=Decimal(amount),
                description=f"Day {day}",
                date=datetime(2025, 3, day),
                category_id=category.id,
            )
        )

    page, total = expenses.list(ExpenseFilters(), limit=2, offset=0)
    assert total == 4
    assert [e.description for e in page] == ["Day 20", "Day 8"]

    variable, total = expenses.list(
        ExpenseFilters(category_type=CategoryType.variable, end=datetime(2025, 3, 10))
    )
    assert total == 2
    assert {e.description for e in variable} == {"Day 3", "Day 8"}

    summary = expenses.summary(ExpenseFilters())
    assert summary["total"] == Decimal("770.00")
    assert summary["count"] == 4
    assert summary["fixed"] == {"total": Decimal("700.00"), "count": 1}
    assert summary["variable"] == {"total": Decimal("70.00"), "count": 3}


def test_income_listing_filters_by_source() -> None:
    session = make_session()
    incomes = IncomeService(session, user_id=1)
    for day, source in [(1, "ACME Corp"), (5, "Freelance"), (9, None)]:
        incomes.create(
            IncomeIn(
                amount=Decimal("100"),
                description=f"Day {day}",
                source=source,
                date=datetime(2025, 3, day),
            )
        )

    found, total = incomes.list(IncomeFilters(source="acme"))
    assert total == 1
    assert found[0].source == "ACME Corp"

    _, total = incomes.list(IncomeFilters(start=datetime(2025, 3, 2)))
    assert total == 2

    with pytest.raises(NotFoundError):
        IncomeService(session, user_id=2).get(found[0].id)

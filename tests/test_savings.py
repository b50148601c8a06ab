from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import NotFoundError, ValidationError
from models import SavingDeposit
from schemas import DepositIn, SavingIn, SavingUpdate
from services import SavingService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _deposit(service: SavingService, saving_id: int, amount: str) -> SavingDeposit:
    return service.add_deposit(
        saving_id, DepositIn(amount=Decimal(amount), date=datetime(2025, 3, 1))
    )


def test_deposits_move_current_amount() -> None:
    session = make_session()
    savings = SavingService(session, user_id=1)
    goal = savings.create(SavingIn(name="Holidays", target_amount=Decimal("1500")))
    assert goal.current_amount == Decimal("0")

    first = _deposit(savings, goal.id, "200")
    _deposit(savings, goal.id, "125.50")
    assert savings.get(goal.id).current_amount == Decimal("325.50")
    assert len(savings.deposits(goal.id)) == 2

    savings.delete_deposit(first.id)
    assert savings.get(goal.id).current_amount == Decimal("125.50")
    assert len(savings.deposits(goal.id)) == 1


def test_deleting_deposit_never_goes_negative() -> None:
    session = make_session()
    savings = SavingService(session, user_id=1)
    goal = savings.create(SavingIn(name="Car", target_amount=Decimal("5000")))
    deposit = _deposit(savings, goal.id, "300")
    # current amount lowered outside the deposit history
    row = savings.get(goal.id)
    row.current_amount = Decimal("100")
    session.commit()

    savings.delete_deposit(deposit.id)

    assert savings.get(goal.id).current_amount == Decimal("0")


def test_other_users_cannot_touch_savings() -> None:
    session = make_session()
    mine = SavingService(session, user_id=1)
    theirs = SavingService(session, user_id=2)
    goal = mine.create(SavingIn(name="Emergency", target_amount=Decimal("3000")))
    deposit = _deposit(mine, goal.id, "50")

    with pytest.raises(NotFoundError):
        theirs.get(goal.id)
    with pytest.raises(NotFoundError):
        _deposit(theirs, goal.id, "10")
    with pytest.raises(NotFoundError):
        theirs.delete_deposit(deposit.id)
    assert theirs.list_all() == []


def test_partial_update_and_cascade_delete() -> None:
    session = make_session()
    savings = SavingService(session, user_id=1)
    goal = savings.create(
        SavingIn(
            name="Laptop",
            target_amount=Decimal("1200"),
            target_date=datetime(2025, 12, 1),
        )
    )
    _deposit(savings, goal.id, "100")

    updated = savings.update(goal.id, SavingUpdate(target_amount=Decimal("1400")))
    assert updated.target_amount == Decimal("1400")
    assert updated.target_date == datetime(2025, 12, 1)
    assert updated.current_amount == Decimal("100")

    cleared = savings.update(goal.id, SavingUpdate(target_date=None))
    assert cleared.target_date is None

    with pytest.raises(ValidationError):
        savings.update(goal.id, SavingUpdate(name=None))

    savings.delete(goal.id)
    assert session.scalars(select(SavingDeposit)).all() == []


def test_summary_reports_progress() -> None:
    session = make_session()
    savings = SavingService(session, user_id=1)
    assert savings.summary()["percent_complete"] == Decimal("0")

    trip = savings.create(SavingIn(name="Trip", target_amount=Decimal("1000")))
    bike = savings.create(SavingIn(name="Bike", target_amount=Decimal("500")))
    _deposit(savings, trip.id, "250")
    _deposit(savings, bike.id, "600")

    summary = savings.summary()
    assert summary["total_savings"] == 2
    assert summary["total_target"] == Decimal("1500")
    assert summary["total_current"] == Decimal("850")
    assert summary["total_remaining"] == Decimal("750")
    assert summary["percent_complete"] == Decimal("56.67")

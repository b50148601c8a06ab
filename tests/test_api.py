import pytest
from fastapi.testclient import TestClient
from auth import issue_token, resolve_token
from database import Base, build_engine, get_db, session_factory
from main import app
from periods import local_now


@pytest.fixture()
def client():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = session_factory(engine)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # no context manager: startup seeding would target the configured database
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(user_id: int = 1) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


def _category(client, name: str, category_type: str, user_id: int = 1) -> int:
    response = client.post(
        "/api/categories",
        json={"name": name, "type": category_type},
        headers=_auth(user_id),
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_token_round_trip() -> None:
    assert resolve_token(issue_token(7)) == 7
    assert resolve_token("not-a-token") is None


def test_requests_without_token_are_rejected(client) -> None:
    assert client.get("/api/analytics/dashboard").status_code == 401
    response = client.get(
        "/api/analytics/dashboard", headers={"Authorization": "Bearer forged"}
    )
    assert response.status_code == 401
    assert client.get("/api/health").status_code == 200


def test_dashboard_reflects_current_month(client) -> None:
    now = local_now().replace(microsecond=0)
    rent = _category(client, "Rent", "FIXED")
    food = _category(client, "Food", "VARIABLE")
    salary = _category(client, "Salary", "INCOME")
    for amount, category_id in (("50", rent), ("30", food)):
        response = client.post(
            "/api/expenses",
            json={
                "amount": amount,
                "description": "Monthly",
                "date": now.isoformat(),
                "category_id": category_id,
            },
            headers=_auth(),
        )
        assert response.status_code == 201
    response = client.post(
        "/api/incomes",
        json={
            "amount": "1000",
            "description": "Payroll",
            "date": now.isoformat(),
            "category_id": salary,
        },
        headers=_auth(),
    )
    assert response.status_code == 201

    body = client.get("/api/analytics/dashboard", headers=_auth()).json()

    assert float(body["summary"]["income"]) == 1000
    assert float(body["summary"]["expenses"]) == 80
    assert float(body["summary"]["balance"]) == 920
    assert len(body["expenses_by_category"]) == 2
    assert len(body["recent_transactions"]) == 3

    other = client.get("/api/analytics/dashboard", headers=_auth(2)).json()
    assert float(other["summary"]["income"]) == 0


def test_invalid_amount_is_rejected_by_validation(client) -> None:
    food = _category(client, "Food", "VARIABLE")
    response = client.post(
        "/api/expenses",
        json={
            "amount": "-5",
            "description": "Refund",
            "date": "2025-03-01T10:00:00",
            "category_id": food,
        },
        headers=_auth(),
    )
    assert response.status_code == 422


def test_ineligible_category_reports_field(client) -> None:
    salary = _category(client, "Salary", "INCOME")
    response = client.post(
        "/api/expenses",
        json={
            "amount": "5",
            "description": "Lunch",
            "date": "2025-03-01T10:00:00",
            "category_id": salary,
        },
        headers=_auth(),
    )
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid category", "field": "category_id"}


def test_debt_payment_flow(client) -> None:
    response = client.post(
        "/api/debts",
        json={
            "name": "Phone",
            "total_amount": "300",
            "start_date": "2025-01-01T00:00:00",
        },
        headers=_auth(),
    )
    assert response.status_code == 201
    debt_id = response.json()["id"]

    payment = client.post(
        f"/api/debts/{debt_id}/payments",
        json={"amount": "300", "date": "2025-02-01T00:00:00"},
        headers=_auth(),
    )
    assert payment.status_code == 201

    again = client.post(
        f"/api/debts/{debt_id}/payments",
        json={"amount": "10", "date": "2025-03-01T00:00:00"},
        headers=_auth(),
    )
    assert again.status_code == 409

    detail = client.get(f"/api/debts/{debt_id}", headers=_auth()).json()
    assert detail["is_paid_off"] is True
    assert len(detail["payments"]) == 1

    deleted = client.delete(
        f"/api/debts/payments/{payment.json()['id']}", headers=_auth()
    )
    assert deleted.status_code == 204
    detail = client.get(f"/api/debts/{debt_id}", headers=_auth()).json()
    assert float(detail["remaining_amount"]) == 300

    missing = client.get(f"/api/debts/{debt_id}", headers=_auth(2))
    assert missing.status_code == 404


def test_debt_update_ignores_absent_fields(client) -> None:
    response = client.post(
        "/api/debts",
        json={
            "name": "Car",
            "total_amount": "1000",
            "start_date": "2025-01-01T00:00:00",
            "due_date": "2026-01-01T00:00:00",
        },
        headers=_auth(),
    )
    debt_id = response.json()["id"]

    renamed = client.patch(
        f"/api/debts/{debt_id}", json={"name": "Van"}, headers=_auth()
    ).json()
    assert renamed["due_date"] == "2026-01-01T00:00:00"

    cleared = client.patch(
        f"/api/debts/{debt_id}", json={"due_date": None}, headers=_auth()
    ).json()
    assert cleared["due_date"] is None
    assert cleared["name"] == "Van"

    rejected = client.patch(
        f"/api/debts/{debt_id}", json={"total_amount": None}, headers=_auth()
    )
    assert rejected.status_code == 400


def test_comparison_returns_requested_months(client) -> None:
    series = client.get(
        "/api/analytics/comparison", params={"months": 4}, headers=_auth()
    ).json()
    assert len(series) == 4
    now = local_now()
    assert (series[-1]["year"], series[-1]["month"]) == (now.year, now.month)

    assert (
        client.get(
            "/api/analytics/comparison", params={"months": 0}, headers=_auth()
        ).status_code
        == 422
    )


def test_category_listing_and_in_use_delete(client) -> None:
    food = _category(client, "Food", "VARIABLE")
    client.post(
        "/api/expenses",
        json={
            "amount": "9.99",
            "description": "Bread",
            "date": "2025-03-01T10:00:00",
            "category_id": food,
        },
        headers=_auth(),
    )

    listed = client.get(
        "/api/categories", params={"type": "VARIABLE"}, headers=_auth()
    ).json()
    assert [c["name"] for c in listed] == ["Food"]

    response = client.delete(f"/api/categories/{food}", headers=_auth())
    assert response.status_code == 409

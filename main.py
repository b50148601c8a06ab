import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from analytics import COMPARISON_MONTHS, TREND_MONTHS, AnalyticsService
from auth import current_user_id
from config import get_settings
from database import get_db, session_scope
from errors import ServiceError
from models import CategoryType, Debt, DebtPayment, Expense, Income, Saving, SavingDeposit
from periods import local_now
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
from services import (
    CategoryService,
    DebtService,
    ExpenseFilters,
    ExpenseService,
    IncomeFilters,
    IncomeService,
    SavingService,
    seed_default_categories,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Household Ledger")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


@app.on_event("startup")
def startup_event():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    with session_scope() as session:
        created = seed_default_categories(session)
    logger.info(f"startup: version={APP_VERSION} default_categories_created={created}")


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def paginated(
    key: str, items: list[dict], total: int, page: int, limit: int
) -> dict[str, object]:
    return {
        key: items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if limit else 0,
        },
    }


def category_payload(category) -> Optional[dict[str, object]]:
    return category.as_dict() if category else None


def income_payload(income: Income) -> dict[str, object]:
    return {
        "id": income.id,
        "amount": income.amount,
        "description": income.description,
        "source": income.source,
        "date": income.date.isoformat(),
        "is_recurring": income.is_recurring,
        "category_id": income.category_id,
        "category": category_payload(income.category),
    }


def expense_payload(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "amount": expense.amount,
        "description": expense.description,
        "date": expense.date.isoformat(),
        "is_recurring": expense.is_recurring,
        "category_id": expense.category_id,
        "category": category_payload(expense.category),
    }


def payment_payload(payment: DebtPayment) -> dict[str, object]:
    return {
        "id": payment.id,
        "debt_id": payment.debt_id,
        "amount": payment.amount,
        "applied_amount": payment.applied_amount,
        "date": payment.date.isoformat(),
        "note": payment.note,
    }


def debt_payload(debt: Debt, payments: Optional[list[DebtPayment]] = None) -> dict:
    payload = {
        "id": debt.id,
        "name": debt.name,
        "total_amount": debt.total_amount,
        "remaining_amount": debt.remaining_amount,
        "interest_rate": debt.interest_rate,
        "minimum_payment": debt.minimum_payment,
        "due_date": debt.due_date.isoformat() if debt.due_date else None,
        "start_date": debt.start_date.isoformat(),
        "is_paid_off": debt.is_paid_off,
        "category_id": debt.category_id,
        "category": category_payload(debt.category),
    }
    if payments is not None:
        payload["payments"] = [payment_payload(p) for p in payments]
    return payload


def deposit_payload(deposit: SavingDeposit) -> dict[str, object]:
    return {
        "id": deposit.id,
        "saving_id": deposit.saving_id,
        "amount": deposit.amount,
        "date": deposit.date.isoformat(),
        "note": deposit.note,
    }


def saving_payload(saving: Saving) -> dict[str, object]:
    return {
        "id": saving.id,
        "name": saving.name,
        "target_amount": saving.target_amount,
        "current_amount": saving.current_amount,
        "target_date": saving.target_date.isoformat() if saving.target_date else None,
        "description": saving.description,
        "color": saving.color,
    }


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


# Analytics


@app.get("/api/analytics/dashboard")
def api_dashboard(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return AnalyticsService(db, user_id).dashboard()


@app.get("/api/analytics/monthly")
def api_monthly(
    year: Optional[int] = Query(None, ge=1970, le=3000),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    now = local_now()
    return AnalyticsService(db, user_id).monthly(year or now.year, month or now.month)


@app.get("/api/analytics/comparison")
def api_comparison(
    months: int = Query(COMPARISON_MONTHS, ge=1, le=60),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AnalyticsService(db, user_id).comparison(months)


@app.get("/api/analytics/trends")
def api_trends(
    months: int = Query(TREND_MONTHS, ge=1, le=60),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AnalyticsService(db, user_id).trends(months)


# Categories


@app.get("/api/categories")
def api_categories(
    type: Optional[CategoryType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    categories = CategoryService(db, user_id).list_all(type)
    return [category.as_dict() for category in categories]


@app.get("/api/categories/{category_id}")
def api_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CategoryService(db, user_id).get(category_id).as_dict()


@app.post("/api/categories", status_code=201)
def api_create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CategoryService(db, user_id).create(data).as_dict()


@app.patch("/api/categories/{category_id}")
def api_update_category(
    category_id: int,
    data: CategoryUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CategoryService(db, user_id).update(category_id, data).as_dict()


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


# Incomes


@app.get("/api/incomes")
def api_incomes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    category_id: Optional[int] = None,
    source: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    filters = IncomeFilters(
        start=start_date, end=end_date, category_id=category_id, source=source
    )
    items, total = IncomeService(db, user_id).list(
        filters, limit=limit, offset=(page - 1) * limit
    )
    return paginated(
        "incomes", [income_payload(i) for i in items], total, page, limit
    )


@app.get("/api/incomes/{income_id}")
def api_income(
    income_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return income_payload(IncomeService(db, user_id).get(income_id))


@app.post("/api/incomes", status_code=201)
def api_create_income(
    data: IncomeIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return income_payload(IncomeService(db, user_id).create(data))


@app.patch("/api/incomes/{income_id}")
def api_update_income(
    income_id: int,
    data: IncomeUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return income_payload(IncomeService(db, user_id).update(income_id, data))


@app.delete("/api/incomes/{income_id}", status_code=204)
def api_delete_income(
    income_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    IncomeService(db, user_id).delete(income_id)
    return Response(status_code=204)


# Expenses


def expense_filters(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    category_id: Optional[int] = None,
    category_type: Optional[CategoryType] = None,
) -> ExpenseFilters:
    return ExpenseFilters(
        start=start_date,
        end=end_date,
        category_id=category_id,
        category_type=category_type,
    )


@app.get("/api/expenses")
def api_expenses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    filters: ExpenseFilters = Depends(expense_filters),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items, total = ExpenseService(db, user_id).list(
        filters, limit=limit, offset=(page - 1) * limit
    )
    return paginated(
        "expenses", [expense_payload(e) for e in items], total, page, limit
    )


@app.get("/api/expenses/summary")
def api_expense_summary(
    filters: ExpenseFilters = Depends(expense_filters),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return ExpenseService(db, user_id).summary(filters)


@app.get("/api/expenses/{expense_id}")
def api_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return expense_payload(ExpenseService(db, user_id).get(expense_id))


@app.post("/api/expenses", status_code=201)
def api_create_expense(
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return expense_payload(ExpenseService(db, user_id).create(data))


@app.patch("/api/expenses/{expense_id}")
def api_update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return expense_payload(ExpenseService(db, user_id).update(expense_id, data))


@app.delete("/api/expenses/{expense_id}", status_code=204)
def api_delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    ExpenseService(db, user_id).delete(expense_id)
    return Response(status_code=204)


# Debts


@app.get("/api/debts")
def api_debts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    is_paid_off: Optional[bool] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items, total = DebtService(db, user_id).list(
        is_paid_off, limit=limit, offset=(page - 1) * limit
    )
    return paginated("debts", [debt_payload(d) for d in items], total, page, limit)


@app.get("/api/debts/summary")
def api_debt_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return DebtService(db, user_id).summary()


@app.get("/api/debts/{debt_id}")
def api_debt(
    debt_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = DebtService(db, user_id)
    return debt_payload(service.get(debt_id), service.payments(debt_id))


@app.post("/api/debts", status_code=201)
def api_create_debt(
    data: DebtIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return debt_payload(DebtService(db, user_id).create(data))


@app.patch("/api/debts/{debt_id}")
def api_update_debt(
    debt_id: int,
    data: DebtUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return debt_payload(DebtService(db, user_id).update(debt_id, data))


@app.delete("/api/debts/{debt_id}", status_code=204)
def api_delete_debt(
    debt_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    DebtService(db, user_id).delete(debt_id)
    return Response(status_code=204)


@app.get("/api/debts/{debt_id}/payments")
def api_debt_payments(
    debt_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return [payment_payload(p) for p in DebtService(db, user_id).payments(debt_id)]


@app.post("/api/debts/{debt_id}/payments", status_code=201)
def api_add_debt_payment(
    debt_id: int,
    data: PaymentIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return payment_payload(DebtService(db, user_id).add_payment(debt_id, data))


@app.delete("/api/debts/payments/{payment_id}", status_code=204)
def api_delete_debt_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    DebtService(db, user_id).delete_payment(payment_id)
    return Response(status_code=204)


# Savings


@app.get("/api/savings")
def api_savings(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [saving_payload(s) for s in SavingService(db, user_id).list_all()]


@app.get("/api/savings/summary")
def api_saving_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return SavingService(db, user_id).summary()


@app.get("/api/savings/{saving_id}")
def api_saving(
    saving_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = SavingService(db, user_id)
    payload = saving_payload(service.get(saving_id))
    payload["deposits"] = [deposit_payload(d) for d in service.deposits(saving_id)]
    return payload


@app.post("/api/savings", status_code=201)
def api_create_saving(
    data: SavingIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return saving_payload(SavingService(db, user_id).create(data))


@app.patch("/api/savings/{saving_id}")
def api_update_saving(
    saving_id: int,
    data: SavingUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return saving_payload(SavingService(db, user_id).update(saving_id, data))


@app.delete("/api/savings/{saving_id}", status_code=204)
def api_delete_saving(
    saving_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SavingService(db, user_id).delete(saving_id)
    return Response(status_code=204)


@app.get("/api/savings/{saving_id}/deposits")
def api_saving_deposits(
    saving_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return [deposit_payload(d) for d in SavingService(db, user_id).deposits(saving_id)]


@app.post("/api/savings/{saving_id}/deposits", status_code=201)
def api_add_saving_deposit(
    saving_id: int,
    data: DepositIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return deposit_payload(SavingService(db, user_id).add_deposit(saving_id, data))


@app.delete("/api/savings/deposits/{deposit_id}", status_code=204)
def api_delete_saving_deposit(
    deposit_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SavingService(db, user_id).delete_deposit(deposit_id)
    return Response(status_code=204)

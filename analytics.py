from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from errors import ValidationError
from ledger import CENT, ZERO, LedgerModel, LedgerStore, to_money
from models import Expense, Income, TransactionKind
from periods import (
    MonthLabeler,
    Period,
    add_months,
    current_month_period,
    local_now,
    month_labeler,
    month_period,
)

logger = logging.getLogger(__name__)

COMPARISON_MONTHS = 6
TREND_MONTHS = 12
TREND_WINDOW = 3
RECENT_TRANSACTIONS = 5


class PeriodAggregator:
    """Income and expense totals for a closed ``[start, end]`` interval."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def totals(self, period: Period) -> dict[str, object]:
        income = self.store.totals(Income, period)
        expenses = self.store.totals(Expense, period)
        return {
            "income": income.total,
            "income_count": income.count,
            "expenses": expenses.total,
            "expense_count": expenses.count,
            "balance": income.total - expenses.total,
        }

    def by_category(self, model: LedgerModel, period: Period) -> list[dict[str, object]]:
        """Grouped totals joined back to category metadata.

        Rows without a category reference land in the ``uncategorized`` bucket.
        Rows whose category no longer resolves keep their totals with
        ``category`` set to ``None``.
        """
        rows = self.store.totals_by_category(model, period)
        categories = self.store.categories_by_id(
            {row.category_id for row in rows if row.category_id is not None}
        )
        breakdown = []
        for row in rows:
            category = categories.get(row.category_id)
            breakdown.append(
                {
                    "category_id": row.category_id,
                    "category": category.as_dict() if category else None,
                    "uncategorized": row.category_id is None,
                    "total": row.total,
                    "count": row.count,
                }
            )
        return breakdown

    def summarize(self, period: Period) -> dict[str, object]:
        income = self.store.totals(Income, period)
        expenses = self.store.totals(Expense, period)
        return {
            "income": {
                "total": income.total,
                "count": income.count,
                "by_category": self.by_category(Income, period),
            },
            "expenses": {
                "total": expenses.total,
                "count": expenses.count,
                "by_category": self.by_category(Expense, period),
            },
            "balance": income.total - expenses.total,
        }


class ComparisonBuilder:
    def __init__(
        self, aggregator: PeriodAggregator, labeler: Optional[MonthLabeler] = None
    ) -> None:
        self.aggregator = aggregator
        self.labeler = labeler or month_labeler()

    def build(
        self, months: int = COMPARISON_MONTHS, *, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        """Monthly totals for the ``months`` calendar months ending now.

        The result is chronological: index 0 is the oldest month and the last
        entry is the current month.
        """
        if months < 1:
            raise ValidationError("months must be at least 1", field="months")
        now = now or local_now()
        current = date(now.year, now.month, 1)

        results: list[dict[str, object]] = []
        for offset in range(months):
            month = add_months(current, -offset)
            totals = self.aggregator.totals(month_period(month.year, month.month))
            results.append(
                {
                    "year": month.year,
                    "month": month.month,
                    "month_name": self.labeler(month.year, month.month),
                    "income": totals["income"],
                    "expenses": totals["expenses"],
                    "balance": totals["balance"],
                }
            )
        results.reverse()
        return results


def _mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return to_money(sum(values, ZERO) / len(values))


def _trend(values: Sequence[Decimal]) -> dict[str, object]:
    recent = _mean(values[-TREND_WINDOW:])
    previous_window = values[-2 * TREND_WINDOW : -TREND_WINDOW]
    previous = _mean(previous_window)
    insufficient = len(previous_window) < TREND_WINDOW or previous == 0
    if insufficient:
        previous = recent

    if previous > 0:
        percentage = ((recent - previous) / previous * 100).quantize(CENT)
    else:
        percentage = ZERO
    return {
        "direction": "up" if recent >= previous else "down",
        "percentage": percentage,
        "insufficient_history": insufficient,
    }


def analyze_trends(series: Sequence[dict[str, object]]) -> dict[str, object]:
    """Averages and a 3-vs-3 month direction heuristic over a monthly series.

    The mean of the last three months is compared with the mean of the three
    before them. With fewer than six months, or a zero previous mean, the
    previous mean is replaced by the recent one: the change reads as 0 % and
    "up", and ``insufficient_history`` is set. This is not a forecast.
    """
    if not series:
        raise ValidationError("At least one month is required", field="months")
    income = [to_money(entry["income"]) for entry in series]
    expenses = [to_money(entry["expenses"]) for entry in series]
    balance = [to_money(entry["balance"]) for entry in series]
    return {
        "data": list(series),
        "averages": {
            "income": _mean(income),
            "expenses": _mean(expenses),
            "balance": _mean(balance),
        },
        "trends": {
            "income": _trend(income),
            "expenses": _trend(expenses),
        },
    }


def _transaction_entry(record, kind: TransactionKind) -> dict[str, object]:
    return {
        "id": record.id,
        "kind": kind.value,
        "amount": to_money(record.amount),
        "description": record.description,
        "source": getattr(record, "source", None),
        "date": record.date,
        "is_recurring": record.is_recurring,
        "category_id": record.category_id,
        "category": record.category.as_dict() if record.category else None,
    }


class DashboardComposer:
    def __init__(self, store: LedgerStore, aggregator: PeriodAggregator) -> None:
        self.store = store
        self.aggregator = aggregator

    def recent_transactions(
        self, limit: int = RECENT_TRANSACTIONS
    ) -> list[dict[str, object]]:
        entries = [
            _transaction_entry(income, TransactionKind.income)
            for income in self.store.latest(Income, limit)
        ] + [
            _transaction_entry(expense, TransactionKind.expense)
            for expense in self.store.latest(Expense, limit)
        ]
        entries.sort(key=lambda e: (e["date"], e["kind"], e["id"]), reverse=True)
        return entries[:limit]

    def compose(self, *, now: Optional[datetime] = None) -> dict[str, object]:
        period = current_month_period(now)
        totals = self.aggregator.totals(period)
        total_debt, active_debts = self.store.debt_totals()
        return {
            "summary": {
                "income": totals["income"],
                "expenses": totals["expenses"],
                "balance": totals["balance"],
                "total_debt": total_debt,
                "active_debts": active_debts,
            },
            "expenses_by_category": [
                {
                    "category_id": entry["category_id"],
                    "category": entry["category"],
                    "total": entry["total"],
                    "count": entry["count"],
                }
                for entry in self.aggregator.by_category(Expense, period)
            ],
            "recent_transactions": self.recent_transactions(),
            "period": period.as_dict(),
        }


class AnalyticsService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        *,
        labeler: Optional[MonthLabeler] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.store = LedgerStore(session, user_id)
        self.aggregator = PeriodAggregator(self.store)
        self.comparison_builder = ComparisonBuilder(self.aggregator, labeler)
        self.dashboard_composer = DashboardComposer(self.store, self.aggregator)

    def dashboard(self, *, now: Optional[datetime] = None) -> dict[str, object]:
        return self.dashboard_composer.compose(now=now)

    def monthly(self, year: int, month: int) -> dict[str, object]:
        try:
            period = month_period(year, month)
        except ValueError as exc:
            raise ValidationError(str(exc), field="month") from exc
        summary = self.aggregator.summarize(period)
        return {
            "period": {"year": year, "month": month, **period.as_dict()},
            **summary,
        }

    def comparison(
        self, months: int = COMPARISON_MONTHS, *, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        series = self.comparison_builder.build(months, now=now)
        logger.debug(f"comparison_built: user_id={self.user_id} months={months}")
        return series

    def trends(
        self, months: int = TREND_MONTHS, *, now: Optional[datetime] = None
    ) -> dict[str, object]:
        return analyze_trends(self.comparison_builder.build(months, now=now))

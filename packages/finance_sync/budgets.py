"""Budgets: validated upserts, period windows and progress against spending."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from .logging_setup import get_logger
from .models import Budget, BudgetPeriod, BudgetSpending, BudgetUpdate, TransactionFilter
from .money import round_cents
from .spending import month_bounds, month_key, summarize_spending
from .store import Store

_logger = get_logger("finance_sync.budgets")

WARNING_PERCENT = Decimal(80)
OVER_PERCENT = Decimal(100)

type ProgressStatus = Literal["ok", "warning", "over"]


# ---------------------------
# Period windows
# ---------------------------


def _add_months(d: date, months: int) -> date:
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _advance(start: date, n: int, unit: str) -> date:
    if unit == "days":
        return start + timedelta(days=n)
    if unit == "months":
        return _add_months(start, n)
    if unit == "years":
        return _add_months(start, 12 * n)
    raise ValueError(f"unknown recurring unit {unit!r}")


def resolve_range(period: BudgetPeriod | None, today: date) -> tuple[date, date]:
    """Inclusive ``(start, end)`` date window the budget applies to on ``today``.

    - ``current-month`` (or no period): the calendar month containing ``today``.
    - ``custom-date``: the stored dates; a missing bound falls back to the
      current month's bound.
    - ``recurring``: consecutive windows of ``recurring_interval`` units
      anchored at ``start_date``; returns the one containing ``today`` (the
      first window when ``today`` precedes the anchor).
    """

    month_first, month_last = month_bounds(today.year, today.month)
    if period is None or period.type == "current-month":
        return month_first, month_last

    if period.type == "custom-date":
        return period.start_date or month_first, period.end_date or month_last

    if period.type == "recurring":
        interval = period.recurring_interval or 0
        unit = period.recurring_unit
        if period.start_date is None or interval < 1 or unit is None:
            return month_first, month_last
        anchor = period.start_date
        if unit == "days":
            k = max(0, (today - anchor).days // interval)
        else:
            k = 0
            while today >= _advance(anchor, (k + 1) * interval, unit):
                k += 1
        start = _advance(anchor, k * interval, unit)
        end = _advance(anchor, (k + 1) * interval, unit)
        return start, end - timedelta(days=1)

    raise ValueError(f"unknown budget period type {period.type!r}")


def window_label(start: date, end: date) -> str:
    """``YYYY-MM`` for a whole calendar month, else ``YYYY-MM-DD..YYYY-MM-DD``."""

    if (start, end) == month_bounds(start.year, start.month):
        return month_key(start)
    return f"{start.isoformat()}..{end.isoformat()}"


def period_spending(
    store: Store, customer_id: str, period: BudgetPeriod | None, today: date
) -> BudgetSpending:
    """Expenses inside the budget window active on ``today``, categorized like snapshots."""

    start, end = resolve_range(period, today)
    txs = store.query_transactions(
        customer_id, TransactionFilter(start_date=start, end_date=end, expenses_only=True)
    )
    return summarize_spending(
        customer_id, window_label(start, end), txs, store.list_custom_categories(customer_id)
    )


def validate_period(period: BudgetPeriod) -> None:
    """Raise ``ValueError`` when a period cannot describe a window."""

    if period.type == "current-month":
        return
    if period.type == "custom-date":
        if period.start_date is None or period.end_date is None:
            raise ValueError("custom-date periods need both start_date and end_date")
        if period.end_date < period.start_date:
            raise ValueError("end_date must not precede start_date")
        return
    if period.type == "recurring":
        if period.start_date is None:
            raise ValueError("recurring periods need a start_date")
        if not period.recurring_interval or period.recurring_interval < 1:
            raise ValueError("recurring_interval must be a positive integer")
        if period.recurring_unit not in ("days", "months", "years"):
            raise ValueError("recurring_unit must be one of days, months, years")
        return
    raise ValueError(f"unknown budget period type {period.type!r}")


# ---------------------------
# Upsert
# ---------------------------


def upsert_budget(
    store: Store, customer_id: str, update: BudgetUpdate, *, now: datetime | None = None
) -> Budget:
    """Validate and apply a partial budget update (creating the budget if needed)."""

    if update.total_limit is not None and update.total_limit < 0:
        raise ValueError("total_limit must be >= 0")
    if update.category_limits is not None:
        seen: set[str] = set()
        for item in update.category_limits:
            if not item.category:
                raise ValueError("category limit needs a category")
            if item.limit < 0:
                raise ValueError(f"limit for {item.category!r} must be >= 0")
            if item.category in seen:
                raise ValueError(f"duplicate limit for category {item.category!r}")
            seen.add(item.category)
    if update.period is not None:
        validate_period(update.period)

    budget = store.upsert_budget(customer_id, update, now=now or datetime.now(UTC))
    _logger.info("budget saved for customer %s", customer_id)
    return budget


# ---------------------------
# Progress
# ---------------------------


def _percent(spent: Decimal, limit: Decimal) -> Decimal:
    if limit <= 0:
        return Decimal(0)
    return (spent / limit * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def _status(percentage: Decimal) -> ProgressStatus:
    if percentage >= OVER_PERCENT:
        return "over"
    if percentage >= WARNING_PERCENT:
        return "warning"
    return "ok"


@dataclass(frozen=True, slots=True)
class CategoryProgress:
    category: str
    limit: Decimal
    spent: Decimal
    percentage: Decimal
    remaining: Decimal
    status: ProgressStatus


@dataclass(frozen=True, slots=True)
class BudgetProgress:
    month: str
    total_limit: Decimal
    total_spent: Decimal
    percentage: Decimal
    remaining: Decimal
    status: ProgressStatus
    categories: tuple[CategoryProgress, ...] = ()


def budget_progress(budget: Budget, spending: BudgetSpending) -> BudgetProgress:
    """Spent vs. limit overall and per category limit. Percentages are 0 for a 0 limit."""

    categories = []
    for item in budget.category_limits:
        spent = round_cents(spending.amount_for(item.category))
        pct = _percent(spent, item.limit)
        categories.append(
            CategoryProgress(
                category=item.category,
                limit=item.limit,
                spent=spent,
                percentage=pct,
                remaining=round_cents(item.limit - spent),
                status=_status(pct),
            )
        )
    total_pct = _percent(spending.total_spent, budget.total_limit)
    return BudgetProgress(
        month=spending.month,
        total_limit=budget.total_limit,
        total_spent=spending.total_spent,
        percentage=total_pct,
        remaining=round_cents(budget.total_limit - spending.total_spent),
        status=_status(total_pct),
        categories=tuple(categories),
    )


__all__ = [
    "BudgetProgress",
    "CategoryProgress",
    "budget_progress",
    "period_spending",
    "resolve_range",
    "upsert_budget",
    "validate_period",
    "window_label",
]

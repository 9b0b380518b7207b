from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from finance_sync.budgets import (
    budget_progress,
    period_spending,
    resolve_range,
    upsert_budget,
    window_label,
)
from finance_sync.ingest import parse_account, parse_transaction
from finance_sync.models import (
    Budget,
    BudgetPeriod,
    BudgetSpending,
    BudgetUpdate,
    CategoryLimit,
    CategorySpending,
)
from tests.helpers.provider_stub import account_payload, transaction_payload


def test_current_month_range() -> None:
    assert resolve_range(None, date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert resolve_range(BudgetPeriod(), date(2023, 12, 31)) == (
        date(2023, 12, 1),
        date(2023, 12, 31),
    )


def test_custom_date_range_falls_back_to_month_bounds() -> None:
    full = BudgetPeriod(type="custom-date", start_date=date(2024, 1, 5), end_date=date(2024, 2, 4))
    assert resolve_range(full, date(2024, 3, 1)) == (date(2024, 1, 5), date(2024, 2, 4))

    open_end = BudgetPeriod(type="custom-date", start_date=date(2024, 3, 10))
    assert resolve_range(open_end, date(2024, 3, 15)) == (date(2024, 3, 10), date(2024, 3, 31))


@pytest.mark.parametrize(
    ("interval", "unit", "today", "expected"),
    [
        (14, "days", date(2024, 1, 1), (date(2024, 1, 1), date(2024, 1, 14))),
        (14, "days", date(2024, 1, 15), (date(2024, 1, 15), date(2024, 1, 28))),
        (14, "days", date(2024, 2, 20), (date(2024, 2, 12), date(2024, 2, 25))),
        (1, "months", date(2024, 3, 14), (date(2024, 2, 15), date(2024, 3, 14))),
        (1, "months", date(2024, 3, 15), (date(2024, 3, 15), date(2024, 4, 14))),
        (3, "months", date(2024, 6, 1), (date(2024, 4, 15), date(2024, 7, 14))),
        (1, "years", date(2025, 1, 14), (date(2024, 1, 15), date(2025, 1, 14))),
        # Before the anchor: the first window.
        (1, "months", date(2023, 12, 1), (date(2024, 1, 15), date(2024, 2, 14))),
    ],
)
def test_recurring_range(interval, unit, today, expected) -> None:
    period = BudgetPeriod(
        type="recurring",
        start_date=date(2024, 1, 15) if unit != "days" else date(2024, 1, 1),
        recurring_interval=interval,
        recurring_unit=unit,
    )
    assert resolve_range(period, today) == expected
    assert period.resolve_range(today) == expected


def test_month_end_anchor_clamps_day() -> None:
    period = BudgetPeriod(
        type="recurring", start_date=date(2024, 1, 31), recurring_interval=1, recurring_unit="months"
    )
    assert resolve_range(period, date(2024, 2, 10)) == (date(2024, 1, 31), date(2024, 2, 28))
    assert resolve_range(period, date(2024, 3, 5)) == (date(2024, 2, 29), date(2024, 3, 30))


def test_incomplete_recurring_period_uses_current_month() -> None:
    period = BudgetPeriod(type="recurring", start_date=date(2024, 1, 1))
    assert resolve_range(period, date(2024, 5, 9)) == (date(2024, 5, 1), date(2024, 5, 31))


@pytest.mark.parametrize(
    "update",
    [
        BudgetUpdate(total_limit=Decimal("-1")),
        BudgetUpdate(category_limits=(CategoryLimit("food", Decimal("-5")),)),
        BudgetUpdate(
            category_limits=(
                CategoryLimit("food", Decimal("5")),
                CategoryLimit("food", Decimal("6")),
            )
        ),
        BudgetUpdate(total_limit=Decimal("10"), period=BudgetPeriod(type="custom-date")),
        BudgetUpdate(
            total_limit=Decimal("10"),
            period=BudgetPeriod(
                type="custom-date", start_date=date(2024, 2, 1), end_date=date(2024, 1, 1)
            ),
        ),
        BudgetUpdate(
            total_limit=Decimal("10"),
            period=BudgetPeriod(type="recurring", start_date=date(2024, 1, 1), recurring_interval=0),
        ),
    ],
)
def test_upsert_rejects_invalid_updates(store, update) -> None:
    with pytest.raises(ValueError):
        upsert_budget(store, "cust-1", update)
    assert store.get_budget("cust-1") is None


def test_upsert_creates_then_patches(store) -> None:
    upsert_budget(store, "cust-1", BudgetUpdate(total_limit=Decimal("500")))
    patched = upsert_budget(
        store,
        "cust-1",
        BudgetUpdate(category_limits=(CategoryLimit("food", Decimal("200")),)),
    )
    assert patched.total_limit == Decimal("500")
    assert patched.category_limits == (CategoryLimit("food", Decimal("200")),)
    assert patched.updated_at is not None


def test_budget_progress_statuses() -> None:
    budget = Budget(
        customer_id="cust-1",
        total_limit=Decimal("1000"),
        category_limits=(
            CategoryLimit("food", Decimal("200")),
            CategoryLimit("transport", Decimal("100")),
            CategoryLimit("shopping", Decimal("0")),
            CategoryLimit("travel", Decimal("300")),
        ),
    )
    spending = BudgetSpending(
        "cust-1",
        "2024-03",
        Decimal("655.55"),
        (
            CategorySpending("food", Decimal("160.00")),
            CategorySpending("transport", Decimal("123.45")),
            CategorySpending("shopping", Decimal("50.00")),
        ),
    )
    progress = budget_progress(budget, spending)

    assert progress.month == "2024-03"
    assert progress.percentage == Decimal("65.6")
    assert progress.remaining == Decimal("344.45")
    assert progress.status == "ok"

    by_cat = {c.category: c for c in progress.categories}
    assert by_cat["food"].status == "warning"
    assert by_cat["food"].percentage == Decimal("80.0")
    assert by_cat["transport"].status == "over"
    assert by_cat["transport"].remaining == Decimal("-23.45")
    assert by_cat["shopping"].percentage == 0
    assert by_cat["shopping"].status == "ok"
    assert by_cat["travel"].spent == 0


def test_window_label() -> None:
    assert window_label(date(2024, 2, 1), date(2024, 2, 29)) == "2024-02"
    assert window_label(date(2024, 2, 1), date(2024, 2, 28)) == "2024-02-01..2024-02-28"
    assert window_label(date(2024, 1, 15), date(2024, 2, 14)) == "2024-01-15..2024-02-14"


def test_period_spending_sums_the_window(store) -> None:
    acct = parse_account(account_payload("acc-1"), customer_id="cust-1")
    store.upsert_account(acct)
    for pid, booked, amount in [
        ("t0", "2024-01-14", (-100, 2)),
        ("t1", "2024-01-15", (-2000, 2)),
        ("t2", "2024-02-14", (-300, 2)),
        ("t3", "2024-02-01", (9900, 2)),  # income
        ("t4", "2024-02-15", (-100, 2)),
    ]:
        store.upsert_transaction(
            parse_transaction(
                transaction_payload(pid, "acc-1", booked=booked, amount=amount),
                customer_id="cust-1",
                account_unique_id=acct.unique_id,
            )
        )

    period = BudgetPeriod(
        type="custom-date", start_date=date(2024, 1, 15), end_date=date(2024, 2, 14)
    )
    spending = period_spending(store, "cust-1", period, date(2024, 3, 1))
    assert spending.month == "2024-01-15..2024-02-14"
    assert spending.total_spent == Decimal("23.00")
    assert spending.amount_for("food") == Decimal("23.00")

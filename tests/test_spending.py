from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from finance_sync.categories import create_custom_category
from finance_sync.ingest import parse_account, parse_transaction
from finance_sync.models import CustomCategoryInput
from finance_sync.spending import SpendAggregator, month_bounds, month_key, parse_month
from tests.helpers.provider_stub import account_payload, transaction_payload


def _seed(store, rows) -> None:
    acct = parse_account(account_payload("acc-1"), customer_id="cust-1")
    store.upsert_account(acct)
    for pid, booked, amount, narration in rows:
        store.upsert_transaction(
            parse_transaction(
                transaction_payload(pid, "acc-1", booked=booked, amount=amount, narration=narration),
                customer_id="cust-1",
                account_unique_id=acct.unique_id,
            )
        )


def test_month_helpers() -> None:
    assert month_key(date(2024, 2, 29)) == "2024-02"
    assert parse_month("2024-02") == (2024, 2)
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))
    for bad in ("2024-13", "2024/02", "24-02", "", "2024-2"):
        with pytest.raises(ValueError):
            parse_month(bad)


def test_recalculate_month_sums_expenses_by_category(store) -> None:
    _seed(
        store,
        [
            ("t1", "2024-03-01", (-1250, 2), "TESCO STORES"),
            ("t2", "2024-03-15", (-333, 2), "TESCO EXPRESS"),
            ("t3", "2024-03-31", (-2000, 2), "NETFLIX"),
            ("t4", "2024-03-10", (500000, 2), "SALARY"),  # income ignored
            ("t5", "2024-02-29", (-9999, 2), "TESCO"),  # previous month
            ("t6", "2024-04-01", (-9999, 2), "TESCO"),  # next month
        ],
    )
    snap = SpendAggregator(store).recalculate_month("cust-1", 2024, 3)

    assert snap.month == "2024-03"
    assert snap.total_spent == Decimal("35.83")
    assert [(c.category, c.amount) for c in snap.category_spending] == [
        ("food", Decimal("15.83")),
        ("entertainment", Decimal("20.00")),
    ]
    assert store.get_spending_snapshot("cust-1", "2024-03") == snap


def test_recalculate_uses_custom_categories(store) -> None:
    create_custom_category(store, "cust-1", CustomCategoryInput("Clubs", ("paddle",)))
    _seed(store, [("t1", "2024-03-03", (-4500, 2), "PADDLE CLUB")])
    [cat] = store.list_custom_categories("cust-1")

    snap = SpendAggregator(store).recalculate_month("cust-1", 2024, 3)
    assert snap.category_spending[0].category == f"custom_{cat.id}"


def test_recalculate_replaces_previous_snapshot(store) -> None:
    _seed(store, [("t1", "2024-03-01", (-1000, 2), "TESCO")])
    agg = SpendAggregator(store)
    agg.recalculate_month("cust-1", 2024, 3)
    _seed(store, [("t2", "2024-03-02", (-500, 2), "TESCO")])
    again = agg.recalculate_month("cust-1", 2024, 3)
    assert again.total_spent == Decimal("15.00")
    assert store.get_spending_snapshot("cust-1", "2024-03").total_spent == Decimal("15.00")


def test_get_spending_computes_missing_snapshot(store) -> None:
    _seed(store, [("t1", "2024-01-05", (-700, 2), "UBER TRIP")])
    agg = SpendAggregator(store, clock=lambda: date(2024, 1, 20))
    assert store.get_spending_snapshot("cust-1", "2024-01") is None

    snap = agg.get_spending("cust-1", "2024-01")
    assert snap.total_spent == Decimal("7.00")
    assert snap.amount_for("transport") == Decimal("7.00")
    assert store.get_spending_snapshot("cust-1", "2024-01") is not None
    assert agg.current_month() == "2024-01"


def test_recalculate_stored_covers_snapshot_months_and_current(store) -> None:
    _seed(
        store,
        [
            ("t1", "2023-11-02", (-1000, 2), "PADDLE CLUB"),
            ("t2", "2024-01-05", (-2000, 2), "PADDLE CLUB"),
        ],
    )
    agg = SpendAggregator(store, clock=lambda: date(2024, 3, 20))
    agg.recalculate_month("cust-1", 2024, 1)

    # 2023-11 has transactions but no snapshot, so it is left alone.
    assert agg.recalculate_stored("cust-1") == ["2024-01", "2024-03"]
    assert store.list_snapshot_months("cust-1") == ["2024-01", "2024-03"]

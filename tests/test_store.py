from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import text as sql_text

from finance_sync.errors import StoreReadError, StoreWriteError
from finance_sync.ingest import parse_account, parse_transaction
from finance_sync.models import (
    BudgetPeriod,
    BudgetSpending,
    BudgetUpdate,
    CategoryLimit,
    CategorySpending,
    TransactionFilter,
)
from tests.helpers.db import table_count
from tests.helpers.provider_stub import account_payload, transaction_payload

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


def _account(provider_id: str = "acc-A", customer_id: str = "cust-1", **kw):
    return parse_account(account_payload(provider_id, **kw), customer_id=customer_id)


def _tx(account, pid: str, **kw):
    return parse_transaction(
        transaction_payload(pid, account.provider_id, **kw),
        customer_id=account.customer_id,
        account_unique_id=account.unique_id,
    )


def test_account_upsert_is_idempotent(store, database) -> None:
    acct = _account()
    store.upsert_account(acct)
    store.upsert_account(acct)
    assert table_count(database, "fs_accounts") == 1
    [stored] = store.list_accounts("cust-1")
    assert stored.unique_id == acct.unique_id
    assert stored.booked.amount == Decimal("1500.00")
    assert stored.booked.currency == "GBP"


def test_relink_updates_provider_id_in_place(store, database) -> None:
    first = _account("acc-A")
    store.upsert_account(first)
    store.upsert_transaction(_tx(first, "t1"))

    relinked = _account("acc-B", name="Renamed")
    assert relinked.unique_id == first.unique_id
    store.upsert_account(relinked)

    [stored] = store.list_accounts("cust-1")
    assert stored.provider_id == "acc-B"
    assert stored.name == "Renamed"
    assert table_count(database, "fs_accounts") == 1
    # Transactions reference the stable id and survive the re-link.
    assert len(store.query_transactions("cust-1")) == 1


def test_transaction_upsert_overwrites_in_place(store, database) -> None:
    acct = _account()
    store.upsert_account(acct)
    store.upsert_transaction(_tx(acct, "t1", status="PENDING", amount=(-1000, 2)))
    store.upsert_transaction(_tx(acct, "t1", status="BOOKED", amount=(-1250, 2)))

    assert table_count(database, "fs_transactions") == 1
    [tx] = store.query_transactions("cust-1")
    assert tx.status == "BOOKED"
    assert tx.amount.amount == Decimal("-12.50")


def test_transaction_without_account_is_a_store_write_error(store) -> None:
    orphan = _account("acc-Z", account_number="99999999")
    with pytest.raises(StoreWriteError):
        store.upsert_transaction(_tx(orphan, "t1"))


def test_query_filters(store) -> None:
    a = _account("acc-A")
    b = _account("acc-B", account_number="87654321")
    store.upsert_account(a)
    store.upsert_account(b)
    store.upsert_transaction(_tx(a, "t1", booked="2024-02-28"))
    store.upsert_transaction(_tx(a, "t2", booked="2024-03-01", amount=(5000, 2)))
    store.upsert_transaction(_tx(b, "t3", booked="2024-03-31"))
    store.upsert_transaction(_tx(b, "t4", booked="2024-04-01"))

    march = TransactionFilter(start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))
    assert [t.provider_id for t in store.query_transactions("cust-1", march)] == ["t2", "t3"]

    expenses = TransactionFilter(expenses_only=True)
    assert [t.provider_id for t in store.query_transactions("cust-1", expenses)] == [
        "t1",
        "t3",
        "t4",
    ]

    only_b = TransactionFilter(account_unique_ids=(b.unique_id,))
    assert {t.provider_id for t in store.query_transactions("cust-1", only_b)} == {"t3", "t4"}
    assert store.query_transactions("someone-else") == []


def test_unlink_removes_account_and_transactions(store, database) -> None:
    acct = _account()
    store.upsert_account(acct)
    store.upsert_transaction(_tx(acct, "t1"))
    assert store.unlink_account("cust-1", acct.unique_id) is True
    assert table_count(database, "fs_accounts") == 0
    assert table_count(database, "fs_transactions") == 0
    assert store.unlink_account("cust-1", acct.unique_id) is False


def test_spending_snapshot_replace(store, database) -> None:
    first = BudgetSpending(
        "cust-1", "2024-03", Decimal("10.00"), (CategorySpending("food", Decimal("10.00")),)
    )
    second = BudgetSpending(
        "cust-1",
        "2024-03",
        Decimal("25.50"),
        (CategorySpending("food", Decimal("20.00")), CategorySpending("other", Decimal("5.50"))),
    )
    store.replace_spending_snapshot("cust-1", "2024-03", first)
    store.replace_spending_snapshot("cust-1", "2024-03", second)

    assert table_count(database, "fs_spending_snapshots") == 1
    got = store.get_spending_snapshot("cust-1", "2024-03")
    assert got == second
    assert store.get_spending_snapshot("cust-1", "2024-04") is None


def test_budget_partial_updates(store) -> None:
    with pytest.raises(ValueError):
        store.upsert_budget("cust-1", BudgetUpdate(category_limits=()), now=NOW)

    created = store.upsert_budget("cust-1", BudgetUpdate(total_limit=Decimal("1000")), now=NOW)
    assert created.total_limit == Decimal("1000")
    assert created.category_limits == ()
    assert created.period is None

    period = BudgetPeriod(
        type="recurring", start_date=date(2024, 1, 15), recurring_interval=2, recurring_unit="months"
    )
    store.upsert_budget(
        "cust-1",
        BudgetUpdate(category_limits=(CategoryLimit("food", Decimal("300.00")),), period=period),
        now=NOW,
    )
    got = store.get_budget("cust-1")
    assert got is not None
    assert got.total_limit == Decimal("1000")  # untouched
    assert got.category_limits == (CategoryLimit("food", Decimal("300.00")),)
    assert got.period == period


def test_joint_account_is_kept_per_customer(store, database) -> None:
    mine = _account("acc-A", customer_id="cust-1")
    theirs = _account("acc-B", customer_id="cust-2", name="Joint")
    assert mine.unique_id == theirs.unique_id
    store.upsert_account(mine)
    store.upsert_account(theirs)
    store.upsert_transaction(_tx(mine, "t1", amount=(-1000, 2)))
    store.upsert_transaction(_tx(theirs, "t1", amount=(-2000, 2)))

    assert table_count(database, "fs_accounts") == 2
    assert table_count(database, "fs_transactions") == 2
    assert [a.provider_id for a in store.list_accounts("cust-1")] == ["acc-A"]
    assert [a.provider_id for a in store.list_accounts("cust-2")] == ["acc-B"]
    [tx1] = store.query_transactions("cust-1")
    [tx2] = store.query_transactions("cust-2")
    assert tx1.amount.amount == Decimal("-10.00")
    assert tx2.amount.amount == Decimal("-20.00")

    assert store.unlink_account("cust-1", mine.unique_id) is True
    assert store.list_accounts("cust-1") == []
    assert store.query_transactions("cust-1") == []
    assert [a.provider_id for a in store.list_accounts("cust-2")] == ["acc-B"]
    assert len(store.query_transactions("cust-2")) == 1


def test_provider_id_match_stays_within_customer(store, database) -> None:
    store.upsert_account(_account("acc-A", customer_id="cust-1"))
    store.upsert_account(_account("acc-A", customer_id="cust-2", account_number="87654321"))

    assert table_count(database, "fs_accounts") == 2
    [mine] = store.list_accounts("cust-1")
    [theirs] = store.list_accounts("cust-2")
    assert mine.unique_id == _account("acc-A").unique_id
    assert theirs.unique_id != mine.unique_id


def test_snapshots_are_per_customer(store) -> None:
    snap = BudgetSpending("cust-1", "2024-02", Decimal("5.00"))
    store.replace_spending_snapshot("cust-1", "2024-02", snap)
    store.replace_spending_snapshot("cust-1", "2024-03", snap)
    store.replace_spending_snapshot(
        "cust-2", "2024-03", BudgetSpending("cust-2", "2024-03", Decimal("7.00"))
    )

    assert store.list_snapshot_months("cust-1") == ["2024-02", "2024-03"]
    assert store.list_snapshot_months("cust-2") == ["2024-03"]
    assert store.list_snapshot_months("cust-3") == []
    assert store.get_spending_snapshot("cust-2", "2024-03").total_spent == Decimal("7.00")


def test_query_failure_is_a_store_read_error(store, database) -> None:
    with database.engine.begin() as conn:
        conn.execute(sql_text("DROP TABLE fs_custom_categories"))
    with pytest.raises(StoreReadError):
        store.list_custom_categories("cust-1")

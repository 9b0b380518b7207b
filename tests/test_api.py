from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from finance_sync import Pipeline
from finance_sync.models import (
    BudgetPeriod,
    BudgetUpdate,
    CategoryLimit,
    CustomCategoryInput,
    CustomCategoryUpdate,
)
from tests.helpers.provider_stub import (
    VALID_CODE,
    ProviderStub,
    account_payload,
    monthly_series,
    transaction_payload,
)

TODAY = date(2024, 3, 20)


@pytest.fixture
def pipeline(store) -> Pipeline:
    series = monthly_series("s", "acc-1", "SPOTIFY 0123", date(2023, 12, 10), [31, 31, 29])
    provider = ProviderStub(
        [account_payload("acc-1"), account_payload("acc-2", account_number="22222222")],
        {
            "acc-1": [series],
            "acc-2": [[transaction_payload("b1", "acc-2", booked="2024-03-12", amount=(-4000, 2))]],
        },
    )
    p = Pipeline(provider, store, max_workers=2, clock=lambda: TODAY)
    p.sync("cust-1", VALID_CODE)
    return p


def test_get_spending_defaults_to_current_month(pipeline) -> None:
    snap = pipeline.get_spending("cust-1")
    assert snap.month == "2024-03"
    assert snap.total_spent == Decimal("49.99")
    assert pipeline.get_spending("cust-1", "2024-01").total_spent == Decimal("9.99")


def test_get_recurring_payments(pipeline) -> None:
    [payment] = pipeline.get_recurring_payments("cust-1")
    assert payment.pattern == "Spotify"
    assert payment.category == "entertainment"
    assert payment.next_payment == date(2024, 4, 9)


def test_categorize_is_static() -> None:
    assert Pipeline.categorize("TESCO METRO") == "food"
    assert Pipeline.categorize("") == "other"
    assert Pipeline.categorize(None) == "other"


def test_unlink_refreshes_affected_months(pipeline) -> None:
    accounts = pipeline.list_accounts("cust-1")
    target = next(a for a in accounts if a.provider_id == "acc-2")
    assert pipeline.unlink_account("cust-1", target.unique_id) is True
    assert pipeline.get_spending("cust-1").total_spent == Decimal("9.99")
    assert pipeline.unlink_account("cust-1", target.unique_id) is False
    assert [a.provider_id for a in pipeline.list_accounts("cust-1")] == ["acc-1"]


def test_custom_category_passthroughs(pipeline) -> None:
    created = pipeline.create_custom_category("cust-1", CustomCategoryInput("Crafts", ("pottery",)))
    assert pipeline.categorize("POTTERY STUDIO", pipeline.list_custom_categories("cust-1")) == (
        f"custom_{created.id}"
    )

    renamed = pipeline.update_custom_category(
        "cust-1", created.id, CustomCategoryUpdate(name="Ceramics")
    )
    assert renamed is not None and renamed.name == "Ceramics"

    # Keywords already owned by a default category are rejected.
    with pytest.raises(ValueError):
        pipeline.create_custom_category("cust-1", CustomCategoryInput("Music", ("spotify",)))
    assert pipeline.delete_custom_category("cust-1", created.id) is True
    assert pipeline.list_custom_categories("cust-1") == []


def test_budget_progress(pipeline) -> None:
    assert pipeline.get_budget_progress("cust-1") is None
    pipeline.update_budget(
        "cust-1",
        BudgetUpdate(
            total_limit=Decimal("100"),
            category_limits=(CategoryLimit("entertainment", Decimal("10")),),
        ),
    )
    progress = pipeline.get_budget_progress("cust-1", "2024-03")
    assert progress is not None
    assert progress.percentage == Decimal("50.0")
    assert progress.status == "ok"
    [ent] = progress.categories
    assert ent.spent == Decimal("9.99")
    assert ent.status == "warning"


def test_from_settings_wires_tink_client(database) -> None:
    from finance_sync.config import Settings
    from finance_sync.store import SqlStore
    from finance_sync.tink_client import TinkClient

    settings = Settings.from_env(
        {"TINK_CLIENT_ID": "cid", "TINK_CLIENT_SECRET": "secret", "FS_SYNC_MAX_WORKERS": "2"}
    )
    p = Pipeline.from_settings(settings, database)
    assert isinstance(p.provider, TinkClient)
    assert isinstance(p.store, SqlStore)


def test_empty_category_update_is_a_no_op(pipeline) -> None:
    created = pipeline.create_custom_category("cust-1", CustomCategoryInput("Crafts", ("pottery",)))
    same = pipeline.update_custom_category("cust-1", created.id, CustomCategoryUpdate())
    assert same is not None
    assert (same.name, same.keywords) == ("Crafts", ("pottery",))
    assert pipeline.update_custom_category("cust-1", "missing", CustomCategoryUpdate()) is None


def _single_account_pipeline(store, items) -> Pipeline:
    provider = ProviderStub([account_payload("acc-1")], {"acc-1": [items]})
    p = Pipeline(provider, store, clock=lambda: TODAY)
    p.sync("cust-1", VALID_CODE)
    return p


def test_custom_category_changes_refresh_stored_snapshots(store) -> None:
    p = _single_account_pipeline(
        store,
        [
            transaction_payload("z1", "acc-1", booked="2024-02-12", narration="ZZYZX 42"),
            transaction_payload("z2", "acc-1", booked="2024-03-12", narration="ZZYZX 42"),
        ],
    )
    assert p.get_spending("cust-1", "2024-02").amount_for("other") == Decimal("12.50")

    created = p.create_custom_category("cust-1", CustomCategoryInput("Desert", ("zzyzx",)))
    key = f"custom_{created.id}"
    for month in ("2024-02", "2024-03"):
        snap = p.get_spending("cust-1", month)
        assert snap.amount_for(key) == Decimal("12.50")
        assert snap.amount_for("other") == 0

    p.update_custom_category("cust-1", created.id, CustomCategoryUpdate(keywords=("mojave",)))
    assert p.get_spending("cust-1", "2024-02").amount_for("other") == Decimal("12.50")

    p.update_custom_category("cust-1", created.id, CustomCategoryUpdate(keywords=("zzyzx",)))
    assert p.get_spending("cust-1", "2024-03").amount_for(key) == Decimal("12.50")

    assert p.delete_custom_category("cust-1", created.id) is True
    snap = p.get_spending("cust-1", "2024-03")
    assert snap.amount_for(key) == 0
    assert snap.amount_for("other") == Decimal("12.50")


def test_budget_progress_uses_custom_date_window(store) -> None:
    p = _single_account_pipeline(
        store,
        [
            transaction_payload("w0", "acc-1", booked="2024-02-10", amount=(-700, 2)),
            transaction_payload("w1", "acc-1", booked="2024-02-20", amount=(-5000, 2)),
            transaction_payload("w2", "acc-1", booked="2024-03-10", amount=(-1000, 2)),
            transaction_payload("w3", "acc-1", booked="2024-03-18", amount=(-500, 2)),
        ],
    )
    p.update_budget(
        "cust-1",
        BudgetUpdate(
            total_limit=Decimal("100"),
            period=BudgetPeriod(
                type="custom-date", start_date=date(2024, 2, 15), end_date=date(2024, 3, 15)
            ),
        ),
    )

    progress = p.get_budget_progress("cust-1")
    assert progress is not None
    assert progress.month == "2024-02-15..2024-03-15"
    assert progress.total_spent == Decimal("60.00")
    assert progress.percentage == Decimal("60.0")
    assert progress.remaining == Decimal("40.00")

    # An explicit month still reads that calendar month.
    assert p.get_budget_progress("cust-1", "2024-03").total_spent == Decimal("15.00")


def test_budget_progress_uses_recurring_window(store) -> None:
    p = _single_account_pipeline(
        store,
        [
            transaction_payload("r1", "acc-1", booked="2024-03-09", amount=(-900, 2)),
            transaction_payload("r2", "acc-1", booked="2024-03-10", amount=(-2000, 2)),
            transaction_payload("r3", "acc-1", booked="2024-03-19", amount=(-100, 2)),
        ],
    )
    p.update_budget(
        "cust-1",
        BudgetUpdate(
            total_limit=Decimal("50"),
            period=BudgetPeriod(
                type="recurring",
                start_date=date(2024, 2, 10),
                recurring_interval=1,
                recurring_unit="months",
            ),
        ),
    )

    progress = p.get_budget_progress("cust-1")
    assert progress.month == "2024-03-10..2024-04-09"
    assert progress.total_spent == Decimal("21.00")

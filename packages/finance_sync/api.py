"""Public surface of ``finance_sync``.

:class:`Pipeline` bundles a provider and a store and exposes the operations a
host application (HTTP layer, CLI, jobs) calls:

- ``sync(customer_id, code)`` -> :class:`~finance_sync.models.SyncResult`
- ``get_spending(customer_id, "YYYY-MM")`` -> :class:`~finance_sync.models.BudgetSpending`
- ``get_recurring_payments(customer_id)`` -> ``list[RecurringPayment]``
- ``categorize(narration, custom_categories=None)`` -> category key

plus account, custom category and budget management. Nothing here holds
process-wide state; build one ``Pipeline`` per database/provider pair.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from datetime import date

from db.client import Database

from . import budgets as _budgets
from . import categories as _categories
from .budgets import BudgetProgress
from .config import Settings
from .logging_setup import get_logger
from .models import (
    Account,
    Budget,
    BudgetSpending,
    BudgetUpdate,
    CustomCategory,
    CustomCategoryInput,
    CustomCategoryUpdate,
    RecurringPayment,
    SyncResult,
    TransactionFilter,
)
from .provider import BankProvider
from .recurring import detect
from .spending import SpendAggregator, month_key
from .store import SqlStore, Store
from .sync import DEFAULT_MAX_WORKERS, SyncOrchestrator
from .tink_client import TinkClient

_logger = get_logger("finance_sync.api")


def build_provider(settings: Settings) -> BankProvider:
    return TinkClient(
        client_id=settings.tink_client_id or "",
        client_secret=settings.tink_client_secret or "",
        redirect_uri=settings.tink_redirect_uri,
        base_url=settings.tink_base_url,
        timeout=settings.provider_timeout,
    )


class Pipeline:
    def __init__(
        self,
        provider: BankProvider,
        store: Store,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clock: Callable[[], date] | None = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self._clock = clock or date.today
        self._aggregator = SpendAggregator(store, clock=self._clock)
        self._orchestrator = SyncOrchestrator(
            provider,
            store,
            max_workers=max_workers,
            clock=self._clock,
            aggregator=self._aggregator,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        database: Database,
        *,
        max_workers: int | None = None,
    ) -> Pipeline:
        """Wire a Tink client and a SQL store from environment settings.

        ``max_workers`` overrides ``settings.max_workers``.
        """

        return cls(
            build_provider(settings),
            SqlStore(database),
            max_workers=max_workers or settings.max_workers,
        )

    # ---- core contract -------------------------------------------------------

    def sync(
        self, customer_id: str, code: str, *, cancel: threading.Event | None = None
    ) -> SyncResult:
        return self._orchestrator.sync(customer_id, code, cancel=cancel)

    def get_spending(self, customer_id: str, month: str | None = None) -> BudgetSpending:
        """Spending snapshot for ``month`` (``YYYY-MM``; default: current month)."""

        return self._aggregator.get_spending(customer_id, month or month_key(self._clock()))

    def get_recurring_payments(self, customer_id: str) -> list[RecurringPayment]:
        expenses = self.store.query_transactions(
            customer_id, TransactionFilter(expenses_only=True)
        )
        return detect(expenses, self.store.list_custom_categories(customer_id))

    @staticmethod
    def categorize(
        narration: str | None, custom_categories: Sequence[CustomCategory] | None = None
    ) -> str:
        return _categories.categorize(narration, custom_categories)

    # ---- accounts ------------------------------------------------------------

    def list_accounts(self, customer_id: str) -> list[Account]:
        return self.store.list_accounts(customer_id)

    def unlink_account(self, customer_id: str, unique_id: str) -> bool:
        """Remove an account and its transactions, then refresh affected snapshots."""

        months = {
            month_key(t.booked_date)
            for t in self.store.query_transactions(
                customer_id, TransactionFilter(account_unique_ids=(unique_id,))
            )
        }
        removed = self.store.unlink_account(customer_id, unique_id)
        if removed:
            _logger.info("unlinked account %s for customer %s", unique_id, customer_id)
            self._aggregator.recalculate_months(customer_id, months | {month_key(self._clock())})
        return removed

    # ---- custom categories ---------------------------------------------------

    def list_custom_categories(self, customer_id: str) -> list[CustomCategory]:
        return self.store.list_custom_categories(customer_id)

    # Every mutation re-derives the customer's stored snapshots so spending
    # breakdowns follow the new keyword mapping.

    def create_custom_category(
        self, customer_id: str, data: CustomCategoryInput
    ) -> CustomCategory:
        created = _categories.create_custom_category(self.store, customer_id, data)
        self._aggregator.recalculate_stored(customer_id)
        return created

    def update_custom_category(
        self, customer_id: str, category_id: str, update: CustomCategoryUpdate
    ) -> CustomCategory | None:
        updated = _categories.update_custom_category(self.store, customer_id, category_id, update)
        if updated is not None and not update.is_empty():
            self._aggregator.recalculate_stored(customer_id)
        return updated

    def delete_custom_category(self, customer_id: str, category_id: str) -> bool:
        removed = _categories.delete_custom_category(self.store, customer_id, category_id)
        if removed:
            self._aggregator.recalculate_stored(customer_id)
        return removed

    # ---- budgets -------------------------------------------------------------

    def get_budget(self, customer_id: str) -> Budget | None:
        return self.store.get_budget(customer_id)

    def update_budget(self, customer_id: str, update: BudgetUpdate) -> Budget:
        return _budgets.upsert_budget(self.store, customer_id, update)

    def get_budget_progress(
        self, customer_id: str, month: str | None = None
    ) -> BudgetProgress | None:
        """Progress of the customer's budget; ``None`` without a budget.

        An explicit ``month`` (``YYYY-MM``) measures that calendar month's
        snapshot. Otherwise spending is summed over the window the budget's
        period resolves to today, which may span months.
        """

        budget = self.store.get_budget(customer_id)
        if budget is None:
            return None
        if month is not None or budget.period is None or budget.period.type == "current-month":
            spending = self.get_spending(customer_id, month)
        else:
            spending = _budgets.period_spending(
                self.store, customer_id, budget.period, self._clock()
            )
        return _budgets.budget_progress(budget, spending)


__all__ = ["Pipeline"]

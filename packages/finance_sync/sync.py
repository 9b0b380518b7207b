"""Sync orchestration: provider -> typed records -> store -> derived data.

One :meth:`SyncOrchestrator.sync` call:

1. exchanges the authorization code for an access token (failure aborts);
2. lists and upserts the customer's accounts;
3. fetches each account's transactions page by page on a bounded thread
   pool and upserts every record;
4. recalculates spending snapshots for every month touched plus the current
   month, then runs recurring-payment detection.

Failures below the token exchange are collected into the returned
:class:`~finance_sync.models.SyncResult` instead of raised. Concurrent syncs
for the same customer are not coordinated here; callers serialize them.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .errors import StoreReadError, StoreWriteError, ValidationError
from .ingest import parse_account, parse_transaction
from .logging_setup import get_logger
from .models import (
    Account,
    AccountSyncError,
    CustomCategory,
    RecurringPayment,
    SyncResult,
    Transaction,
    TransactionFilter,
)
from .pmap import p_map
from .provider import BankProvider
from .recurring import detect
from .spending import SpendAggregator, month_key
from .store import Store

_logger = get_logger("finance_sync.sync")

DEFAULT_MAX_WORKERS = 4

type Detector = Callable[
    [Sequence[Transaction], Sequence[CustomCategory] | None], list[RecurringPayment]
]


@dataclass(slots=True)
class _AccountOutcome:
    account: Account
    imported: int = 0
    store_failures: int = 0
    skipped: int = 0
    months: set[str] = field(default_factory=set)
    error: str | None = None


class SyncOrchestrator:
    """Drives a full sync for one customer.

    Parameters
    ----------
    provider:
        Open-banking client (``BankProvider``).
    store:
        Persistence backend (``Store``).
    max_workers:
        Upper bound on accounts fetched concurrently.
    clock:
        Returns "today"; decides which month counts as current.
    aggregator, detector:
        Overridable post-ingestion passes. Defaults are
        :class:`~finance_sync.spending.SpendAggregator` over ``store`` and
        :func:`~finance_sync.recurring.detect`.
    """

    def __init__(
        self,
        provider: BankProvider,
        store: Store,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clock: Callable[[], date] | None = None,
        aggregator: SpendAggregator | None = None,
        detector: Detector | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._provider = provider
        self._store = store
        self._max_workers = max_workers
        self._clock = clock or date.today
        self._aggregator = aggregator or SpendAggregator(store, clock=self._clock)
        self._detector: Detector = detector or detect

    def sync(
        self,
        customer_id: str,
        auth_code: str,
        *,
        cancel: threading.Event | None = None,
    ) -> SyncResult:
        """Run one sync. Raises only :class:`~finance_sync.errors.AuthExchangeError`
        (and ``ProviderFetchError`` when the account list itself is unavailable)."""

        result = SyncResult()
        _logger.info("sync started for customer %s", customer_id)

        token = self._provider.exchange_token(auth_code)
        accounts = self._import_accounts(token, customer_id, result)

        outcomes = p_map(
            accounts,
            lambda acct: self._sync_account(token, acct, cancel),
            concurrency=self._max_workers,
            stop_on_error=False,
            cancel=cancel,
            thread_name_prefix="fs-sync",
        )

        months: set[str] = set()
        for outcome in outcomes:
            result.transactions_imported += outcome.imported
            result.store_write_failures += outcome.store_failures
            result.skipped_records += outcome.skipped
            months |= outcome.months
            if outcome.error is not None:
                result.per_account_errors.append(
                    AccountSyncError(
                        account_unique_id=outcome.account.unique_id,
                        account_provider_id=outcome.account.provider_id,
                        message=outcome.error,
                    )
                )

        if cancel is not None and cancel.is_set():
            result.cancelled = True
            _logger.info(
                "sync cancelled for customer %s after %d of %d accounts",
                customer_id,
                len(outcomes),
                len(accounts),
            )

        self._refresh_derived(customer_id, months, result)
        _logger.info("sync finished for customer %s: %s", customer_id, result.summary())
        return result

    # ---- accounts ------------------------------------------------------------

    def _import_accounts(
        self, token: str, customer_id: str, result: SyncResult
    ) -> list[Account]:
        stored: list[Account] = []
        for payload in self._provider.list_accounts(token):
            try:
                account = parse_account(payload, customer_id=customer_id)
            except ValidationError as e:
                result.skipped_records += 1
                _logger.warning("skipping account payload %s: %s", e.record_id, e)
                continue
            try:
                self._store.upsert_account(account)
            except StoreWriteError as e:
                result.store_write_failures += 1
                _logger.warning("could not store account %s: %s", account.unique_id, e)
                continue
            stored.append(account)
        result.accounts_imported = len(stored)
        return stored

    # ---- transactions --------------------------------------------------------

    def _sync_account(
        self, token: str, account: Account, cancel: threading.Event | None
    ) -> _AccountOutcome:
        outcome = _AccountOutcome(account=account)
        seen_tokens: set[str] = set()
        page_token: str | None = None
        while True:
            if cancel is not None and cancel.is_set():
                break
            try:
                page = self._provider.list_transactions(token, account.provider_id, page_token)
            except Exception as e:  # noqa: BLE001
                outcome.error = str(e) or type(e).__name__
                _logger.warning(
                    "transaction fetch failed for account %s: %s", account.unique_id, outcome.error
                )
                break

            for payload in page.items:
                self._ingest_transaction(payload, account, outcome)

            next_token = page.next_page_token
            if not next_token:
                break
            if next_token in seen_tokens:
                outcome.error = f"provider repeated page token {next_token!r}"
                _logger.warning("stopping pagination for %s: %s", account.unique_id, outcome.error)
                break
            seen_tokens.add(next_token)
            page_token = next_token
        return outcome

    def _ingest_transaction(
        self, payload: Mapping[str, Any], account: Account, outcome: _AccountOutcome
    ) -> None:
        try:
            tx = parse_transaction(
                payload, customer_id=account.customer_id, account_unique_id=account.unique_id
            )
        except ValidationError as e:
            outcome.skipped += 1
            _logger.debug("skipping transaction %s on %s: %s", e.record_id, account.unique_id, e)
            return
        try:
            self._store.upsert_transaction(tx)
        except StoreWriteError as e:
            outcome.store_failures += 1
            _logger.warning("could not store transaction %s: %s", tx.provider_id, e)
            return
        outcome.imported += 1
        outcome.months.add(month_key(tx.booked_date))

    # ---- derived data --------------------------------------------------------

    def _refresh_derived(self, customer_id: str, months: set[str], result: SyncResult) -> None:
        targets = sorted(months | {month_key(self._clock())})
        for key in targets:
            try:
                self._aggregator.recalculate_months(customer_id, [key])
            except StoreWriteError as e:
                result.store_write_failures += 1
                _logger.warning("spending snapshot %s not replaced: %s", key, e)
                continue
            except StoreReadError as e:
                result.derived_errors.append(f"spending {key}: {e}")
                _logger.warning("spending snapshot %s not recalculated: %s", key, e)
                continue
            result.months_recalculated.append(key)

        try:
            custom = self._store.list_custom_categories(customer_id)
            expenses = self._store.query_transactions(
                customer_id, TransactionFilter(expenses_only=True)
            )
        except StoreReadError as e:
            result.derived_errors.append(f"recurring payments: {e}")
            _logger.warning("recurring detection skipped for %s: %s", customer_id, e)
            return
        result.recurring_payments = self._detector(expenses, custom)


__all__ = ["DEFAULT_MAX_WORKERS", "SyncOrchestrator"]

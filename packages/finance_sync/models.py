"""Typed records for ``finance_sync``.

Raw provider payloads never travel past the ingestion boundary
(:mod:`finance_sync.ingest`). Everything downstream (store, categorizer,
aggregator, recurring detector) works on the frozen records defined here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from .money import Money

# ---------------------------------------------------------------------------
# Narration normalization
# ---------------------------------------------------------------------------

_DIGITS_RE = re.compile(r"\d+")
_NON_WORD_RE = re.compile(r"[^\w\s]")


def normalize_narration(narration: str | None) -> str:
    """Lowercase, drop digits and punctuation, trim.

    Used only as a matching key (recurring detection); never shown to users.
    """

    if not narration:
        return ""
    s = str(narration).lower()
    s = _DIGITS_RE.sub("", s)
    s = _NON_WORD_RE.sub("", s)
    return s.strip()


# ---------------------------------------------------------------------------
# Accounts and transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Account:
    """A linked bank account as stored after a sync.

    ``provider_id`` changes on every re-link; ``unique_id`` does not and is the
    key every transaction and UI selection refers to.
    """

    provider_id: str
    unique_id: str
    customer_id: str
    name: str | None
    type: str | None
    booked: Money
    available: Money
    identifiers: dict[str, Any] = field(default_factory=dict)
    last_refreshed: datetime | None = None
    financial_institution_id: str | None = None
    customer_segment: str | None = None


@dataclass(frozen=True, slots=True)
class Transaction:
    provider_id: str
    account_unique_id: str
    customer_id: str
    amount: Money
    narration: str
    booked_date: date
    dedup_hash: str
    identifiers: dict[str, Any] = field(default_factory=dict)
    types: dict[str, Any] = field(default_factory=dict)
    status: str | None = None
    provider_mutability: str | None = None

    @property
    def normalized_narration(self) -> str:
        return normalize_narration(self.narration)

    @property
    def is_expense(self) -> bool:
        return self.amount.is_expense

    def category(self, custom_categories: list[CustomCategory] | None = None) -> str:
        """Derive the category key for this transaction's narration."""

        from .categories import categorize

        return categorize(self.narration, custom_categories)


@dataclass(frozen=True, slots=True)
class TransactionFilter:
    """Query filter for :meth:`Store.query_transactions`. ``None`` means unbounded."""

    start_date: date | None = None
    end_date: date | None = None
    account_unique_ids: tuple[str, ...] | None = None
    expenses_only: bool = False


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DefaultCategory:
    key: str
    display_name: str
    keywords: tuple[str, ...]
    color: str


@dataclass(frozen=True, slots=True)
class CustomCategory:
    id: str
    customer_id: str
    name: str
    keywords: tuple[str, ...]
    color: str = "#6b7280"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> str:
        return f"custom_{self.id}"


@dataclass(frozen=True, slots=True)
class CustomCategoryInput:
    name: str
    keywords: tuple[str, ...]
    color: str | None = None


@dataclass(frozen=True, slots=True)
class CustomCategoryUpdate:
    """Partial update for a custom category.

    One field per updatable property; ``None`` leaves the stored value alone.
    """

    name: str | None = None
    keywords: tuple[str, ...] | None = None
    color: str | None = None

    def is_empty(self) -> bool:
        return self.name is None and self.keywords is None and self.color is None


# ---------------------------------------------------------------------------
# Budgets and spending snapshots
# ---------------------------------------------------------------------------

BudgetPeriodType = Literal["current-month", "custom-date", "recurring"]
RecurringUnit = Literal["days", "months", "years"]


@dataclass(frozen=True, slots=True)
class BudgetPeriod:
    type: BudgetPeriodType = "current-month"
    start_date: date | None = None
    end_date: date | None = None
    recurring_interval: int | None = None
    recurring_unit: RecurringUnit | None = None

    def resolve_range(self, today: date) -> tuple[date, date]:
        """Inclusive date window this period covers on ``today``."""

        from .budgets import resolve_range

        return resolve_range(self, today)


@dataclass(frozen=True, slots=True)
class CategoryLimit:
    category: str
    limit: Decimal


@dataclass(frozen=True, slots=True)
class Budget:
    customer_id: str
    total_limit: Decimal
    category_limits: tuple[CategoryLimit, ...] = ()
    period: BudgetPeriod | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BudgetUpdate:
    """Partial update for a customer's budget; ``None`` fields are untouched."""

    total_limit: Decimal | None = None
    category_limits: tuple[CategoryLimit, ...] | None = None
    period: BudgetPeriod | None = None


@dataclass(frozen=True, slots=True)
class CategorySpending:
    category: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class BudgetSpending:
    """Spend snapshot for one customer and calendar month (``YYYY-MM``).

    Derived and re-computable; never a source of truth.
    """

    customer_id: str
    month: str
    total_spent: Decimal
    category_spending: tuple[CategorySpending, ...] = ()

    def amount_for(self, category: str) -> Decimal:
        for item in self.category_spending:
            if item.category == category:
                return item.amount
        return Decimal(0)


# ---------------------------------------------------------------------------
# Recurring payments
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RecurringPayment:
    pattern: str
    category: str
    average_amount: Decimal
    count: int
    interval_days: int
    last_payment: date
    next_payment: date
    contributing_transaction_ids: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Sync results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AccountSyncError:
    account_unique_id: str
    account_provider_id: str
    message: str


@dataclass(slots=True)
class SyncResult:
    """Outcome of one :meth:`SyncOrchestrator.sync` run.

    Partial failures are reported here rather than raised: a run where one of
    four accounts failed still returns normally with one entry in
    ``per_account_errors``.
    """

    accounts_imported: int = 0
    transactions_imported: int = 0
    per_account_errors: list[AccountSyncError] = field(default_factory=list)
    store_write_failures: int = 0
    skipped_records: int = 0
    cancelled: bool = False
    months_recalculated: list[str] = field(default_factory=list)
    recurring_payments: list[RecurringPayment] = field(default_factory=list)
    # Post-ingestion passes (snapshots, recurring detection) that could not run.
    derived_errors: list[str] = field(default_factory=list)

    @property
    def accounts_refreshed(self) -> int:
        return self.accounts_imported - len(self.per_account_errors)

    def summary(self) -> str:
        return (
            f"{self.accounts_refreshed} of {self.accounts_imported} accounts refreshed, "
            f"{self.transactions_imported} transactions imported"
        )


__all__ = [
    "Account",
    "AccountSyncError",
    "Budget",
    "BudgetPeriod",
    "BudgetSpending",
    "BudgetUpdate",
    "CategoryLimit",
    "CategorySpending",
    "CustomCategory",
    "CustomCategoryInput",
    "CustomCategoryUpdate",
    "DefaultCategory",
    "RecurringPayment",
    "SyncResult",
    "Transaction",
    "TransactionFilter",
    "normalize_narration",
]

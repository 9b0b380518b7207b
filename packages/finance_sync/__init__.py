"""Public interface for the ``finance_sync`` package.

Symbol re-exports only; see :mod:`finance_sync.api` for the pipeline and
:mod:`finance_sync.models` for the typed records.
"""

from .api import Pipeline
from .categories import DEFAULT_CATEGORIES, categorize
from .errors import (
    AuthExchangeError,
    FinanceSyncError,
    ProviderFetchError,
    StoreReadError,
    StoreWriteError,
    ValidationError,
)
from .models import (
    Account,
    AccountSyncError,
    Budget,
    BudgetPeriod,
    BudgetSpending,
    BudgetUpdate,
    CategoryLimit,
    CategorySpending,
    CustomCategory,
    CustomCategoryInput,
    CustomCategoryUpdate,
    RecurringPayment,
    SyncResult,
    Transaction,
    TransactionFilter,
)
from .money import Money, format_amount, format_money, scale_amount
from .provider import BankProvider, TransactionPage
from .recurring import detect as detect_recurring_payments
from .store import SqlStore, Store
from .sync import SyncOrchestrator

__all__ = [
    # Pipeline
    "Pipeline",
    "SyncOrchestrator",
    "categorize",
    "detect_recurring_payments",
    "DEFAULT_CATEGORIES",
    # Contracts
    "BankProvider",
    "Store",
    "SqlStore",
    "TransactionPage",
    # Money
    "Money",
    "format_amount",
    "format_money",
    "scale_amount",
    # Records
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
    "RecurringPayment",
    "SyncResult",
    "Transaction",
    "TransactionFilter",
    # Errors
    "AuthExchangeError",
    "FinanceSyncError",
    "ProviderFetchError",
    "StoreReadError",
    "StoreWriteError",
    "ValidationError",
]

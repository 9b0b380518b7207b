"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the finance domain models used by ``finance_sync``.
"""

from .finance import (
    Base,
    FsAccount,
    FsBudget,
    FsCustomCategory,
    FsSpendingSnapshot,
    FsTransaction,
)

__all__ = [
    "Base",
    "FsAccount",
    "FsBudget",
    "FsCustomCategory",
    "FsSpendingSnapshot",
    "FsTransaction",
]

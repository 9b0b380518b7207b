"""db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``db.models.finance`` (re-exported for convenience)
- The ``Database`` handle in ``db.client``
"""

from __future__ import annotations

from .client import Database
from .models.finance import (
    Base,
    FsAccount,
    FsBudget,
    FsCustomCategory,
    FsSpendingSnapshot,
    FsTransaction,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "Database",
    "metadata",
    "FsAccount",
    "FsBudget",
    "FsCustomCategory",
    "FsSpendingSnapshot",
    "FsTransaction",
]

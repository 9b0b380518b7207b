# ruff: noqa: I001
"""Persistence for the sync pipeline.

:class:`Store` is the contract the orchestrator, aggregator and category
services depend on. :class:`SqlStore` implements it on the shared database
owned by ``libs/db`` (ORM models in ``db.models.finance``, engine/session via
``db.client.Database``).

Idempotency rules:
- Transactions upsert on ``(customer_id, dedup_hash)`` (``INSERT .. ON CONFLICT
  DO UPDATE``); a re-sync overwrites every provider-reported field in place.
- Accounts are matched within the customer on ``provider_id`` or
  ``unique_id``. A re-link that presents a new ``provider_id`` for a known
  ``unique_id`` refreshes the existing row instead of inserting a duplicate.
  Two customers linking the same joint account each get their own row.
- Spending snapshots upsert on ``(customer_id, month)``.

Database failures are wrapped in :class:`~finance_sync.errors.StoreWriteError`
(writes, so callers can treat them per record) or
:class:`~finance_sync.errors.StoreReadError` (queries).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from db.client import Database
from db.models.finance import (
    FsAccount,
    FsBudget,
    FsCustomCategory,
    FsSpendingSnapshot,
    FsTransaction,
)
from .errors import StoreReadError, StoreWriteError
from .logging_setup import get_logger
from .models import (
    Account,
    Budget,
    BudgetPeriod,
    BudgetSpending,
    BudgetUpdate,
    CategoryLimit,
    CategorySpending,
    CustomCategory,
    CustomCategoryUpdate,
    Transaction,
    TransactionFilter,
)
from .money import Money

_logger = get_logger("finance_sync.store")


@runtime_checkable
class Store(Protocol):
    # Accounts / transactions
    def upsert_account(self, account: Account) -> None: ...

    def upsert_transaction(self, transaction: Transaction) -> None: ...

    def query_transactions(
        self, customer_id: str, flt: TransactionFilter | None = None
    ) -> list[Transaction]: ...

    def list_accounts(self, customer_id: str) -> list[Account]: ...

    def unlink_account(self, customer_id: str, unique_id: str) -> bool: ...

    # Spending snapshots
    def replace_spending_snapshot(
        self, customer_id: str, month: str, snapshot: BudgetSpending
    ) -> None: ...

    def get_spending_snapshot(self, customer_id: str, month: str) -> BudgetSpending | None: ...

    def list_snapshot_months(self, customer_id: str) -> list[str]: ...

    # Custom categories
    def list_custom_categories(self, customer_id: str) -> list[CustomCategory]: ...

    def insert_custom_category(self, category: CustomCategory) -> None: ...

    def update_custom_category(
        self,
        customer_id: str,
        category_id: str,
        update: CustomCategoryUpdate,
        *,
        now: datetime,
    ) -> CustomCategory | None: ...

    def delete_custom_category(self, customer_id: str, category_id: str) -> bool: ...

    # Budgets
    def get_budget(self, customer_id: str) -> Budget | None: ...

    def upsert_budget(
        self, customer_id: str, update: BudgetUpdate, *, now: datetime
    ) -> Budget: ...


class SqlStore:
    """:class:`Store` backed by SQLAlchemy (PostgreSQL or SQLite)."""

    def __init__(self, database: Database) -> None:
        self._db = database

    # ---- accounts ------------------------------------------------------------

    def upsert_account(self, account: Account) -> None:
        now = datetime.now(UTC)
        values = _account_values(account)
        try:
            with self._db.session_scope() as s:
                rows = (
                    s.execute(
                        select(FsAccount).where(
                            FsAccount.customer_id == account.customer_id,
                            or_(
                                FsAccount.unique_id == account.unique_id,
                                FsAccount.provider_id == account.provider_id,
                            ),
                        )
                    )
                    .scalars()
                    .all()
                )
                # Prefer the stable identity when both keys match different rows.
                row = next((r for r in rows if r.unique_id == account.unique_id), None)
                if row is None and rows:
                    row = rows[0]
                if row is None:
                    s.add(FsAccount(**values, created_at=now, updated_at=now))
                    return
                if row.provider_id != account.provider_id:
                    _logger.info(
                        "account %s re-linked: provider id %s -> %s",
                        account.unique_id,
                        row.provider_id,
                        account.provider_id,
                    )
                for key, value in values.items():
                    setattr(row, key, value)
                row.updated_at = now
        except SQLAlchemyError as e:
            raise StoreWriteError(f"account {account.unique_id}: {e}") from e

    def list_accounts(self, customer_id: str) -> list[Account]:
        try:
            with self._db.session_scope() as s:
                rows = (
                    s.execute(
                        select(FsAccount)
                        .where(FsAccount.customer_id == customer_id)
                        .order_by(FsAccount.id)
                    )
                    .scalars()
                    .all()
                )
                return [_account_from_row(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreReadError(f"accounts of {customer_id}: {e}") from e

    def unlink_account(self, customer_id: str, unique_id: str) -> bool:
        """Delete an account and all of its transactions. Returns False if absent."""

        try:
            with self._db.session_scope() as s:
                s.execute(
                    delete(FsTransaction).where(
                        FsTransaction.customer_id == customer_id,
                        FsTransaction.account_unique_id == unique_id,
                    )
                )
                res = s.execute(
                    delete(FsAccount).where(
                        FsAccount.customer_id == customer_id,
                        FsAccount.unique_id == unique_id,
                    )
                )
                return bool(res.rowcount)
        except SQLAlchemyError as e:
            raise StoreWriteError(f"unlink {unique_id}: {e}") from e

    # ---- transactions --------------------------------------------------------

    def upsert_transaction(self, transaction: Transaction) -> None:
        now = datetime.now(UTC)
        values = {
            "dedup_hash": transaction.dedup_hash,
            "provider_id": transaction.provider_id,
            "account_unique_id": transaction.account_unique_id,
            "customer_id": transaction.customer_id,
            "unscaled_value": transaction.amount.unscaled_value,
            "scale": transaction.amount.scale,
            "currency_code": transaction.amount.currency,
            "narration": transaction.narration,
            "booked_date": transaction.booked_date,
            "identifiers": dict(transaction.identifiers),
            "types": dict(transaction.types),
            "status": transaction.status,
            "provider_mutability": transaction.provider_mutability,
            "created_at": now,
            "updated_at": now,
        }
        try:
            with self._db.session_scope() as s:
                stmt = self._insert()(FsTransaction).values(values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[FsTransaction.customer_id, FsTransaction.dedup_hash],
                    set_={
                        "provider_id": stmt.excluded.provider_id,
                        "unscaled_value": stmt.excluded.unscaled_value,
                        "scale": stmt.excluded.scale,
                        "currency_code": stmt.excluded.currency_code,
                        "narration": stmt.excluded.narration,
                        "booked_date": stmt.excluded.booked_date,
                        "identifiers": stmt.excluded.identifiers,
                        "types": stmt.excluded.types,
                        "status": stmt.excluded.status,
                        "provider_mutability": stmt.excluded.provider_mutability,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                s.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreWriteError(f"transaction {transaction.provider_id}: {e}") from e

    def query_transactions(
        self, customer_id: str, flt: TransactionFilter | None = None
    ) -> list[Transaction]:
        """Stored transactions for a customer ordered by booked date.

        ``flt`` bounds are inclusive; ``None`` means unbounded.
        """

        flt = flt or TransactionFilter()
        stmt = select(FsTransaction).where(FsTransaction.customer_id == customer_id)
        if flt.start_date is not None:
            stmt = stmt.where(FsTransaction.booked_date >= flt.start_date)
        if flt.end_date is not None:
            stmt = stmt.where(FsTransaction.booked_date <= flt.end_date)
        if flt.account_unique_ids is not None:
            stmt = stmt.where(FsTransaction.account_unique_id.in_(flt.account_unique_ids))
        if flt.expenses_only:
            stmt = stmt.where(FsTransaction.unscaled_value < 0)
        stmt = stmt.order_by(FsTransaction.booked_date, FsTransaction.id)

        try:
            with self._db.session_scope() as s:
                return [_transaction_from_row(r) for r in s.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            raise StoreReadError(f"transactions of {customer_id}: {e}") from e

    # ---- spending snapshots --------------------------------------------------

    def replace_spending_snapshot(
        self, customer_id: str, month: str, snapshot: BudgetSpending
    ) -> None:
        values = {
            "customer_id": customer_id,
            "month": month,
            "total_spent": snapshot.total_spent,
            "category_spending": [
                {"category": c.category, "amount": str(c.amount)}
                for c in snapshot.category_spending
            ],
            "computed_at": datetime.now(UTC),
        }
        try:
            with self._db.session_scope() as s:
                stmt = self._insert()(FsSpendingSnapshot).values(values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[FsSpendingSnapshot.customer_id, FsSpendingSnapshot.month],
                    set_={
                        "total_spent": stmt.excluded.total_spent,
                        "category_spending": stmt.excluded.category_spending,
                        "computed_at": stmt.excluded.computed_at,
                    },
                )
                s.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreWriteError(f"spending snapshot {customer_id}/{month}: {e}") from e

    def get_spending_snapshot(self, customer_id: str, month: str) -> BudgetSpending | None:
        try:
            with self._db.session_scope() as s:
                row = s.execute(
                    select(FsSpendingSnapshot).where(
                        FsSpendingSnapshot.customer_id == customer_id,
                        FsSpendingSnapshot.month == month,
                    )
                ).scalar_one_or_none()
                return _snapshot_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreReadError(f"spending snapshot {customer_id}/{month}: {e}") from e

    def list_snapshot_months(self, customer_id: str) -> list[str]:
        """Months (``YYYY-MM``) with a stored snapshot, oldest first."""

        try:
            with self._db.session_scope() as s:
                return list(
                    s.execute(
                        select(FsSpendingSnapshot.month)
                        .where(FsSpendingSnapshot.customer_id == customer_id)
                        .order_by(FsSpendingSnapshot.month)
                    )
                    .scalars()
                    .all()
                )
        except SQLAlchemyError as e:
            raise StoreReadError(f"snapshot months of {customer_id}: {e}") from e

    # ---- custom categories ---------------------------------------------------

    def list_custom_categories(self, customer_id: str) -> list[CustomCategory]:
        """Newest first."""

        try:
            with self._db.session_scope() as s:
                rows = (
                    s.execute(
                        select(FsCustomCategory)
                        .where(FsCustomCategory.customer_id == customer_id)
                        .order_by(FsCustomCategory.created_at.desc(), FsCustomCategory.id.desc())
                    )
                    .scalars()
                    .all()
                )
                return [_category_from_row(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreReadError(f"custom categories of {customer_id}: {e}") from e

    def insert_custom_category(self, category: CustomCategory) -> None:
        now = datetime.now(UTC)
        try:
            with self._db.session_scope() as s:
                s.add(
                    FsCustomCategory(
                        id=category.id,
                        customer_id=category.customer_id,
                        name=category.name,
                        keywords=list(category.keywords),
                        color=category.color,
                        created_at=category.created_at or now,
                        updated_at=category.updated_at or now,
                    )
                )
        except SQLAlchemyError as e:
            raise StoreWriteError(f"custom category {category.id}: {e}") from e

    def update_custom_category(
        self,
        customer_id: str,
        category_id: str,
        update: CustomCategoryUpdate,
        *,
        now: datetime,
    ) -> CustomCategory | None:
        try:
            with self._db.session_scope() as s:
                row = s.execute(
                    select(FsCustomCategory).where(
                        FsCustomCategory.customer_id == customer_id,
                        FsCustomCategory.id == category_id,
                    )
                ).scalar_one_or_none()
                if row is None:
                    return None
                if update.name is not None:
                    row.name = update.name
                if update.keywords is not None:
                    row.keywords = list(update.keywords)
                if update.color is not None:
                    row.color = update.color
                row.updated_at = now
                s.flush()
                return _category_from_row(row)
        except SQLAlchemyError as e:
            raise StoreWriteError(f"custom category {category_id}: {e}") from e

    def delete_custom_category(self, customer_id: str, category_id: str) -> bool:
        try:
            with self._db.session_scope() as s:
                res = s.execute(
                    delete(FsCustomCategory).where(
                        FsCustomCategory.customer_id == customer_id,
                        FsCustomCategory.id == category_id,
                    )
                )
                return bool(res.rowcount)
        except SQLAlchemyError as e:
            raise StoreWriteError(f"custom category {category_id}: {e}") from e

    # ---- budgets -------------------------------------------------------------

    def get_budget(self, customer_id: str) -> Budget | None:
        try:
            with self._db.session_scope() as s:
                row = s.get(FsBudget, customer_id)
                return _budget_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreReadError(f"budget {customer_id}: {e}") from e

    def upsert_budget(self, customer_id: str, update: BudgetUpdate, *, now: datetime) -> Budget:
        """Create or partially update a budget. Creating one requires ``total_limit``."""

        try:
            with self._db.session_scope() as s:
                row = s.get(FsBudget, customer_id)
                if row is None:
                    if update.total_limit is None:
                        raise ValueError("total_limit is required when creating a budget")
                    row = FsBudget(
                        customer_id=customer_id,
                        total_limit=update.total_limit,
                        category_limits=[],
                        period=None,
                        created_at=now,
                        updated_at=now,
                    )
                    s.add(row)
                if update.total_limit is not None:
                    row.total_limit = update.total_limit
                if update.category_limits is not None:
                    row.category_limits = [
                        {"category": c.category, "limit": str(c.limit)}
                        for c in update.category_limits
                    ]
                if update.period is not None:
                    row.period = _period_to_json(update.period)
                row.updated_at = now
                s.flush()
                return _budget_from_row(row)
        except SQLAlchemyError as e:
            raise StoreWriteError(f"budget {customer_id}: {e}") from e

    # ---- helpers -------------------------------------------------------------

    def _insert(self) -> Callable[..., Any]:
        dialect = self._db.dialect_name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise StoreWriteError(f"upserts are not supported on dialect {dialect!r}")


# ---------------------------
# Row <-> record mapping
# ---------------------------


def _account_values(a: Account) -> dict[str, Any]:
    return {
        "provider_id": a.provider_id,
        "unique_id": a.unique_id,
        "customer_id": a.customer_id,
        "name": a.name,
        "type": a.type,
        "booked_unscaled": a.booked.unscaled_value,
        "booked_scale": a.booked.scale,
        "booked_currency": a.booked.currency,
        "available_unscaled": a.available.unscaled_value,
        "available_scale": a.available.scale,
        "available_currency": a.available.currency,
        "identifiers": dict(a.identifiers),
        "last_refreshed": a.last_refreshed,
        "financial_institution_id": a.financial_institution_id,
        "customer_segment": a.customer_segment,
    }


def _account_from_row(r: FsAccount) -> Account:
    return Account(
        provider_id=r.provider_id,
        unique_id=r.unique_id,
        customer_id=r.customer_id,
        name=r.name,
        type=r.type,
        booked=Money(r.booked_unscaled, r.booked_scale, r.booked_currency),
        available=Money(r.available_unscaled, r.available_scale, r.available_currency),
        identifiers=dict(r.identifiers or {}),
        last_refreshed=r.last_refreshed,
        financial_institution_id=r.financial_institution_id,
        customer_segment=r.customer_segment,
    )


def _transaction_from_row(r: FsTransaction) -> Transaction:
    return Transaction(
        provider_id=r.provider_id,
        account_unique_id=r.account_unique_id,
        customer_id=r.customer_id,
        amount=Money(r.unscaled_value, r.scale, r.currency_code),
        narration=r.narration,
        booked_date=r.booked_date,
        dedup_hash=r.dedup_hash,
        identifiers=dict(r.identifiers or {}),
        types=dict(r.types or {}),
        status=r.status,
        provider_mutability=r.provider_mutability,
    )


def _snapshot_from_row(r: FsSpendingSnapshot) -> BudgetSpending:
    return BudgetSpending(
        customer_id=r.customer_id,
        month=r.month,
        total_spent=_dec(r.total_spent),
        category_spending=tuple(
            CategorySpending(category=str(c.get("category")), amount=_dec(c.get("amount")))
            for c in (r.category_spending or [])
        ),
    )


def _category_from_row(r: FsCustomCategory) -> CustomCategory:
    return CustomCategory(
        id=r.id,
        customer_id=r.customer_id,
        name=r.name,
        keywords=tuple(r.keywords or ()),
        color=r.color,
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _budget_from_row(r: FsBudget) -> Budget:
    return Budget(
        customer_id=r.customer_id,
        total_limit=_dec(r.total_limit),
        category_limits=tuple(
            CategoryLimit(category=str(c.get("category")), limit=_dec(c.get("limit")))
            for c in (r.category_limits or [])
        ),
        period=_period_from_json(r.period),
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _period_to_json(p: BudgetPeriod) -> dict[str, Any]:
    return {
        "type": p.type,
        "start_date": p.start_date.isoformat() if p.start_date else None,
        "end_date": p.end_date.isoformat() if p.end_date else None,
        "recurring_interval": p.recurring_interval,
        "recurring_unit": p.recurring_unit,
    }


def _period_from_json(raw: dict[str, Any] | None) -> BudgetPeriod | None:
    if not raw:
        return None
    return BudgetPeriod(
        type=raw.get("type") or "current-month",
        start_date=_iso_date(raw.get("start_date")),
        end_date=_iso_date(raw.get("end_date")),
        recurring_interval=raw.get("recurring_interval"),
        recurring_unit=raw.get("recurring_unit"),
    )


def _iso_date(raw: Any) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        return None


def _dec(raw: Any) -> Decimal:
    if raw is None:
        return Decimal(0)
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return Decimal(0)


__all__ = [
    "SqlStore",
    "Store",
]

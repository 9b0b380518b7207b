from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    Date,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY (rowid) columns.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: fs_accounts
# ---------------------------


class FsAccount(Base):
    __tablename__ = "fs_accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    # Session-scoped provider id; replaced on re-link. Never used as a FK.
    provider_id: Mapped[str] = mapped_column(String, nullable=False)
    # Stable id derived from institution/sort code/account number. Unique per
    # customer: two customers may link the same joint account.
    unique_id: Mapped[str] = mapped_column(String, nullable=False)
    customer_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str | None] = mapped_column(String, nullable=True)
    booked_unscaled: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    booked_scale: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    booked_currency: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    available_unscaled: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    available_scale: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_currency: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    # Opaque provider metadata, kept so unique_id can be recomputed later.
    identifiers: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    last_refreshed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    financial_institution_id: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_segment: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("customer_id", "unique_id", name="uq_fs_accounts_customer_unique"),
        Index("ix_fs_accounts_provider_id", "provider_id"),
    )


# ---------------------------
# Core: fs_transactions
# ---------------------------


class FsTransaction(Base):
    __tablename__ = "fs_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    # sha256(provider_id, account_unique_id); with customer_id, the upsert target.
    dedup_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    provider_id: Mapped[str] = mapped_column(String, nullable=False)
    account_unique_id: Mapped[str] = mapped_column(String, nullable=False)
    customer_id: Mapped[str] = mapped_column(String, nullable=False)
    unscaled_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    scale: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency_code: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    narration: Mapped[str] = mapped_column(Text, nullable=False, default="")
    booked_date: Mapped[date] = mapped_column(Date, nullable=False)
    identifiers: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    types: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    provider_mutability: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("customer_id", "dedup_hash", name="uq_fs_tx_customer_dedup"),
        ForeignKeyConstraint(
            ["customer_id", "account_unique_id"],
            ["fs_accounts.customer_id", "fs_accounts.unique_id"],
            name="fk_fs_tx_account",
        ),
        Index("ix_fs_tx_customer_booked", "customer_id", "booked_date"),
        Index("ix_fs_tx_account", "account_unique_id"),
    )


# ---------------------------
# User data: custom categories, budgets
# ---------------------------


class FsCustomCategory(Base):
    __tablename__ = "fs_custom_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#6b7280")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class FsBudget(Base):
    __tablename__ = "fs_budgets"

    customer_id: Mapped[str] = mapped_column(String, primary_key=True)
    total_limit: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # [{"category": str, "limit": "12.34"}]
    category_limits: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    # {"type": ..., "start_date": ..., "end_date": ..., ...}
    period: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------
# Derived: fs_spending_snapshots
# ---------------------------


class FsSpendingSnapshot(Base):
    __tablename__ = "fs_spending_snapshots"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(String, nullable=False)
    month: Mapped[str] = mapped_column(CHAR(7), nullable=False)  # YYYY-MM
    total_spent: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # [{"category": str, "amount": "12.34"}] in first-seen order
    category_spending: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("customer_id", "month", name="uq_fs_spending_customer_month"),
    )


__all__ = [
    "Base",
    "FsAccount",
    "FsBudget",
    "FsCustomCategory",
    "FsSpendingSnapshot",
    "FsTransaction",
]

# ruff: noqa: I001
"""Finance sync core tables.

Revision ID: 0001_fs_core
Revises: None
Create Date: 2025-10-19
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_fs_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "fs_accounts",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("unique_id", sa.String(), nullable=False),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("type", sa.String(), nullable=True),
        sa.Column("booked_unscaled", sa.BigInteger(), nullable=False),
        sa.Column("booked_scale", sa.Integer(), nullable=False),
        sa.Column("booked_currency", sa.String(8), nullable=False),
        sa.Column("available_unscaled", sa.BigInteger(), nullable=False),
        sa.Column("available_scale", sa.Integer(), nullable=False),
        sa.Column("available_currency", sa.String(8), nullable=False),
        sa.Column("identifiers", sa.JSON(), nullable=False),
        sa.Column("last_refreshed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("financial_institution_id", sa.String(), nullable=True),
        sa.Column("customer_segment", sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("customer_id", "unique_id", name="uq_fs_accounts_customer_unique"),
    )
    op.create_index("ix_fs_accounts_customer_id", "fs_accounts", ["customer_id"])
    op.create_index("ix_fs_accounts_provider_id", "fs_accounts", ["provider_id"])

    op.create_table(
        "fs_transactions",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("dedup_hash", sa.CHAR(64), nullable=False),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("account_unique_id", sa.String(), nullable=False),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column("unscaled_value", sa.BigInteger(), nullable=False),
        sa.Column("scale", sa.Integer(), nullable=False),
        sa.Column("currency_code", sa.String(8), nullable=False),
        sa.Column("narration", sa.Text(), nullable=False),
        sa.Column("booked_date", sa.Date(), nullable=False),
        sa.Column("identifiers", sa.JSON(), nullable=False),
        sa.Column("types", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("provider_mutability", sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("customer_id", "dedup_hash", name="uq_fs_tx_customer_dedup"),
        sa.ForeignKeyConstraint(
            ["customer_id", "account_unique_id"],
            ["fs_accounts.customer_id", "fs_accounts.unique_id"],
            name="fk_fs_tx_account",
        ),
    )
    op.create_index(
        "ix_fs_tx_customer_booked", "fs_transactions", ["customer_id", "booked_date"]
    )
    op.create_index("ix_fs_tx_account", "fs_transactions", ["account_unique_id"])

    op.create_table(
        "fs_custom_categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("color", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_fs_custom_categories_customer_id", "fs_custom_categories", ["customer_id"]
    )

    op.create_table(
        "fs_budgets",
        sa.Column("customer_id", sa.String(), primary_key=True),
        sa.Column("total_limit", sa.Numeric(18, 2), nullable=False),
        sa.Column("category_limits", sa.JSON(), nullable=False),
        sa.Column("period", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "fs_spending_snapshots",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column("month", sa.CHAR(7), nullable=False),
        sa.Column("total_spent", sa.Numeric(18, 2), nullable=False),
        sa.Column("category_spending", sa.JSON(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("customer_id", "month", name="uq_fs_spending_customer_month"),
    )


def downgrade() -> None:
    op.drop_table("fs_spending_snapshots")
    op.drop_table("fs_budgets")
    op.drop_index("ix_fs_custom_categories_customer_id", table_name="fs_custom_categories")
    op.drop_table("fs_custom_categories")
    op.drop_index("ix_fs_tx_account", table_name="fs_transactions")
    op.drop_index("ix_fs_tx_customer_booked", table_name="fs_transactions")
    op.drop_table("fs_transactions")
    op.drop_index("ix_fs_accounts_provider_id", table_name="fs_accounts")
    op.drop_index("ix_fs_accounts_customer_id", table_name="fs_accounts")
    op.drop_table("fs_accounts")

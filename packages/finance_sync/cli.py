# ruff: noqa: I001
"""CLI for the ``finance_sync`` package.

A Typer app (``finance-sync``) over :mod:`finance_sync.api` and friends.
Environment variables (``DATABASE_URL``, ``TINK_*``, ``FS_*``) are loaded from
a local ``.env`` via ``python-dotenv`` in the root callback, which also
configures logging. Commands print ``Error: ...`` to stderr and exit 1 on
failure.
"""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .config import Settings
from .logging_setup import configure_logging


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Sync open-banking accounts and derive spending and recurring-payment insights.",
)

DATABASE_URL_OPTION = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _settings(database_url: str | None) -> Settings:
    settings = Settings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)
    return settings


@app.callback()
def _root(
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Overrides FINANCE_SYNC_LOG_LEVEL.")
    ] = None,
) -> None:
    # .env in CWD; existing environment wins
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


@app.command("init-db")
def init_db_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Create all tables directly from the ORM models (use Alembic in production)."""

    from db.client import Database

    settings = _settings(database_url)
    try:
        with Database(settings.require_database_url()) as database:
            database.create_all()
    except Exception as e:
        raise _fail(f"init-db failed: {e}") from e
    typer.echo("Database initialized.")


@app.command("sync")
def sync_cmd(
    customer_id: Annotated[str, typer.Argument(help="Customer to sync.")],
    code: Annotated[str, typer.Option("--code", help="Authorization code from the provider.")],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    max_workers: Annotated[
        int | None, typer.Option("--max-workers", min=1, max=32, help="Concurrent accounts.")
    ] = None,
) -> None:
    """Exchange CODE, import accounts and transactions, refresh derived data."""

    from db.client import Database

    from .api import Pipeline
    from .errors import AuthExchangeError, FinanceSyncError
    from .money import format_money

    settings = _settings(database_url)
    try:
        url = settings.require_database_url()
    except RuntimeError as e:
        raise _fail(str(e)) from e

    with Database(url) as database:
        try:
            pipeline = Pipeline.from_settings(settings, database, max_workers=max_workers)
        except RuntimeError as e:
            raise _fail(str(e)) from e
        try:
            result = pipeline.sync(customer_id, code)
        except AuthExchangeError as e:
            raise _fail(f"authorization failed: {e}") from e
        except FinanceSyncError as e:
            raise _fail(f"sync failed: {e}") from e

    typer.echo(result.summary())
    if result.skipped_records or result.store_write_failures:
        typer.echo(
            f"{result.skipped_records} malformed records skipped, "
            f"{result.store_write_failures} store writes failed"
        )
    for err in result.per_account_errors:
        typer.echo(f"  account {err.account_unique_id}: {err.message}")
    for message in result.derived_errors:
        typer.echo(f"  derived data: {message}")
    if result.months_recalculated:
        typer.echo("Spending recalculated for " + ", ".join(result.months_recalculated))
    for p in result.recurring_payments:
        typer.echo(
            f"  {p.pattern}: {format_money(p.average_amount)} every {p.interval_days} days, "
            f"next {p.next_payment.isoformat()}"
        )


@app.command("spending")
def spending_cmd(
    customer_id: Annotated[str, typer.Argument(help="Customer id.")],
    month: Annotated[
        str | None, typer.Option("--month", help="YYYY-MM (default: current month).")
    ] = None,
    currency: Annotated[str, typer.Option("--currency", help="Display currency code.")] = "",
    recalculate: Annotated[
        bool, typer.Option("--recalculate", help="Recompute the snapshot first.")
    ] = False,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Print the spending snapshot for a month."""

    from db.client import Database

    from .categories import category_label
    from .money import format_money
    from .spending import SpendAggregator, parse_month
    from .store import SqlStore

    settings = _settings(database_url)
    try:
        url = settings.require_database_url()
    except RuntimeError as e:
        raise _fail(str(e)) from e

    with Database(url) as database:
        store = SqlStore(database)
        aggregator = SpendAggregator(store)
        key = month or aggregator.current_month()
        try:
            year, mon = parse_month(key)
        except ValueError as e:
            raise _fail(str(e)) from e
        if recalculate:
            snapshot = aggregator.recalculate_month(customer_id, year, mon)
        else:
            snapshot = aggregator.get_spending(customer_id, key)
        custom = store.list_custom_categories(customer_id)

    typer.echo(f"{snapshot.month}: {format_money(snapshot.total_spent, currency)} spent")
    for item in sorted(snapshot.category_spending, key=lambda c: c.amount, reverse=True):
        label = category_label(item.category, custom)
        typer.echo(f"  {label}: {format_money(item.amount, currency)}")


@app.command("recurring")
def recurring_cmd(
    customer_id: Annotated[str, typer.Argument(help="Customer id.")],
    show_all: Annotated[
        bool, typer.Option("--all", help="Include every overdue payment.")
    ] = False,
    currency: Annotated[str, typer.Option("--currency", help="Display currency code.")] = "",
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """List detected recurring payments, soonest first."""

    from datetime import date

    from db.client import Database

    from .categories import category_label
    from .models import TransactionFilter
    from .money import format_money
    from .recurring import days_until_label, detect, upcoming
    from .store import SqlStore

    settings = _settings(database_url)
    try:
        url = settings.require_database_url()
    except RuntimeError as e:
        raise _fail(str(e)) from e

    with Database(url) as database:
        store = SqlStore(database)
        custom = store.list_custom_categories(customer_id)
        payments = detect(
            store.query_transactions(customer_id, TransactionFilter(expenses_only=True)), custom
        )

    today = date.today()
    if not show_all:
        payments = upcoming(payments, today)
    if not payments:
        typer.echo("No recurring payments detected")
        return
    for p in payments:
        typer.echo(
            f"{p.pattern} [{category_label(p.category, custom)}] "
            f"{format_money(p.average_amount, currency)} every {p.interval_days} days, "
            f"next {p.next_payment.isoformat()} ({days_until_label(p.next_payment, today)})"
        )


@app.command("categorize")
def categorize_cmd(
    narration: Annotated[str, typer.Argument(help="Transaction narration to classify.")],
    customer_id: Annotated[
        str | None,
        typer.Option("--customer-id", help="Include this customer's custom categories."),
    ] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Print the category key and label for NARRATION."""

    from .categories import categorize, category_label

    custom = []
    if customer_id:
        from db.client import Database

        from .store import SqlStore

        settings = _settings(database_url)
        try:
            url = settings.require_database_url()
        except RuntimeError as e:
            raise _fail(str(e)) from e
        with Database(url) as database:
            custom = SqlStore(database).list_custom_categories(customer_id)

    key = categorize(narration, custom)
    typer.echo(f"{key}\t{category_label(key, custom)}")


def main() -> None:  # pragma: no cover - console entrypoint
    app()


__all__ = ["app", "main"]

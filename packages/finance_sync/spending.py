"""Monthly spend aggregation.

A snapshot covers one calendar month (``"YYYY-MM"``) for one customer:
the absolute sum of every expense booked in that month, plus a per-category
breakdown in first-seen order. Snapshots are derived data; recomputing one
replaces the stored copy wholesale.
"""

from __future__ import annotations

import calendar
from collections.abc import Callable, Iterable, Sequence
from datetime import date
from decimal import Decimal

from .categories import categorize
from .logging_setup import get_logger
from .models import BudgetSpending, CategorySpending, CustomCategory, Transaction, TransactionFilter
from .money import round_cents
from .store import Store

_logger = get_logger("finance_sync.spending")


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def parse_month(month: str) -> tuple[int, int]:
    """Parse ``"YYYY-MM"`` into ``(year, month)``; raises ``ValueError`` otherwise."""

    parts = (month or "").strip().split("-")
    if len(parts) != 2 or len(parts[0]) != 4 or len(parts[1]) != 2:
        raise ValueError(f"month must be YYYY-MM, got {month!r}")
    try:
        year, mon = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"month must be YYYY-MM, got {month!r}") from None
    if not 1 <= mon <= 12:
        raise ValueError(f"month out of range in {month!r}")
    return year, mon


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month, both inclusive."""

    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def summarize_spending(
    customer_id: str,
    month: str,
    transactions: Iterable[Transaction],
    custom_categories: Sequence[CustomCategory] | None = None,
) -> BudgetSpending:
    """Fold expenses into a :class:`BudgetSpending`. Income is ignored."""

    total = Decimal(0)
    by_category: dict[str, Decimal] = {}
    for tx in transactions:
        if not tx.is_expense:
            continue
        amount = abs(tx.amount.amount)
        total += amount
        key = categorize(tx.narration, custom_categories)
        by_category[key] = by_category.get(key, Decimal(0)) + amount

    return BudgetSpending(
        customer_id=customer_id,
        month=month,
        total_spent=round_cents(total),
        category_spending=tuple(
            CategorySpending(category=k, amount=round_cents(v)) for k, v in by_category.items()
        ),
    )


class SpendAggregator:
    """Recomputes and serves monthly spending snapshots from stored transactions."""

    def __init__(self, store: Store, *, clock: Callable[[], date] | None = None) -> None:
        self._store = store
        self._clock = clock or date.today

    def recalculate_month(self, customer_id: str, year: int, month: int) -> BudgetSpending:
        first, last = month_bounds(year, month)
        txs = self._store.query_transactions(
            customer_id,
            TransactionFilter(start_date=first, end_date=last, expenses_only=True),
        )
        key = f"{year:04d}-{month:02d}"
        snapshot = summarize_spending(
            customer_id, key, txs, self._store.list_custom_categories(customer_id)
        )
        self._store.replace_spending_snapshot(customer_id, key, snapshot)
        _logger.info(
            "spending snapshot %s for %s: %s across %d categories",
            key,
            customer_id,
            snapshot.total_spent,
            len(snapshot.category_spending),
        )
        return snapshot

    def recalculate_months(self, customer_id: str, months: Iterable[str]) -> list[str]:
        """Recalculate each distinct ``YYYY-MM`` in ``months``; returns them sorted."""

        done: list[str] = []
        for key in sorted(set(months)):
            year, mon = parse_month(key)
            self.recalculate_month(customer_id, year, mon)
            done.append(key)
        return done

    def recalculate_stored(self, customer_id: str) -> list[str]:
        """Recalculate every month that already has a snapshot, plus the current one.

        Run after the customer's category mapping changes.
        """

        months = set(self._store.list_snapshot_months(customer_id))
        return self.recalculate_months(customer_id, months | {self.current_month()})

    def current_month(self) -> str:
        return month_key(self._clock())

    def get_spending(self, customer_id: str, month: str) -> BudgetSpending:
        """Stored snapshot for ``month``, computed on demand when missing."""

        snapshot = self._store.get_spending_snapshot(customer_id, month)
        if snapshot is not None:
            return snapshot
        year, mon = parse_month(month)
        return self.recalculate_month(customer_id, year, mon)


__all__ = [
    "SpendAggregator",
    "month_bounds",
    "month_key",
    "parse_month",
    "summarize_spending",
]

"""Recurring-payment detection over stored transactions.

Expenses are grouped by normalized narration (lowercased, digits and
punctuation removed). A group is recurring when it has at least two
payments, every gap between consecutive payments lies within 7 days of the
mean gap (inclusive), and the mean gap is between 7 and 365 days.

Gap arithmetic is exact (``fractions.Fraction``) so a gap sitting exactly
7 days from the mean is accepted regardless of how the mean divides.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from decimal import Decimal
from fractions import Fraction

from .categories import categorize
from .models import CustomCategory, RecurringPayment, Transaction, normalize_narration
from .money import round_cents

GAP_TOLERANCE_DAYS = 7
MIN_INTERVAL_DAYS = 7
MAX_INTERVAL_DAYS = 365
MIN_PATTERN_LENGTH = 4
MIN_OCCURRENCES = 2


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


def title_case(pattern: str) -> str:
    """Upper-case the first character of each space-separated word."""

    return " ".join(w[:1].upper() + w[1:] for w in pattern.split(" "))


def _regular_interval(gaps: Sequence[int]) -> Fraction | None:
    mean = Fraction(sum(gaps), len(gaps))
    if not all(abs(g - mean) <= GAP_TOLERANCE_DAYS for g in gaps):
        return None
    if not MIN_INTERVAL_DAYS <= mean <= MAX_INTERVAL_DAYS:
        return None
    return mean


def detect(
    transactions: Iterable[Transaction],
    custom_categories: Sequence[CustomCategory] | None = None,
) -> list[RecurringPayment]:
    """Return recurring payments sorted by ascending ``next_payment``."""

    groups: dict[str, list[Transaction]] = {}
    for tx in transactions:
        if not tx.is_expense:
            continue
        pattern = normalize_narration(tx.narration)
        if len(pattern) < MIN_PATTERN_LENGTH:
            continue
        groups.setdefault(pattern, []).append(tx)

    found: list[RecurringPayment] = []
    for pattern, txs in groups.items():
        if len(txs) < MIN_OCCURRENCES:
            continue
        txs.sort(key=lambda t: t.booked_date)
        gaps = [(b.booked_date - a.booked_date).days for a, b in zip(txs, txs[1:])]
        mean = _regular_interval(gaps)
        if mean is None:
            continue

        last = txs[-1]
        interval = _round_half_up(mean)
        total = sum((abs(t.amount.amount) for t in txs), Decimal(0))
        found.append(
            RecurringPayment(
                pattern=title_case(pattern),
                category=categorize(last.narration, custom_categories),
                average_amount=round_cents(total / len(txs)),
                count=len(txs),
                interval_days=interval,
                last_payment=last.booked_date,
                next_payment=last.booked_date + timedelta(days=interval),
                contributing_transaction_ids=tuple(t.provider_id for t in txs),
            )
        )

    found.sort(key=lambda p: (p.next_payment, p.pattern))
    return found


def upcoming(payments: Sequence[RecurringPayment], today: date) -> list[RecurringPayment]:
    """Everything due today or later, preceded by at most one overdue payment.

    ``payments`` is expected in ``detect()`` order; the overdue entry kept is
    the first one in that order.
    """

    overdue = [p for p in payments if p.next_payment < today]
    current = [p for p in payments if p.next_payment >= today]
    return overdue[:1] + current


def days_until_label(next_payment: date, today: date) -> str:
    diff = (next_payment - today).days
    if diff == 0:
        return "Today"
    if diff == 1:
        return "in 1 day"
    if diff < 0:
        return "Overdue"
    return f"in {diff} days"


__all__ = [
    "GAP_TOLERANCE_DAYS",
    "MAX_INTERVAL_DAYS",
    "MIN_INTERVAL_DAYS",
    "days_until_label",
    "detect",
    "title_case",
    "upcoming",
]

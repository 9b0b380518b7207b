"""Integer-backed monetary values.

Providers report amounts as ``{unscaledValue, scale}`` pairs where the real
value is ``unscaledValue * 10**-scale``. Values stay integers everywhere in the
pipeline; conversion to :class:`~decimal.Decimal` happens only when a caller
needs an amount (aggregation, formatting). Floats are never involved.

Every helper here is total: missing or non-numeric parts produce a zero
amount instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_CENT = Decimal("0.01")

_CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "AUD": "A$",
    "CAD": "C$",
    "CHF": "Fr",
    "CNY": "¥",
    "INR": "₹",
    "NGN": "₦",
}


def _to_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    s = str(raw).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        pass
    # Tolerate "12345.0"-style strings as long as they are integral.
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not d.is_finite() or d != d.to_integral_value():
        return None
    return int(d)


def _to_decimal(raw: Any) -> Decimal:
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else Decimal(0)
    if raw is None or isinstance(raw, (bool, float)):
        return Decimal(0)
    try:
        d = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)
    return d if d.is_finite() else Decimal(0)


def scale_amount(unscaled_value: Any, scale: Any) -> Decimal:
    """Return ``unscaled_value * 10**-scale`` as an exact ``Decimal``.

    Missing or non-numeric inputs yield ``Decimal(0)``.
    """

    u = _to_int(unscaled_value)
    s = _to_int(scale)
    if u is None or s is None:
        return Decimal(0)
    return Decimal(u).scaleb(-s)


def round_cents(amount: Decimal) -> Decimal:
    """Quantize to cents, half-up."""

    q = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    # Drop the sign of a rounded-away negative zero ("-0.00").
    return q if q != 0 else Decimal("0.00")


def format_amount(unscaled_value: Any, scale: Any) -> str:
    """Format an unscaled/scale pair as a plain 2dp string (``"123.45"``)."""

    return f"{round_cents(scale_amount(unscaled_value, scale)):.2f}"


def format_money(amount: Any, currency: str | None = None) -> str:
    """Format an amount for display with the currency symbol when known.

    ``format_money(Decimal("-1234.5"), "GBP") == "-£1,234.50"``. Unknown codes
    are appended (``"12.00 XYZ"``); an empty currency yields the bare number.
    """

    d = round_cents(_to_decimal(amount))
    sign = "-" if d < 0 else ""
    body = f"{abs(d):,.2f}"
    code = (currency or "").strip().upper()
    if not code:
        return f"{sign}{body}"
    symbol = _CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{sign}{body} {code}"
    return f"{sign}{symbol}{body}"


@dataclass(frozen=True, slots=True)
class Money:
    """An exact monetary value: ``unscaled_value * 10**-scale`` in ``currency``."""

    unscaled_value: int = 0
    scale: int = 0
    currency: str = ""

    @classmethod
    def from_parts(cls, unscaled_value: Any, scale: Any, currency: Any = "") -> Money:
        """Lenient constructor; unparseable parts collapse to zero."""

        u = _to_int(unscaled_value)
        s = _to_int(scale)
        cur = str(currency).strip().upper() if currency else ""
        if u is None or s is None:
            return cls(0, 0, cur)
        return cls(u, s, cur)

    @property
    def amount(self) -> Decimal:
        return scale_amount(self.unscaled_value, self.scale)

    @property
    def is_expense(self) -> bool:
        return self.unscaled_value < 0

    def formatted(self) -> str:
        return format_amount(self.unscaled_value, self.scale)

    def display(self) -> str:
        return format_money(self.amount, self.currency)


__all__ = [
    "Money",
    "format_amount",
    "format_money",
    "round_cents",
    "scale_amount",
]

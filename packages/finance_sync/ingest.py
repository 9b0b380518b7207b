"""Ingestion boundary: raw provider payloads -> typed records.

Provider payloads are validated with pydantic models that mirror the Tink v2
shapes. Anything structurally unusable (no id, no account reference, no
booked date) raises :class:`finance_sync.errors.ValidationError`; the
orchestrator skips that record and keeps going. Monetary fields are lenient by
contract: a missing or garbled ``unscaledValue``/``scale`` becomes zero.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import ValidationError
from .identity import compute_account_unique_id, compute_transaction_dedup_key
from .models import Account, Transaction
from .money import Money


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


class AmountValuePayload(_Payload):
    unscaled_value: Any = None
    scale: Any = None


class AmountPayload(_Payload):
    value: AmountValuePayload | None = None
    currency_code: str | None = None

    def to_money(self) -> Money:
        v = self.value or AmountValuePayload()
        return Money.from_parts(v.unscaled_value, v.scale, self.currency_code or "")


class BalancePayload(_Payload):
    amount: AmountPayload | None = None


class BalancesPayload(_Payload):
    booked: BalancePayload | None = None
    available: BalancePayload | None = None


class AccountPayload(_Payload):
    id: str = Field(min_length=1)
    name: str | None = None
    type: str | None = None
    balances: BalancesPayload | None = None
    identifiers: dict[str, Any] = Field(default_factory=dict)
    dates: dict[str, Any] = Field(default_factory=dict)
    financial_institution_id: str | None = None
    customer_segment: str | None = None

    def sort_code_parts(self) -> tuple[Any, Any]:
        block = self.identifiers.get("sortCode")
        if not isinstance(block, Mapping):
            return None, None
        return block.get("code"), block.get("accountNumber")


class DescriptionsPayload(_Payload):
    original: str | None = None
    display: str | None = None


class TransactionDatesPayload(_Payload):
    booked: date
    value: date | None = None


class TransactionPayload(_Payload):
    id: str = Field(min_length=1)
    account_id: str = Field(min_length=1)
    amount: AmountPayload | None = None
    descriptions: DescriptionsPayload | None = None
    dates: TransactionDatesPayload
    identifiers: dict[str, Any] = Field(default_factory=dict)
    types: dict[str, Any] = Field(default_factory=dict)
    status: str | None = None
    provider_mutability: str | None = None

    def narration(self) -> str:
        d = self.descriptions or DescriptionsPayload()
        return d.original or d.display or ""


def _balance_money(balance: BalancePayload | None) -> Money:
    if balance is None or balance.amount is None:
        return Money()
    return balance.amount.to_money()


def _parse_timestamp(raw: Any) -> datetime | None:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    s = raw.strip()
    # fromisoformat() on 3.11+ understands a trailing "Z".
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def _record_id(payload: Mapping[str, Any]) -> str | None:
    rid = payload.get("id") if isinstance(payload, Mapping) else None
    return str(rid) if rid is not None else None


def parse_account(payload: Mapping[str, Any], *, customer_id: str) -> Account:
    """Validate a provider account payload and derive its stable id."""

    try:
        p = AccountPayload.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"malformed account payload: {e.error_count()} error(s)",
            record_id=_record_id(payload),
        ) from e

    sort_code, account_number = p.sort_code_parts()
    balances = p.balances or BalancesPayload()
    return Account(
        provider_id=p.id,
        unique_id=compute_account_unique_id(p.financial_institution_id, sort_code, account_number),
        customer_id=customer_id,
        name=p.name,
        type=p.type,
        booked=_balance_money(balances.booked),
        available=_balance_money(balances.available),
        identifiers=dict(p.identifiers),
        last_refreshed=_parse_timestamp(p.dates.get("lastRefreshed")),
        financial_institution_id=p.financial_institution_id,
        customer_segment=p.customer_segment,
    )


def parse_transaction(
    payload: Mapping[str, Any],
    *,
    customer_id: str,
    account_unique_id: str,
) -> Transaction:
    """Validate a provider transaction payload and attach stable identity."""

    try:
        p = TransactionPayload.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"malformed transaction payload: {e.error_count()} error(s)",
            record_id=_record_id(payload),
        ) from e

    return Transaction(
        provider_id=p.id,
        account_unique_id=account_unique_id,
        customer_id=customer_id,
        amount=p.amount.to_money() if p.amount is not None else Money(),
        narration=p.narration(),
        booked_date=p.dates.booked,
        dedup_hash=compute_transaction_dedup_key(p.id, account_unique_id),
        identifiers=dict(p.identifiers),
        types=dict(p.types),
        status=p.status,
        provider_mutability=p.provider_mutability,
    )


__all__ = [
    "AccountPayload",
    "TransactionPayload",
    "parse_account",
    "parse_transaction",
]

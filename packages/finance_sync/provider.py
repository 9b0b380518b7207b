"""Contract for the open-banking provider client consumed by the sync pipeline.

Implementations return raw provider payloads (mappings). Turning those into
typed records is the job of :mod:`finance_sync.ingest`, so a provider adapter
stays a thin transport layer.

Errors
------
- ``exchange_token`` raises :class:`~finance_sync.errors.AuthExchangeError`
  when the provider rejects the code.
- ``list_accounts``/``list_transactions`` raise
  :class:`~finance_sync.errors.ProviderFetchError` on transport or HTTP errors.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, NamedTuple, Protocol, runtime_checkable


class TransactionPage(NamedTuple):
    """One page of raw transaction payloads plus the cursor for the next page."""

    items: Sequence[Mapping[str, Any]]
    next_page_token: str | None = None


@runtime_checkable
class BankProvider(Protocol):
    def exchange_token(self, code: str) -> str: ...

    def list_accounts(self, access_token: str) -> Sequence[Mapping[str, Any]]: ...

    def list_transactions(
        self,
        access_token: str,
        account_id: str,
        page_token: str | None = None,
    ) -> TransactionPage: ...


__all__ = ["BankProvider", "TransactionPage"]

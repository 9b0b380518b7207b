"""Error taxonomy for the sync pipeline.

Only :class:`AuthExchangeError` crosses the orchestrator boundary. The other
errors are raised at the record/account level and collected into
:class:`~finance_sync.models.SyncResult` by the orchestrator.
"""

from __future__ import annotations


class FinanceSyncError(Exception):
    """Base class for pipeline errors."""


class AuthExchangeError(FinanceSyncError):
    """The provider rejected the authorization code. Aborts the sync."""


class ProviderFetchError(FinanceSyncError):
    """A provider data call failed (transport error, non-2xx, bad body)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StoreWriteError(FinanceSyncError):
    """A single record could not be written to the store."""


class StoreReadError(FinanceSyncError):
    """A store query failed."""


class ValidationError(FinanceSyncError):
    """A provider payload is malformed and cannot become a typed record."""

    def __init__(self, message: str, *, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


__all__ = [
    "AuthExchangeError",
    "FinanceSyncError",
    "ProviderFetchError",
    "StoreReadError",
    "StoreWriteError",
    "ValidationError",
]

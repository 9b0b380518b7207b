"""Runtime settings read from the environment.

The CLI loads a local ``.env`` (``python-dotenv``) before calling
:meth:`Settings.from_env`; library code never reads the environment itself.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .sync import DEFAULT_MAX_WORKERS
from .tink_client import DEFAULT_BASE_URL

MAX_WORKERS_CAP = 32
DEFAULT_PROVIDER_TIMEOUT_SEC = 30.0


def _resolve_max_workers(raw: str | None) -> int:
    """Parse ``FS_SYNC_MAX_WORKERS``; invalid values fall back to the default,
    valid ones are clamped to ``1..32``."""

    try:
        n = int(raw) if raw else None
    except ValueError:
        n = None
    if n is None:
        return DEFAULT_MAX_WORKERS
    return max(1, min(n, MAX_WORKERS_CAP))


def _resolve_timeout(raw: str | None) -> float:
    try:
        t = float(raw) if raw else None
    except ValueError:
        t = None
    if t is None or t <= 0:
        return DEFAULT_PROVIDER_TIMEOUT_SEC
    return t


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    tink_client_id: str | None = None
    tink_client_secret: str | None = None
    tink_redirect_uri: str = ""
    tink_base_url: str = DEFAULT_BASE_URL
    max_workers: int = DEFAULT_MAX_WORKERS
    provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT_SEC
    log_level: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        e = os.environ if env is None else env
        return cls(
            database_url=e.get("DATABASE_URL") or None,
            tink_client_id=e.get("TINK_CLIENT_ID") or None,
            tink_client_secret=e.get("TINK_CLIENT_SECRET") or None,
            tink_redirect_uri=e.get("TINK_REDIRECT_URI") or "",
            tink_base_url=e.get("TINK_BASE_URL") or DEFAULT_BASE_URL,
            max_workers=_resolve_max_workers(e.get("FS_SYNC_MAX_WORKERS")),
            provider_timeout=_resolve_timeout(e.get("FS_PROVIDER_TIMEOUT_SEC")),
            log_level=e.get("FINANCE_SYNC_LOG_LEVEL") or None,
        )

    def require_database_url(self) -> str:
        if not self.database_url:
            raise RuntimeError("DATABASE_URL is not set")
        return self.database_url


__all__ = ["Settings"]

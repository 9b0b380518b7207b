from __future__ import annotations

import pytest

from finance_sync.config import Settings
from finance_sync.tink_client import DEFAULT_BASE_URL


def test_defaults_from_empty_env() -> None:
    s = Settings.from_env({})
    assert s.database_url is None
    assert s.tink_base_url == DEFAULT_BASE_URL
    assert s.max_workers == 4
    assert s.provider_timeout == 30.0
    with pytest.raises(RuntimeError):
        s.require_database_url()


def test_values_from_env() -> None:
    s = Settings.from_env(
        {
            "DATABASE_URL": "sqlite+pysqlite:///x.db",
            "TINK_CLIENT_ID": "cid",
            "TINK_CLIENT_SECRET": "secret",
            "TINK_REDIRECT_URI": "https://app.test/cb",
            "FS_SYNC_MAX_WORKERS": "8",
            "FS_PROVIDER_TIMEOUT_SEC": "12.5",
            "FINANCE_SYNC_LOG_LEVEL": "DEBUG",
        }
    )
    assert s.require_database_url() == "sqlite+pysqlite:///x.db"
    assert (s.tink_client_id, s.tink_client_secret) == ("cid", "secret")
    assert s.max_workers == 8
    assert s.provider_timeout == 12.5
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("raw", "expected"), [("0", 1), ("-3", 1), ("100", 32), ("abc", 4), ("", 4)]
)
def test_max_workers_clamped(raw: str, expected: int) -> None:
    assert Settings.from_env({"FS_SYNC_MAX_WORKERS": raw}).max_workers == expected


@pytest.mark.parametrize("raw", ["0", "-1", "soon"])
def test_invalid_timeout_uses_default(raw: str) -> None:
    assert Settings.from_env({"FS_PROVIDER_TIMEOUT_SEC": raw}).provider_timeout == 30.0


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///env.db")
    assert Settings.from_env().database_url == "sqlite+pysqlite:///env.db"

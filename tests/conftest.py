"""Pytest configuration shared by the suite.

Puts the workspace packages on ``sys.path`` (so ``finance_sync``, ``db`` and
``tests.helpers`` import without an install) and provides a file-backed
SQLite store per test.
"""

# ruff: noqa: E402
from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
# `packages/` and `libs/db/src` precede the repo root so local packages resolve first.
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import Database
from finance_sync.store import SqlStore
from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's shell/.env settings out of the tests."""

    for name in (
        "DATABASE_URL",
        "TINK_CLIENT_ID",
        "TINK_CLIENT_SECRET",
        "TINK_REDIRECT_URI",
        "TINK_BASE_URL",
        "FS_SYNC_MAX_WORKERS",
        "FS_PROVIDER_TIMEOUT_SEC",
        "FINANCE_SYNC_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    db = bootstrap_sqlite_db(tmp_path / "finance.db")
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(database: Database) -> SqlStore:
    return SqlStore(database)

"""SQLAlchemy engine/session handle for the workspace database.

Usage
-----
from db.client import Database

db = Database("sqlite+pysqlite:///finance.db")
db.open()
with db.session_scope() as s:
    s.execute(...)
db.close()

The handle is constructed explicitly by the composition root (CLI or host
application) and passed to the code that needs it. There is no module-level
engine cache: two handles with different URLs can coexist in one process.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


class Database:
    """Owns one SQLAlchemy engine and its session factory.

    ``open()`` creates the engine; ``close()`` disposes the pool. Using the
    handle as a context manager does both.
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self._echo = echo
        self._engine: Engine | None = None
        self._session_maker: sessionmaker[Session] | None = None

    # ---- lifecycle -----------------------------------------------------------

    def open(self) -> Database:
        if self._engine is not None:
            return self
        engine = create_engine(self.url, pool_pre_ping=True, echo=self._echo)
        if engine.dialect.name == "sqlite":
            _install_sqlite_pragmas(engine)
        self._session_maker = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
        self._engine = engine
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_maker = None

    def __enter__(self) -> Database:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    # ---- access --------------------------------------------------------------

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database handle is not open; call open() first")
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def session(self) -> Session:
        """Return a new session bound to this handle's engine."""

        if self._session_maker is None:
            raise RuntimeError("Database handle is not open; call open() first")
        return self._session_maker()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""

        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create every mapped table (tests and ``init-db``; production uses Alembic)."""

        from .models.finance import Base

        Base.metadata.create_all(bind=self.engine)


def _install_sqlite_pragmas(engine: Engine) -> None:
    # Enforce FKs and wait on concurrent writers instead of failing immediately.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys = ON")
        cur.execute("PRAGMA busy_timeout = 10000")
        cur.close()


__all__ = [
    "Database",
]

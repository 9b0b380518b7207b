"""Logging for the ``finance_sync`` package.

Two helpers:

- ``configure_logging(level)`` installs one ``StreamHandler`` on the
  ``"finance_sync"`` logger. Entrypoints (the CLI, a host service) call it at
  startup; later calls are ignored unless ``force=True``.
- ``get_logger(name)`` returns a module logger. Until logging is configured
  the package logger carries a ``NullHandler`` so library use stays silent.

Sync work runs on pool threads named ``fs-sync_N``; the default format
includes the thread name so interleaved account logs can be told apart.
Modules log through ``get_logger("finance_sync.<module>")`` and never attach
handlers themselves.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "finance_sync"
_LEVEL_ENV = "FINANCE_SYNC_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s"

_handler: logging.Handler | None = None


def _parse_level(level: int | str | None) -> int:
    """``int`` passes through; names and numeric strings are parsed; ``None``
    falls back to ``FINANCE_SYNC_LOG_LEVEL`` and then ``INFO``."""

    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
    force: bool = False,
) -> None:
    """Attach the package handler once.

    Parameters
    ----------
    level:
        Level as ``int`` or name. ``None`` reads ``FINANCE_SYNC_LOG_LEVEL``,
        defaulting to ``INFO``.
    fmt:
        Format string; defaults to :data:`DEFAULT_FORMAT`.
    stream:
        Destination of the ``StreamHandler``.
    force:
        Replace a handler installed by an earlier call.
    """

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        if not force:
            return
        logger.removeHandler(_handler)

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolved)
    # The package handler is the only sink; don't duplicate through root.
    logger.propagate = False
    _handler = handler


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["DEFAULT_FORMAT", "configure_logging", "get_logger"]

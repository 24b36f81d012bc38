"""Operational logging for the relay and the client.

Server-side failures never travel over the wire; they are reported here, on
standard error.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_LOG_LEVEL = "INFO"

_logging_initialized: bool = False


def resolve_log_level(level: str | None = None) -> int:
    """Map a level name (or ``$SOCKONSOLE_LOG_LEVEL``) to a ``logging`` constant."""
    name = (level or os.environ.get("SOCKONSOLE_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    resolved = logging.getLevelName(name)
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def setup_logging(level: str | None = None) -> None:
    """Attach a stderr handler to the ``sockonsole`` logger.

    This is idempotent - calling it multiple times only updates the level.
    """
    global _logging_initialized

    package_logger = logging.getLogger("sockonsole")
    package_logger.setLevel(resolve_log_level(level))

    if _logging_initialized:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.propagate = False

    _logging_initialized = True


__all__ = ["DEFAULT_LOG_LEVEL", "LOG_FORMAT", "resolve_log_level", "setup_logging"]

"""Tests for operational logging setup."""

from __future__ import annotations

import logging

import pytest

from sockonsole import log


@pytest.fixture
def package_logger(monkeypatch):
    logger = logging.getLogger("sockonsole")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.setattr(log, "_logging_initialized", False)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.mark.parametrize(
    ("level", "expected"),
    [
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
        ("nonsense", logging.INFO),
        (None, logging.INFO),
    ],
)
def test_resolve_log_level(monkeypatch, level: str | None, expected: int) -> None:
    monkeypatch.delenv("SOCKONSOLE_LOG_LEVEL", raising=False)

    assert log.resolve_log_level(level) == expected


def test_resolve_log_level_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("SOCKONSOLE_LOG_LEVEL", "error")

    assert log.resolve_log_level() == logging.ERROR
    assert log.resolve_log_level("debug") == logging.DEBUG


def test_setup_logging_is_idempotent(package_logger: logging.Logger) -> None:
    before = len(package_logger.handlers)

    log.setup_logging("INFO")
    log.setup_logging("DEBUG")

    assert len(package_logger.handlers) == before + 1
    assert package_logger.level == logging.DEBUG
    assert package_logger.propagate is False

"""Shared relay wire and timing constants."""

from __future__ import annotations

SENTINEL = b"\nEND_RESPONSE\n"
STOP_TOKEN = b"stop"

DECODE_CHUNK_BYTES = 1024
CONTROL_READ_BYTES = 10

MAX_LINE_BYTES = 4 * 1024 * 1024  # 4 MiB per command or output line
STREAM_LIMIT_BYTES = MAX_LINE_BYTES + 1  # Include trailing newline separator.

ACCEPT_ERROR_BACKOFF_SECONDS = 0.05
LISTEN_BACKLOG = 8
PROCESS_EXIT_GRACE_SECONDS = 2.0

__all__ = [
    "ACCEPT_ERROR_BACKOFF_SECONDS",
    "CONTROL_READ_BYTES",
    "DECODE_CHUNK_BYTES",
    "LISTEN_BACKLOG",
    "MAX_LINE_BYTES",
    "PROCESS_EXIT_GRACE_SECONDS",
    "SENTINEL",
    "STOP_TOKEN",
    "STREAM_LIMIT_BYTES",
]

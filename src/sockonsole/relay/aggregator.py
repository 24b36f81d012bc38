"""Collects managed-process output into quiet-period delimited response batches."""

from __future__ import annotations

import asyncio
import contextlib
import logging

logger = logging.getLogger(__name__)


def strip_line_delimiter(line: bytes) -> bytes:
    """Drop one trailing ``\\n`` or ``\\r\\n``."""
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line


class OutputAggregator:
    """Merges several output streams into one ordered line queue.

    Each attached stream gets its own reader task. Lines are queued in the
    order each reader sees them, without recording which stream produced
    them. A reader stops for good at end of stream or on a read error; the
    remaining readers keep feeding the queue.

    Usage::

        aggregator = OutputAggregator()
        aggregator.attach("stdout", process.stdout)
        aggregator.attach("stderr", process.stderr)
        batch = await aggregator.collect_batch(100)
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()
        self._readers: dict[str, asyncio.Task[None]] = {}

    @property
    def live_streams(self) -> tuple[str, ...]:
        """Names of streams whose reader is still running."""
        return tuple(name for name, task in self._readers.items() if not task.done())

    @property
    def pending_lines(self) -> int:
        """Number of lines queued but not yet collected."""
        return self._queue.qsize()

    def attach(self, name: str, stream: asyncio.StreamReader) -> None:
        """Start a background reader for *stream*."""
        if name in self._readers:
            msg = f"Stream {name!r} is already attached"
            raise RuntimeError(msg)
        self._readers[name] = asyncio.create_task(
            self._read_lines(name, stream),
            name=f"output-reader-{name}",
        )

    async def _read_lines(self, name: str, stream: asyncio.StreamReader) -> None:
        try:
            while True:
                line = await stream.readline()
                if not line:
                    logger.info("Managed process closed %s; reader stopped", name)
                    return
                self._queue.put_nowait(strip_line_delimiter(line))
        except (ValueError, OSError) as exc:
            # ValueError: a single line exceeded the stream limit.
            logger.warning("Reader for %s stopped after read error: %s", name, exc)

    async def collect_batch(self, timeout_ms: int) -> bytes:
        """Collect lines until no new line arrives within *timeout_ms*.

        The timer restarts after every line, so output arriving in bursts
        closer together than the quiet period forms one batch, and output with
        a longer internal gap is cut at the gap. Lines are concatenated
        verbatim with no separator. A quiet period of zero returns only the
        lines already queued.
        """
        parts: list[bytes] = []
        if timeout_ms <= 0:
            while True:
                try:
                    parts.append(self._queue.get_nowait())
                except asyncio.QueueEmpty:
                    return b"".join(parts)

        timeout = timeout_ms / 1000.0
        while True:
            try:
                line = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            except TimeoutError:
                return b"".join(parts)
            parts.append(line)

    async def close(self) -> None:
        """Cancel all reader tasks."""
        for task in self._readers.values():
            task.cancel()
        for task in self._readers.values():
            with contextlib.suppress(asyncio.CancelledError):
                await task


__all__ = ["OutputAggregator", "strip_line_delimiter"]

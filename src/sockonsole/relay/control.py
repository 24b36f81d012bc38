"""One-shot shutdown channel.

The relay listens on the control endpoint for a connection whose first bytes
are ``stop``. The first such message sets the relay's stop event and closes
the control listener; anything else is ignored.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from sockonsole.errors import SockonsoleError
from sockonsole.relay.constants import (
    ACCEPT_ERROR_BACKOFF_SECONDS,
    CONTROL_READ_BYTES,
    STOP_TOKEN,
)
from sockonsole.relay.transports import connect_unix

if TYPE_CHECKING:
    from pathlib import Path

    from sockonsole.relay.transports import UnixListener

logger = logging.getLogger(__name__)


class RelayNotRunningError(SockonsoleError):
    """Raised when no relay is listening at the expected endpoint."""


class ControlPlane:
    """Background worker serving the control endpoint.

    Connections are handled one at a time. Accept and read failures are
    logged and the worker keeps listening.
    """

    def __init__(self, listener: UnixListener, stop_event: asyncio.Event) -> None:
        self._listener = listener
        self._stop_event = stop_event
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the worker task."""
        if self._task is not None:
            msg = "Control plane already started"
            raise RuntimeError(msg)
        self._task = asyncio.create_task(self.run(), name="relay-control")

    async def stop(self) -> None:
        """Cancel the worker if it is still listening and close the listener."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._listener.close()

    async def run(self) -> None:
        """Accept control connections until a stop token arrives."""
        while True:
            try:
                conn = await self._listener.accept()
            except OSError as exc:
                logger.warning("Control accept failed: %s", exc)
                await asyncio.sleep(ACCEPT_ERROR_BACKOFF_SECONDS)
                continue

            try:
                data = await conn.reader.read(CONTROL_READ_BYTES)
            except OSError as exc:
                logger.warning("Control read failed: %s", exc)
                continue
            finally:
                await conn.close()

            if data.startswith(STOP_TOKEN):
                logger.info("Stop token received on control endpoint")
                self._stop_event.set()
                self._listener.close()
                return
            logger.debug("Ignoring control message of %d byte(s)", len(data))


async def send_stop(path: str | Path) -> None:
    """Ask the relay listening at *path* to stop.

    No acknowledgement is expected; the call returns once the token is sent.

    Raises:
        RelayNotRunningError: If nothing accepts connections at *path*.
    """
    try:
        conn = await connect_unix(path, endpoint="control")
    except OSError as exc:
        msg = f"No relay is listening at {path}"
        raise RelayNotRunningError(msg) from exc
    try:
        conn.writer.write(STOP_TOKEN)
        await conn.writer.drain()
    finally:
        await conn.close()


__all__ = ["ControlPlane", "RelayNotRunningError", "send_stop"]

"""Unix domain socket listeners and connections for the rendezvous endpoints.

Listeners are plain non-blocking sockets accepted through the event loop's
readiness notification, so the caller decides which endpoint to accept on
next. The acceptor relies on that to take a Downlink connection before an
Uplink one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import platform
import socket
from dataclasses import dataclass
from pathlib import Path

from sockonsole.relay.constants import LISTEN_BACKLOG, STREAM_LIMIT_BYTES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connection:
    """One accepted or opened stream connection.

    Attributes:
        reader: Incoming byte stream.
        writer: Outgoing byte stream.
        endpoint: Name of the endpoint the connection belongs to.
    """

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    endpoint: str = ""

    async def close(self) -> None:
        """Close the connection, ignoring errors from an already-dead peer."""
        self.writer.close()
        with contextlib.suppress(ConnectionError, OSError):
            await self.writer.wait_closed()


class UnixListener:
    """A bound, listening Unix socket for one named endpoint.

    Only available on macOS and Linux.  On Windows this class raises
    ``NotImplementedError`` at construction time.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        name: str,
        backlog: int = LISTEN_BACKLOG,
        limit: int = STREAM_LIMIT_BYTES,
    ) -> None:
        if platform.system() == "Windows":
            msg = "Unix sockets are not supported on Windows"
            raise NotImplementedError(msg)
        self._path = str(path)
        self._name = name
        self._backlog = backlog
        self._limit = limit
        self._sock: socket.socket | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_bound(self) -> bool:
        return self._sock is not None

    def bind(self) -> None:
        """Bind and listen at the configured path.

        Any stale socket file is removed before binding.
        """
        if self._sock is not None:
            msg = f"{self._name} listener is already bound"
            raise RuntimeError(msg)

        with contextlib.suppress(FileNotFoundError):
            os.unlink(self._path)

        parent = os.path.dirname(self._path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(self._path)
            os.chmod(self._path, 0o600)
            sock.listen(self._backlog)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        self._sock = sock
        logger.info("%s endpoint listening on %s", self._name, self._path)

    async def accept(self) -> Connection:
        """Wait for the next connection on this endpoint.

        Raises:
            RuntimeError: If the listener is not bound.
            OSError: On accept failure.
        """
        if self._sock is None:
            msg = f"{self._name} listener is not bound"
            raise RuntimeError(msg)

        loop = asyncio.get_running_loop()
        conn, _ = await loop.sock_accept(self._sock)
        try:
            reader, writer = await asyncio.open_unix_connection(sock=conn, limit=self._limit)
        except BaseException:
            # Includes cancellation between the accept and the stream handoff.
            conn.close()
            raise
        logger.debug("Accepted %s connection", self._name)
        return Connection(reader=reader, writer=writer, endpoint=self._name)

    def close(self) -> None:
        """Stop listening and remove the socket file."""
        if self._sock is None:
            return
        self._sock.close()
        self._sock = None
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self._path)
        logger.info("%s endpoint closed", self._name)


async def connect_unix(
    path: str | Path,
    *,
    endpoint: str = "",
    limit: int = STREAM_LIMIT_BYTES,
) -> Connection:
    """Open a connection to the Unix socket at *path*."""
    reader, writer = await asyncio.open_unix_connection(str(path), limit=limit)
    logger.debug("Connected to %s at %s", endpoint or "socket", path)
    return Connection(reader=reader, writer=writer, endpoint=endpoint)


def is_socket_reachable(path: str | Path, *, timeout: float = 0.25) -> bool:
    """Return whether something accepts connections at *path*."""
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            sock.connect(str(path))
        return True
    except OSError:
        return False


__all__ = ["Connection", "UnixListener", "connect_unix", "is_socket_reachable"]

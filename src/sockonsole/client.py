"""Client side of the rendezvous: drive a running relay one command at a time."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Self

from sockonsole.errors import SockonsoleError
from sockonsole.paths import EndpointPaths
from sockonsole.relay.codec import ResponseReader
from sockonsole.relay.transports import connect_unix

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from types import TracebackType

    from sockonsole.relay.codec import DecodedResponse
    from sockonsole.relay.transports import Connection

logger = logging.getLogger(__name__)


class RelayConnectionError(SockonsoleError):
    """Raised when the relay cannot be reached or breaks the response framing."""


class RelayClient:
    """Connects to a relay and exchanges commands for framed responses.

    The Downlink is opened before the Uplink so the relay pairs the two into
    one session.

    Usage::

        async with RelayClient() as client:
            response = await client.send("echo hi")
            print(response.text())
    """

    def __init__(self, paths: EndpointPaths | None = None) -> None:
        self._paths = paths or EndpointPaths.default()
        self._downlink: Connection | None = None
        self._uplink: Connection | None = None
        self._responses: ResponseReader | None = None

    @property
    def paths(self) -> EndpointPaths:
        return self._paths

    @property
    def is_connected(self) -> bool:
        return self._downlink is not None and self._uplink is not None

    async def connect(self) -> None:
        """Open the Downlink, then the Uplink.

        Raises:
            RelayConnectionError: If either endpoint refuses the connection.
        """
        if self.is_connected:
            return
        try:
            self._downlink = await connect_unix(self._paths.downlink, endpoint="downlink")
            self._uplink = await connect_unix(self._paths.uplink, endpoint="uplink")
        except OSError as exc:
            await self.close()
            msg = f"Cannot connect to relay in {self._paths.downlink.parent}: {exc}"
            raise RelayConnectionError(msg) from exc
        self._responses = ResponseReader(self._downlink.reader)
        logger.debug("Connected to relay in %s", self._paths.downlink.parent)

    async def send(self, command: str | bytes) -> DecodedResponse:
        """Send one command line and return the relay's response.

        Raises:
            ValueError: If *command* contains a newline.
            RelayConnectionError: If not connected or either stream fails.
        """
        data = command.encode() if isinstance(command, str) else command
        if b"\n" in data:
            msg = "Command must be a single line"
            raise ValueError(msg)
        if self._uplink is None or self._responses is None:
            msg = "Client is not connected"
            raise RelayConnectionError(msg)

        try:
            self._uplink.writer.write(data + b"\n")
            await self._uplink.writer.drain()
        except OSError as exc:
            msg = f"Relay closed the uplink: {exc}"
            raise RelayConnectionError(msg) from exc
        try:
            return await self._responses.read_response()
        except OSError as exc:
            msg = f"Relay closed the downlink: {exc}"
            raise RelayConnectionError(msg) from exc

    async def close(self) -> None:
        """Close the Uplink, then the Downlink."""
        uplink, downlink = self._uplink, self._downlink
        self._uplink = None
        self._downlink = None
        self._responses = None
        if uplink is not None:
            await uplink.close()
        if downlink is not None:
            await downlink.close()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


async def run_console(
    client: RelayClient,
    lines: AsyncIterator[str],
    emit: Callable[[str], None],
) -> int:
    """Send each input line and emit each decoded response.

    Returns:
        The number of commands answered.

    Raises:
        RelayConnectionError: If the relay closes the downlink mid-response.
    """
    answered = 0
    async for line in lines:
        response = await client.send(line.rstrip("\r\n"))
        if not response.terminated:
            if response.payload:
                emit(response.text())
            msg = "Relay closed the downlink before the response was complete"
            raise RelayConnectionError(msg)
        emit(response.text())
        answered += 1
    return answered


async def stdin_lines() -> AsyncIterator[str]:
    """Yield lines typed on standard input until EOF."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        yield line


__all__ = ["RelayClient", "RelayConnectionError", "run_console", "stdin_lines"]

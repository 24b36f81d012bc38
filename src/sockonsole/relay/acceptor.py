"""Pairs Downlink and Uplink connections into sessions, one at a time."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Protocol, TypeVar

from sockonsole.relay.constants import ACCEPT_ERROR_BACKOFF_SECONDS

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

    from sockonsole.relay.transports import Connection, UnixListener

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRunner(Protocol):
    async def __call__(self, downlink: Connection, uplink: Connection) -> object: ...


class StopRequested(Exception):
    """Internal signal that the stop event won a race against an accept."""


async def race_stop(
    operation: Coroutine[Any, Any, T],
    stop_event: asyncio.Event,
) -> T:
    """Await *operation* unless *stop_event* is set first.

    Raises:
        StopRequested: If the stop event fires before *operation* finishes.
    """
    if stop_event.is_set():
        operation.close()
        raise StopRequested

    op_task = asyncio.create_task(operation)
    stop_task = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait({op_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_task.cancel()
        if not op_task.done():
            op_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stop_task

    if op_task.cancelled() or not op_task.done():
        with contextlib.suppress(asyncio.CancelledError):
            await op_task
        raise StopRequested
    return op_task.result()


class RendezvousAcceptor:
    """Accepts one Downlink then one Uplink connection and runs a session.

    Downlink is always accepted first. An Uplink client that connects early
    waits in the listen backlog until its Downlink has been accepted, so the
    pair handed to a session is always (Downlink, Uplink). While a session is
    running no further connections are accepted; new clients queue in the
    backlog. Pairing follows arrival order only: a client that abandons its
    Downlink before connecting an Uplink leaves that Downlink to be paired
    with the next client's Uplink.

    The stop event is checked between sessions and raced against each
    accept. A running session is never interrupted by it.
    """

    def __init__(
        self,
        downlink: UnixListener,
        uplink: UnixListener,
        run_session: SessionRunner,
        stop_event: asyncio.Event,
        *,
        error_backoff: float = ACCEPT_ERROR_BACKOFF_SECONDS,
    ) -> None:
        self._downlink = downlink
        self._uplink = uplink
        self._run_session = run_session
        self._stop_event = stop_event
        self._error_backoff = error_backoff
        self._sessions_served = 0

    @property
    def sessions_served(self) -> int:
        return self._sessions_served

    async def run(self) -> int:
        """Serve sessions until the stop event is set.

        Returns:
            The number of sessions served.

        Raises:
            SessionError: Propagated from the session runner when a session
                failure is configured to stop the relay.
        """
        while not self._stop_event.is_set():
            pair = await self._accept_pair()
            if pair is None:
                continue
            downlink, uplink = pair
            try:
                await self._run_session(downlink, uplink)
            finally:
                await uplink.close()
                await downlink.close()
                self._sessions_served += 1
        logger.info("Acceptor stopped after %d session(s)", self._sessions_served)
        return self._sessions_served

    async def _accept_pair(self) -> tuple[Connection, Connection] | None:
        try:
            downlink = await race_stop(self._downlink.accept(), self._stop_event)
        except StopRequested:
            return None
        except OSError as exc:
            logger.warning("Downlink accept failed: %s", exc)
            await asyncio.sleep(self._error_backoff)
            return None

        try:
            uplink = await race_stop(self._uplink.accept(), self._stop_event)
        except StopRequested:
            logger.info("Stop requested while waiting for uplink; dropping downlink")
            await downlink.close()
            return None
        except OSError as exc:
            logger.warning("Uplink accept failed: %s; dropping downlink", exc)
            await downlink.close()
            await asyncio.sleep(self._error_backoff)
            return None

        logger.debug("Paired downlink and uplink connections")
        return downlink, uplink


__all__ = ["RendezvousAcceptor", "SessionRunner", "StopRequested", "race_stop"]

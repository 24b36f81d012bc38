"""Lock-step command/response exchange for one paired connection set."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from sockonsole.errors import SockonsoleError
from sockonsole.relay.codec import encode_response

if TYPE_CHECKING:
    from sockonsole.config import RelayConfig
    from sockonsole.relay.aggregator import OutputAggregator
    from sockonsole.relay.process import ManagedProcess
    from sockonsole.relay.transports import Connection

logger = logging.getLogger(__name__)


class SessionEndReason(StrEnum):
    """Why a session stopped."""

    CLIENT_CLOSED = "client_closed"
    INCOMPLETE_LINE = "incomplete_line"
    UPLINK_ERROR = "uplink_error"
    PROCESS_INPUT_ERROR = "process_input_error"
    DOWNLINK_ERROR = "downlink_error"

    @property
    def is_failure(self) -> bool:
        return self not in {SessionEndReason.CLIENT_CLOSED, SessionEndReason.INCOMPLETE_LINE}


@dataclass(frozen=True)
class SessionOutcome:
    """Summary of a finished session.

    Attributes:
        commands: Number of command lines forwarded and answered.
        reason: What ended the session.
        detail: Error text for failure reasons.
    """

    commands: int
    reason: SessionEndReason
    detail: str = ""


class SessionError(SockonsoleError):
    """Raised under the ``stop_relay`` policy when a session fails."""

    def __init__(self, outcome: SessionOutcome) -> None:
        self.outcome = outcome
        message = f"Session failed ({outcome.reason.value})"
        if outcome.detail:
            message = f"{message}: {outcome.detail}"
        super().__init__(message)


class SessionHandler:
    """Relays command lines to the managed process and framed batches back.

    Each iteration reads one line from the uplink, forwards it to the
    process, collects one batch and writes it to the downlink. The next line
    is not read until the response is written, so commands never pipeline.
    Every command receives exactly one frame, even when its batch is empty.
    """

    def __init__(
        self,
        process: ManagedProcess,
        aggregator: OutputAggregator,
        config: RelayConfig,
    ) -> None:
        self._process = process
        self._aggregator = aggregator
        self._config = config

    async def __call__(self, downlink: Connection, uplink: Connection) -> SessionOutcome:
        return await self.run(downlink, uplink)

    async def run(self, downlink: Connection, uplink: Connection) -> SessionOutcome:
        """Serve one session until the client leaves or an I/O error occurs.

        Raises:
            SessionError: If the session fails and the configured policy is
                ``stop_relay``.
        """
        logger.info("Session started")
        try:
            outcome = await self._exchange(downlink, uplink)
        finally:
            await uplink.close()
            await downlink.close()

        if outcome.reason.is_failure:
            logger.warning(
                "Session ended after %d command(s): %s %s",
                outcome.commands,
                outcome.reason.value,
                outcome.detail,
            )
            if self._config.session_error_policy == "stop_relay":
                raise SessionError(outcome)
        else:
            logger.info(
                "Session ended after %d command(s): %s",
                outcome.commands,
                outcome.reason.value,
            )
        return outcome

    async def _exchange(self, downlink: Connection, uplink: Connection) -> SessionOutcome:
        commands = 0
        while True:
            try:
                line = await uplink.reader.readline()
            except (ValueError, OSError) as exc:
                return SessionOutcome(commands, SessionEndReason.UPLINK_ERROR, str(exc))

            if not line:
                return SessionOutcome(commands, SessionEndReason.CLIENT_CLOSED)
            if not line.endswith(b"\n"):
                return SessionOutcome(
                    commands,
                    SessionEndReason.INCOMPLETE_LINE,
                    f"{len(line)} byte(s) without newline",
                )

            try:
                await self._process.write_line(line)
            except OSError as exc:
                return SessionOutcome(commands, SessionEndReason.PROCESS_INPUT_ERROR, str(exc))

            batch = await self._aggregator.collect_batch(self._config.response_timeout)
            logger.debug("Command of %d byte(s) produced %d byte(s)", len(line), len(batch))

            try:
                downlink.writer.write(encode_response(batch))
                await downlink.writer.drain()
            except OSError as exc:
                return SessionOutcome(commands, SessionEndReason.DOWNLINK_ERROR, str(exc))
            commands += 1


__all__ = ["SessionEndReason", "SessionError", "SessionHandler", "SessionOutcome"]

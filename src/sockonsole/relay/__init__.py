"""Relay core: managed process, output aggregation, framing and rendezvous endpoints."""

from __future__ import annotations

from sockonsole.relay.acceptor import RendezvousAcceptor
from sockonsole.relay.aggregator import OutputAggregator
from sockonsole.relay.codec import DecodedResponse, ResponseReader, encode_response
from sockonsole.relay.control import ControlPlane, RelayNotRunningError, send_stop
from sockonsole.relay.host import RelayHost, RelayHostStatus
from sockonsole.relay.instance_lock import InstanceLock, RelayAlreadyRunningError
from sockonsole.relay.process import ManagedProcess, ProcessExitedError, ProcessSpawnError
from sockonsole.relay.session import SessionError, SessionHandler, SessionOutcome

__all__ = [
    "ControlPlane",
    "DecodedResponse",
    "InstanceLock",
    "ManagedProcess",
    "OutputAggregator",
    "ProcessExitedError",
    "ProcessSpawnError",
    "RelayAlreadyRunningError",
    "RelayHost",
    "RelayHostStatus",
    "RelayNotRunningError",
    "RendezvousAcceptor",
    "ResponseReader",
    "SessionError",
    "SessionHandler",
    "SessionOutcome",
    "encode_response",
    "send_stop",
]

"""Relay host: owns the managed process, the endpoints and the relay lifecycle."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import os
from typing import TYPE_CHECKING

from sockonsole.config import RelayConfig
from sockonsole.paths import EndpointPaths
from sockonsole.relay.acceptor import RendezvousAcceptor
from sockonsole.relay.aggregator import OutputAggregator
from sockonsole.relay.control import ControlPlane
from sockonsole.relay.instance_lock import InstanceLock
from sockonsole.relay.process import ManagedProcess, ProcessExitedError
from sockonsole.relay.session import SessionHandler
from sockonsole.relay.transports import UnixListener

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class RelayHostStatus(enum.Enum):
    """State machine for the relay host lifecycle."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class RelayHost:
    """Runs one relay instance.

    Owns:
    - the instance lock for the runtime directory
    - the ``ManagedProcess`` and the ``OutputAggregator`` reading it
    - the Downlink, Uplink and Control listeners
    - the stop event shared by the control plane, the acceptor and the
      process watcher, which stops the relay if the managed process exits

    Usage::

        host = RelayHost(config)
        await host.start()
        await host.serve()  # returns after a stop token or request_stop()
    """

    def __init__(
        self,
        config: RelayConfig | None = None,
        *,
        paths: EndpointPaths | None = None,
        config_path: Path | None = None,
    ) -> None:
        self._config = config
        self._config_path = config_path
        self._paths = paths or EndpointPaths.default()

        self._status = RelayHostStatus.STOPPED
        self._stop_event = asyncio.Event()
        self._instance_lock = InstanceLock(self._paths.instance_lock)
        self._process: ManagedProcess | None = None
        self._aggregator: OutputAggregator | None = None
        self._downlink: UnixListener | None = None
        self._uplink: UnixListener | None = None
        self._control: ControlPlane | None = None
        self._process_watch: asyncio.Task[None] | None = None
        self._process_exit_code: int | None = None
        self._sessions_served = 0

    @property
    def status(self) -> RelayHostStatus:
        """Current host lifecycle state."""
        return self._status

    @property
    def paths(self) -> EndpointPaths:
        return self._paths

    @property
    def config(self) -> RelayConfig | None:
        return self._config

    @property
    def process(self) -> ManagedProcess | None:
        return self._process

    @property
    def sessions_served(self) -> int:
        return self._sessions_served

    @property
    def process_exit_code(self) -> int | None:
        """Exit code of a managed process that died while the relay was running."""
        return self._process_exit_code

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    async def start(self) -> None:
        """Acquire the runtime directory, spawn the process and bind the endpoints.

        Raises:
            RuntimeError: If the host is not stopped.
            RelayAlreadyRunningError: If another relay holds the runtime directory.
            ConfigError: If no config was given and the config file is invalid.
            ProcessSpawnError: If the managed process cannot be started. No
                endpoint is bound in that case.
            OSError: If an endpoint cannot be bound.
        """
        if self._status != RelayHostStatus.STOPPED:
            msg = f"Cannot start relay host in state {self._status.value}"
            raise RuntimeError(msg)

        self._set_status(RelayHostStatus.STARTING)
        try:
            self._instance_lock.acquire_or_raise()
        except Exception:
            self._set_status(RelayHostStatus.STOPPED)
            raise

        try:
            if self._config is None:
                self._config = RelayConfig.load(self._config_path)

            self._process = await ManagedProcess.spawn(self._config)
            self._aggregator = OutputAggregator()
            self._aggregator.attach("stdout", self._process.stdout)
            self._aggregator.attach("stderr", self._process.stderr)

            self._downlink = UnixListener(self._paths.downlink, name="downlink")
            self._uplink = UnixListener(self._paths.uplink, name="uplink")
            control_listener = UnixListener(self._paths.control, name="control")
            self._downlink.bind()
            self._uplink.bind()
            control_listener.bind()

            self._control = ControlPlane(control_listener, self._stop_event)
            self._control.start()
            self._process_watch = asyncio.create_task(
                self._watch_process(self._process), name="relay-process-watch"
            )
        except Exception:
            await self._teardown()
            self._set_status(RelayHostStatus.STOPPED)
            raise

        self._set_status(RelayHostStatus.RUNNING)
        logger.info(
            "Relay running: pid=%d process_pid=%d runtime_dir=%s",
            os.getpid(),
            self._process.pid,
            self._paths.downlink.parent,
        )

    async def serve(self) -> int:
        """Serve sessions until stopped, then tear everything down.

        Returns:
            The number of sessions served.

        Raises:
            RuntimeError: If the host is not running.
            SessionError: If a session failed under the ``stop_relay`` policy.
            ProcessExitedError: If the managed process exited on its own.
        """
        if self._status != RelayHostStatus.RUNNING:
            msg = f"Cannot serve from relay host in state {self._status.value}"
            raise RuntimeError(msg)
        assert self._config is not None
        assert self._process is not None
        assert self._aggregator is not None
        assert self._downlink is not None
        assert self._uplink is not None

        handler = SessionHandler(self._process, self._aggregator, self._config)
        acceptor = RendezvousAcceptor(self._downlink, self._uplink, handler, self._stop_event)
        try:
            await acceptor.run()
        finally:
            self._sessions_served = acceptor.sessions_served
            await self.close()
        if self._process_exit_code is not None:
            raise ProcessExitedError(self._process_exit_code)
        return self._sessions_served

    async def run(self) -> int:
        """Start the host and serve until stopped."""
        await self.start()
        return await self.serve()

    def request_stop(self) -> None:
        """Ask the acceptor to stop before its next session."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()

    async def close(self) -> None:
        """Release every resource the host owns. Safe to call more than once."""
        if self._status == RelayHostStatus.STOPPED:
            return
        self._set_status(RelayHostStatus.STOPPING)
        self._stop_event.set()
        await self._teardown()
        self._set_status(RelayHostStatus.STOPPED)
        logger.info("Relay stopped after %d session(s)", self._sessions_served)

    async def _watch_process(self, process: ManagedProcess) -> None:
        returncode = await process.wait()
        self._process_exit_code = returncode
        logger.error("Managed process %d exited with %d; stopping relay", process.pid, returncode)
        self._stop_event.set()

    async def _teardown(self) -> None:
        if self._process_watch is not None:
            self._process_watch.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._process_watch
            self._process_watch = None
        if self._control is not None:
            await self._control.stop()
            self._control = None
        for listener in (self._downlink, self._uplink):
            if listener is not None:
                listener.close()
        self._downlink = None
        self._uplink = None

        if self._process is not None:
            with contextlib.suppress(ProcessLookupError):
                await self._process.shutdown()
            self._process = None
        if self._aggregator is not None:
            await self._aggregator.close()
            self._aggregator = None

        self._instance_lock.release()

    def _set_status(self, new_status: RelayHostStatus) -> None:
        old = self._status
        self._status = new_status
        logger.debug("Relay host status: %s -> %s", old.value, new_status.value)


__all__ = ["RelayHost", "RelayHostStatus"]

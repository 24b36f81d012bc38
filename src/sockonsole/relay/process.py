"""The single long-lived subprocess driven by the relay."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import TYPE_CHECKING

from sockonsole.errors import SockonsoleError
from sockonsole.relay.constants import PROCESS_EXIT_GRACE_SECONDS, STREAM_LIMIT_BYTES

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sockonsole.config import RelayConfig

logger = logging.getLogger(__name__)


class ProcessSpawnError(SockonsoleError):
    """Structured spawn failure with machine-readable code and command context."""

    def __init__(self, code: str, command: Sequence[str], detail: str | None = None) -> None:
        self.code = code
        self.command = tuple(command)
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        message = f"[{self.code}] {' '.join(self.command)}"
        if self.detail:
            return f"{message}: {self.detail}"
        return message


class ProcessExitedError(SockonsoleError):
    """Raised when the managed process exits while the relay is serving."""

    def __init__(self, returncode: int) -> None:
        self.returncode = returncode
        super().__init__(f"Managed process exited with code {returncode}")


def _build_env(overrides: Mapping[str, str]) -> dict[str, str]:
    env = dict(os.environ)
    env.update(overrides)
    return env


class ManagedProcess:
    """Owns one subprocess with piped stdin, stdout and stderr.

    The pipes are claimed once, at spawn time. Reader tasks attach to
    :attr:`stdout` and :attr:`stderr`; commands go through
    :meth:`write_line`.
    """

    def __init__(self, process: asyncio.subprocess.Process, command: Sequence[str]) -> None:
        if process.stdin is None or process.stdout is None or process.stderr is None:
            msg = "Managed process must be spawned with all three pipes"
            raise ValueError(msg)
        self._process = process
        self._command = tuple(command)
        self._stdin = process.stdin

    @classmethod
    async def spawn(cls, config: RelayConfig) -> ManagedProcess:
        """Start ``config.command`` with ``config.args``.

        Raises:
            ProcessSpawnError: If the executable cannot be started.
        """
        command = (config.command, *config.args)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=_build_env(config.env_vars),
                limit=STREAM_LIMIT_BYTES,
            )
        except FileNotFoundError as exc:
            raise ProcessSpawnError("PROCESS_NOT_FOUND", command, str(exc)) from exc
        except PermissionError as exc:
            raise ProcessSpawnError("PROCESS_PERMISSION_DENIED", command, str(exc)) from exc
        except OSError as exc:
            raise ProcessSpawnError("PROCESS_OS_ERROR", command, str(exc)) from exc

        logger.info("Managed process started: pid=%d command=%s", process.pid, " ".join(command))
        return cls(process, command)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self._process.stdout is not None
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        assert self._process.stderr is not None
        return self._process.stderr

    async def wait(self) -> int:
        """Wait for the process to exit on its own and return its exit code."""
        return await self._process.wait()

    async def write_line(self, line: bytes) -> None:
        """Write one command line to stdin and wait for it to be flushed.

        Raises:
            BrokenPipeError: If the process has exited or stdin is closed.
            ConnectionResetError: If the pipe is lost while draining.
        """
        if self._process.returncode is not None or self._stdin.is_closing():
            msg = f"Managed process stdin is closed (returncode={self._process.returncode})"
            raise BrokenPipeError(msg)
        self._stdin.write(line)
        await self._stdin.drain()

    async def shutdown(self, *, grace_seconds: float = PROCESS_EXIT_GRACE_SECONDS) -> int | None:
        """Close stdin, then terminate and finally kill if the process lingers."""
        if self._process.returncode is None:
            with contextlib.suppress(OSError):
                self._stdin.close()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._process.wait(), timeout=grace_seconds)

        if self._process.returncode is None:
            logger.info("Managed process %d ignored stdin EOF; terminating", self.pid)
            with contextlib.suppress(ProcessLookupError):
                self._process.terminate()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._process.wait(), timeout=grace_seconds)

        if self._process.returncode is None:
            logger.warning("Managed process %d ignored SIGTERM; killing", self.pid)
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
            await self._process.wait()

        logger.info("Managed process %d exited with %s", self.pid, self._process.returncode)
        return self._process.returncode


__all__ = ["ManagedProcess", "ProcessExitedError", "ProcessSpawnError"]

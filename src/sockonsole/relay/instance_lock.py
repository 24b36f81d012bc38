"""Single-relay-per-runtime-directory locking.

Two relays sharing a runtime directory would unlink each other's endpoint
files on bind. The lock file lives beside the sockets and is held for the
relay's whole lifetime.
"""

from __future__ import annotations

import contextlib
import os
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING

from filelock import FileLock, Timeout

from sockonsole.errors import SockonsoleError

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True, slots=True)
class RelayHolder:
    """The relay process recorded as owning a runtime directory."""

    pid: int
    hostname: str

    @classmethod
    def current(cls) -> RelayHolder:
        return cls(pid=os.getpid(), hostname=socket.gethostname())

    @classmethod
    def parse(cls, text: str) -> RelayHolder | None:
        """Parse the ``pid`` and optional ``hostname`` lines of a holder file."""
        pid_line, _, rest = text.strip().partition("\n")
        try:
            pid = int(pid_line)
        except ValueError:
            return None
        return cls(pid=pid, hostname=rest.strip() or "unknown")

    def render(self) -> str:
        return f"{self.pid}\n{self.hostname}\n"

    @property
    def is_local(self) -> bool:
        return self.hostname in {"unknown", socket.gethostname()}


class RelayAlreadyRunningError(SockonsoleError):
    """Raised when another relay holds the runtime directory."""

    def __init__(self, lock_path: Path, holder: RelayHolder | None) -> None:
        self.lock_path = lock_path
        self.holder = holder
        owner = "Another relay"
        if holder is not None:
            owner = f"Another relay (pid {holder.pid} on {holder.hostname})"
        super().__init__(f"{owner} holds {lock_path}")


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class InstanceLock:
    """Non-blocking file lock for one runtime directory.

    The holder record goes to a separate ``.info`` file because filelock
    truncates the lock file on every acquire attempt, failed ones included.
    A lock left behind by a dead relay on this host is reclaimed once.

    Usage::

        lock = InstanceLock(paths.instance_lock)
        lock.acquire_or_raise()
        try:
            ...
        finally:
            lock.release()
    """

    def __init__(self, lock_path: Path) -> None:
        self._lock_path = lock_path
        self._holder_path = lock_path.with_suffix(".info")
        self._lock = FileLock(str(lock_path), blocking=False)
        self._held = False

    @property
    def path(self) -> Path:
        return self._lock_path

    @property
    def is_held(self) -> bool:
        """Whether this instance currently owns the runtime directory."""
        return self._held

    def acquire(self) -> bool:
        """Try to take the lock without blocking.

        Returns:
            ``True`` when this instance now holds the lock, ``False`` when a
            live relay holds it.
        """
        if self._held:
            return True

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        reclaimed = False
        while True:
            try:
                self._lock.acquire(timeout=0)
                break
            except Timeout:
                if reclaimed or not self._holder_is_gone():
                    return False
                self._reclaim()
                reclaimed = True

        with contextlib.suppress(OSError):
            self._holder_path.write_text(RelayHolder.current().render())
        self._held = True
        return True

    def acquire_or_raise(self) -> None:
        """Take the lock or raise :class:`RelayAlreadyRunningError`."""
        if not self.acquire():
            raise RelayAlreadyRunningError(self._lock_path, self.holder())

    def release(self) -> None:
        """Drop the lock and remove its files. No-op when not held."""
        if not self._held:
            return
        self._held = False
        self._lock.release()
        for path in (self._lock_path, self._holder_path):
            with contextlib.suppress(OSError):
                path.unlink(missing_ok=True)

    def holder(self) -> RelayHolder | None:
        """Read the recorded holder, or ``None`` if there is no readable record."""
        try:
            text = self._holder_path.read_text()
        except OSError:
            return None
        return RelayHolder.parse(text)

    def _holder_is_gone(self) -> bool:
        record = self.holder()
        if record is None or record.pid == os.getpid() or not record.is_local:
            return False
        return not _pid_alive(record.pid)

    def _reclaim(self) -> None:
        for path in (self._lock_path, self._holder_path):
            with contextlib.suppress(OSError):
                path.unlink(missing_ok=True)
        self._lock = FileLock(str(self._lock_path), blocking=False)


def read_holder_pid(lock_path: Path) -> int | None:
    """Return the PID recorded for the relay holding *lock_path*, if any."""
    record = InstanceLock(lock_path).holder()
    return record.pid if record is not None else None


def read_live_holder(lock_path: Path) -> RelayHolder | None:
    """Return the recorded holder of *lock_path* if it is still alive on this host."""
    record = InstanceLock(lock_path).holder()
    if record is None or not record.is_local or not _pid_alive(record.pid):
        return None
    return record


__all__ = [
    "InstanceLock",
    "RelayAlreadyRunningError",
    "RelayHolder",
    "read_holder_pid",
    "read_live_holder",
]

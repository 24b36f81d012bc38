"""XDG-compliant path helpers for sockonsole config and rendezvous endpoints."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

DOWNLINK_SOCKET_NAME = "downlink.sock"
UPLINK_SOCKET_NAME = "uplink.sock"
CONTROL_SOCKET_NAME = "control.sock"
INSTANCE_LOCK_NAME = "relay.instance.lock"


@dataclass(frozen=True)
class EndpointPaths:
    """The three rendezvous endpoints of one relay instance plus its lock file.

    Attributes:
        downlink: Socket the relay writes responses to.
        uplink: Socket the relay reads command lines from.
        control: Socket accepting the one-shot shutdown token.
        instance_lock: Lock file guarding the runtime directory.
    """

    downlink: Path
    uplink: Path
    control: Path
    instance_lock: Path

    @classmethod
    def in_dir(cls, runtime_dir: Path) -> EndpointPaths:
        return cls(
            downlink=runtime_dir / DOWNLINK_SOCKET_NAME,
            uplink=runtime_dir / UPLINK_SOCKET_NAME,
            control=runtime_dir / CONTROL_SOCKET_NAME,
            instance_lock=runtime_dir / INSTANCE_LOCK_NAME,
        )

    @classmethod
    def default(cls) -> EndpointPaths:
        """Endpoints under the current runtime directory."""
        return cls.in_dir(get_runtime_dir())


def get_config_dir() -> Path:
    """Get the config directory for sockonsole (config.toml)."""
    override = os.environ.get("SOCKONSOLE_CONFIG_DIR")
    if override:
        return Path(override).resolve()
    return Path(user_config_dir("sockonsole"))


def get_runtime_dir() -> Path:
    """Get the runtime directory holding the relay's Unix sockets and lock files.

    Unix socket paths are limited to ~104 bytes on macOS, so deep overrides
    should be avoided.
    """
    override = os.environ.get("SOCKONSOLE_RUNTIME_DIR")
    if override:
        return Path(override).resolve()
    return Path(user_data_dir("sockonsole"))


def get_config_path() -> Path:
    """Get the path to the main config file."""
    return get_config_dir() / "config.toml"


"""Configuration loader for sockonsole."""

from __future__ import annotations

import os
import tempfile
import tomllib
from pathlib import Path
from typing import Literal

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sockonsole.errors import SockonsoleError
from sockonsole.paths import get_config_path

SessionErrorPolicy = Literal["end_session", "stop_relay"]

DEFAULT_COMMAND = "/bin/sh"
DEFAULT_RESPONSE_TIMEOUT_MS = 100


class ConfigError(SockonsoleError):
    """Raised when the config file cannot be read or fails validation."""


def atomic_write(path: Path, content: str) -> None:
    """Write file atomically to avoid partial/corrupt writes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        Path(tmp_path).replace(path)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


class RelayConfig(BaseModel):
    """Root configuration model, immutable once loaded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    command: str = Field(
        default=DEFAULT_COMMAND,
        description="Executable run as the managed process",
    )
    args: list[str] = Field(
        default_factory=list,
        description="Extra arguments passed to the managed process",
    )
    response_timeout: int = Field(
        default=DEFAULT_RESPONSE_TIMEOUT_MS,
        ge=0,
        description="Quiet period in milliseconds that ends a response batch",
    )
    env_vars: dict[str, str] = Field(
        default_factory=dict,
        description="Environment variables set on top of the inherited environment",
    )
    session_error_policy: SessionErrorPolicy = Field(
        default="end_session",
        description="end_session: drop the client and keep serving; stop_relay: shut down",
    )

    @field_validator("command")
    @classmethod
    def validate_command(cls, value: str) -> str:
        if not value.strip():
            msg = "command must not be empty"
            raise ValueError(msg)
        return value

    @classmethod
    def load(cls, config_path: Path | None = None) -> RelayConfig:
        """Load configuration from TOML file or use defaults.

        Raises:
            ConfigError: If the file exists but is not valid TOML or fails validation.
        """
        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            msg = f"Cannot read config file {config_path}: {exc}"
            raise ConfigError(msg) from exc

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            msg = f"Invalid config file {config_path}: {exc}"
            raise ConfigError(msg) from exc

    def to_toml(self) -> str:
        """Render the config as a TOML document."""
        doc = tomlkit.document()
        doc.add(tomlkit.comment("sockonsole relay configuration"))
        doc["command"] = self.command
        doc["args"] = list(self.args)
        doc["response_timeout"] = self.response_timeout
        doc["session_error_policy"] = self.session_error_policy

        env_table = tomlkit.table()
        for key, value in self.env_vars.items():
            env_table[key] = value
        doc["env_vars"] = env_table
        return tomlkit.dumps(doc)

    def save(self, path: Path) -> None:
        """Serialize current config to TOML file (created if missing)."""
        atomic_write(path, self.to_toml())


__all__ = [
    "DEFAULT_COMMAND",
    "DEFAULT_RESPONSE_TIMEOUT_MS",
    "ConfigError",
    "RelayConfig",
    "SessionErrorPolicy",
    "atomic_write",
]

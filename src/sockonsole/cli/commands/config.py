"""Config file inspection and scaffolding commands."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from sockonsole.config import ConfigError, RelayConfig
from sockonsole.paths import get_config_path

_CONFIG_PATH_OPTION = click.option(
    "--path",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to use instead of the default location.",
)


@click.group(name="config")
def config_group() -> None:
    """Inspect or create the relay config file."""


@config_group.command()
@_CONFIG_PATH_OPTION
def show(config_path: Path | None) -> None:
    """Print the effective configuration as TOML."""
    path = config_path or get_config_path()
    try:
        config = RelayConfig.load(path)
    except ConfigError as exc:
        click.secho(str(exc), fg="red")
        sys.exit(1)

    source = str(path) if path.exists() else f"{path} (not found, using defaults)"
    click.secho(f"# {source}", fg="cyan")
    click.echo(config.to_toml(), nl=False)


@config_group.command()
@_CONFIG_PATH_OPTION
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
def init(config_path: Path | None, force: bool) -> None:
    """Write a config file holding the default settings."""
    path = config_path or get_config_path()
    if path.exists() and not force:
        click.secho(f"Config already exists at {path} (use --force to overwrite).", fg="yellow")
        sys.exit(1)

    RelayConfig().save(path)
    click.secho(f"Wrote {path}", fg="green")


__all__ = ["config_group"]

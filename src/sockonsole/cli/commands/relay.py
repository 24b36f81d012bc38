"""Relay process management and console commands."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from pathlib import Path

import click

from sockonsole.client import RelayClient, RelayConnectionError, run_console, stdin_lines
from sockonsole.config import ConfigError, RelayConfig
from sockonsole.log import setup_logging
from sockonsole.paths import EndpointPaths
from sockonsole.relay.control import RelayNotRunningError, send_stop
from sockonsole.relay.host import RelayHost
from sockonsole.relay.instance_lock import (
    RelayAlreadyRunningError,
    read_holder_pid,
    read_live_holder,
)
from sockonsole.relay.process import ProcessExitedError, ProcessSpawnError
from sockonsole.relay.session import SessionError
from sockonsole.relay.transports import is_socket_reachable

LOG_LEVEL_CHOICES = ("DEBUG", "INFO", "WARNING", "ERROR")


def _print_endpoint_details(paths: EndpointPaths, *, pid: int | None = None) -> None:
    """Print endpoint details in a consistent format."""
    if pid is not None:
        click.echo(f"  PID:       {pid}")
    click.echo(f"  Downlink:  {paths.downlink}")
    click.echo(f"  Uplink:    {paths.uplink}")
    click.echo(f"  Control:   {paths.control}")


async def _run_relay(config: RelayConfig, paths: EndpointPaths) -> int:
    host = RelayHost(config, paths=paths)
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGTERM, host.request_stop)
    try:
        return await host.run()
    finally:
        with contextlib.suppress(NotImplementedError, ValueError):
            loop.remove_signal_handler(signal.SIGTERM)


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to load instead of the default location.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
    default=None,
    help="Operational log level (default: $SOCKONSOLE_LOG_LEVEL or INFO).",
)
def start(config_path: Path | None, log_level: str | None) -> None:
    """Run the relay in the foreground until a stop token or SIGTERM arrives."""
    setup_logging(log_level)
    try:
        config = RelayConfig.load(config_path)
    except ConfigError as exc:
        click.secho(str(exc), fg="red")
        sys.exit(1)

    paths = EndpointPaths.default()
    try:
        sessions = asyncio.run(_run_relay(config, paths))
    except RelayAlreadyRunningError as exc:
        click.secho(str(exc), fg="yellow")
        sys.exit(1)
    except ProcessSpawnError as exc:
        click.secho(f"Failed to start managed process: {exc}", fg="red")
        sys.exit(1)
    except (SessionError, ProcessExitedError) as exc:
        click.secho(f"Relay stopped: {exc}", fg="red")
        sys.exit(1)
    except OSError as exc:
        click.secho(f"Cannot bind relay endpoints: {exc}", fg="red")
        sys.exit(1)

    click.secho(f"Relay stopped after {sessions} session(s).", fg="green")


@click.command()
def stop() -> None:
    """Send the stop token to the running relay."""
    paths = EndpointPaths.default()
    try:
        asyncio.run(send_stop(paths.control))
    except RelayNotRunningError:
        click.secho("Relay is not running.", fg="yellow")
        sys.exit(1)
    click.secho("Stop token sent.", fg="green")


@click.command()
def status() -> None:
    """Show whether a relay is listening and where.

    A relay that has received its stop token no longer answers on the control
    endpoint but keeps serving its active session; the live lock holder
    reports it as stopping.
    """
    paths = EndpointPaths.default()
    if is_socket_reachable(paths.control):
        click.secho("Relay is running.", fg="green", bold=True)
        _print_endpoint_details(paths, pid=read_holder_pid(paths.instance_lock))
        return

    holder = read_live_holder(paths.instance_lock)
    if holder is None:
        click.secho("Relay is not running.", fg="yellow")
        sys.exit(1)
    click.secho("Relay is stopping.", fg="yellow")
    _print_endpoint_details(paths, pid=holder.pid)


@click.command()
def connect() -> None:
    """Send lines from standard input to the relay and print each response."""
    paths = EndpointPaths.default()

    async def _console() -> int:
        async with RelayClient(paths) as client:
            return await run_console(client, stdin_lines(), click.echo)

    try:
        asyncio.run(_console())
    except RelayConnectionError as exc:
        click.secho(str(exc), fg="red", err=True)
        sys.exit(1)


__all__ = ["connect", "start", "status", "stop"]

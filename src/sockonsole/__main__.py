"""CLI entry point for sockonsole."""

from __future__ import annotations

import click

from sockonsole import __version__
from sockonsole.cli.commands.config import config_group
from sockonsole.cli.commands.relay import connect, start, status, stop


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Drive one long-lived subprocess through Unix sockets."""
    if version:
        click.echo(f"sockonsole {__version__}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(start)
cli.add_command(stop)
cli.add_command(status)
cli.add_command(connect)
cli.add_command(config_group)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

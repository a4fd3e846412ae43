"""Command-line interface for pomosync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Connect this device to a server
- settings: Show or change timer settings
- run: Run a timer session in the terminal
- follow: Mirror the timer of the user's other devices
- server: Server administration commands
"""

from __future__ import annotations

import click

from pomosync import __version__
from pomosync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_server_config,
    get_timer_file,
    load_config,
    save_config,
)
from pomosync.client.cli.server import server
from pomosync.client.cli.settings import configure, settings
from pomosync.client.cli.timer import follow, run


@click.group()
@click.version_option(__version__, prog_name="pomosync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Pomosync - Pomodoro timer synchronized across devices."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# Setup commands
cli.add_command(configure)
cli.add_command(settings)

# Timer commands
cli.add_command(run)
cli.add_command(follow)

# Server admin commands
cli.add_command(server)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "get_server_config",
    "get_timer_file",
    "load_config",
    "main",
    "save_config",
]

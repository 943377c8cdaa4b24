"""
Start CLI command.

Starts the client daemon.
"""

import sys

import click

from taskbell.config import ClientConfig
from taskbell.main import run_client


@click.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """
    Start the TaskBell client.

    Connects to the realtime server for the logged-in user, records
    incoming notifications and shows them on the desktop. A session must
    be stored first using 'taskbell config set-session'.

    The client runs continuously until stopped with Ctrl+C or SIGTERM.

    Example:

        taskbell start
    """
    config = ClientConfig()

    if not config.is_authenticated:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "No user session configured."
        )
        click.echo("Run 'taskbell config set-session USER_ID TOKEN' first.")
        ctx.exit(1)

    click.echo(f"Starting TaskBell client for user {config.user_id}...")
    click.echo(f"  Server: {config.root_url}")
    click.echo(f"  Realtime: {config.realtime_url}")
    click.echo()
    click.echo("Press Ctrl+C to stop")
    click.echo()

    exit_code = run_client(config)
    sys.exit(exit_code)

"""
TaskBell CLI entry point.

Main command group for the TaskBell notification client.
"""

import click

from taskbell import __version__


@click.group()
@click.version_option(version=__version__, prog_name="taskbell")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    TaskBell - Task notifications on your desktop.

    Receives task and follower notifications from the TaskBell server
    through the realtime channel and push notifications, and keeps a
    local history of the last 20 notifications.

    Use 'taskbell COMMAND --help' for more information on a command.
    """
    ctx.ensure_object(dict)


# Import and register subcommands
from taskbell.cli.start import start  # noqa: E402
from taskbell.cli.notifications import notifications  # noqa: E402
from taskbell.cli.push import push  # noqa: E402
from taskbell.cli.config import config  # noqa: E402

cli.add_command(start)
cli.add_command(notifications)
cli.add_command(push)
cli.add_command(config)


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

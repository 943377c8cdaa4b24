"""
Notifications CLI commands.

Browse and manage the local notification history:
- list: Show the history, newest first
- read: Mark one notification as read
- read-all: Mark every notification as read
- open: Mark a notification as read and print where it leads
- clear: Delete the history
"""

import json

import click

from taskbell.bridge import BackgroundDeliveryBridge
from taskbell.config import ClientConfig
from taskbell.context import INBOX_DIRNAME
from taskbell.platform import LocalPushPlatform
from taskbell.presenter import NotificationPresenter, labels_for
from taskbell.store import NotificationStore


def _echo_err(message: str) -> None:
    click.echo(message, err=True)


def _load_store(config: ClientConfig) -> NotificationStore:
    """Load the history, including pushes still waiting in the inbox."""
    store = NotificationStore(config.history_path)
    store.load()

    platform = LocalPushPlatform(
        config.push_state_dir, config.push_service_url, echo=_echo_err
    )
    bridge = BackgroundDeliveryBridge(
        store, platform, inbox_dir=config.push_state_dir / INBOX_DIRNAME
    )
    bridge.drain_inbox()
    bridge.process_pending()
    return store


# ============================================================================
# Notifications Command Group
# ============================================================================


@click.group()
@click.pass_context
def notifications(ctx: click.Context) -> None:
    """
    Browse and manage the notification history.

    The history keeps the 20 most recent notifications.
    """
    ctx.ensure_object(dict)


@notifications.command("list")
@click.option("--unread", is_flag=True, help="Only show unread notifications")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
def list_notifications(unread: bool, output_json: bool) -> None:
    """
    List notifications, newest first.

    Example:

        taskbell notifications list --unread
    """
    client_config = ClientConfig()
    store = _load_store(client_config)
    presenter = NotificationPresenter(store, labels=labels_for(client_config.language))
    records = presenter.records(unread_only=unread)

    if output_json:
        data = {
            "unread_count": presenter.unread_count(),
            "notifications": [
                {
                    **record.model_dump(mode="json"),
                    "relative_time": presenter.relative_time(record),
                    "route": presenter.route_for(record).path,
                }
                for record in records
            ],
        }
        click.echo(json.dumps(data, indent=2))
        return

    if not records:
        click.echo("No notifications.")
        return

    click.echo(f"{presenter.unread_count()} unread of {len(store)} notifications")
    click.echo()
    for record in records:
        marker = click.style("●", fg="cyan") if not record.read else " "
        title = click.style(record.title, bold=not record.read)
        click.echo(f"{marker} {title}  ({presenter.relative_time(record)})")
        if record.body:
            click.echo(f"    {record.body}")
        click.echo(click.style(f"    id: {record.id}", dim=True))


@notifications.command("read")
@click.argument("record_id")
@click.pass_context
def read(ctx: click.Context, record_id: str) -> None:
    """
    Mark a notification as read.

    Example:

        taskbell notifications read 2026-10-19T08:15:00Z
    """
    store = _load_store(ClientConfig())
    if record_id not in store:
        click.echo(
            click.style("Error: ", fg="red")
            + f"Notification not found: {record_id}"
        )
        ctx.exit(1)

    if store.mark_read(record_id):
        click.echo(click.style("Marked as read.", fg="green"))
    else:
        click.echo("Notification was already read.")


@notifications.command("read-all")
def read_all() -> None:
    """Mark every notification as read."""
    store = _load_store(ClientConfig())
    changed = store.mark_all_read()
    click.echo(click.style(f"Marked {changed} notification(s) as read.", fg="green"))


@notifications.command("open")
@click.argument("record_id")
@click.pass_context
def open_notification(ctx: click.Context, record_id: str) -> None:
    """
    Open a notification.

    Marks it as read and prints the page it refers to: the follower's
    profile, the task detail or the dashboard.

    Example:

        taskbell notifications open 2026-10-19T08:15:00Z
    """
    store = _load_store(ClientConfig())
    record = store.get(record_id)
    if record is None:
        click.echo(
            click.style("Error: ", fg="red")
            + f"Notification not found: {record_id}"
        )
        ctx.exit(1)

    store.mark_read(record_id)
    route = NotificationPresenter(store).route_for(record)
    click.echo(route.path)


@notifications.command("clear")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def clear(yes: bool) -> None:
    """Delete the notification history."""
    if not yes and not click.confirm("Delete all notifications?", default=False):
        click.echo("Aborted.")
        return

    store = NotificationStore(ClientConfig().history_path)
    store.clear()
    click.echo(click.style("Notification history cleared.", fg="green"))

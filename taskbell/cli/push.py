"""
Push CLI commands.

Manage the push notification subscription of this client:
- status: Show support, permission and subscription state
- subscribe: Ask for permission and register a subscription
- unsubscribe: Remove the subscription
- test: Ask the server to send a test push
- count: Number of subscriptions the server holds for the user
- deliver: Hand a received push payload to the client
- reset-permission: Forget the stored permission decision
"""

import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Dict, Optional

import click

from taskbell.bridge import write_inbox_message
from taskbell.config import ClientConfig
from taskbell.context import INBOX_DIRNAME, build_registry
from taskbell.models import PermissionState
from taskbell.platform import LocalPushPlatform
from taskbell.subscription_manager import SubscriptionManager


async def _with_manager(
    config: ClientConfig,
    action: Callable[[SubscriptionManager], Awaitable[Any]],
) -> Any:
    platform = LocalPushPlatform(config.push_state_dir, config.push_service_url)
    async with build_registry(config) as registry:
        manager = SubscriptionManager(platform, registry)
        await manager.refresh()
        result = await action(manager)
        return result, manager


def _require_session(ctx: click.Context, config: ClientConfig) -> None:
    if not config.api_token:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "No user session configured."
        )
        click.echo("Run 'taskbell config set-session USER_ID TOKEN' first.")
        ctx.exit(1)


def _report_failure(ctx: click.Context, manager: SubscriptionManager, action: str) -> None:
    click.echo(
        click.style("Error: ", fg="red", bold=True)
        + f"{action} failed: {manager.error or 'unknown error'}"
    )
    ctx.exit(1)


# ============================================================================
# Push Command Group
# ============================================================================


@click.group()
@click.pass_context
def push(ctx: click.Context) -> None:
    """
    Manage push notifications.

    Push notifications reach this client while the realtime connection is
    not running. They require a push service URL in the configuration.
    """
    ctx.ensure_object(dict)


@push.command("status")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def status(output_json: bool) -> None:
    """Show push support, permission and subscription state."""
    config = ClientConfig()

    async def _status(manager: SubscriptionManager) -> Dict[str, Any]:
        return manager.state.as_dict()

    data, _ = asyncio.run(_with_manager(config, _status))

    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    def _flag(value: bool) -> str:
        return click.style("yes", fg="green") if value else click.style("no", fg="yellow")

    click.echo(f"Supported:   {_flag(data['supported'])}")
    click.echo(f"Permission:  {data['permission']}")
    click.echo(f"Subscribed:  {_flag(data['subscribed'])}")
    if not data["supported"]:
        click.echo()
        click.echo("Set a push service URL to enable push notifications:")
        click.echo(click.style("  taskbell config set-push-service URL", fg="cyan"))


@push.command("subscribe")
@click.pass_context
def subscribe(ctx: click.Context) -> None:
    """
    Subscribe this client to push notifications.

    Asks for notification permission first if it was never given.
    """
    config = ClientConfig()
    _require_session(ctx, config)

    async def _subscribe(manager: SubscriptionManager) -> bool:
        return await manager.subscribe()

    ok, manager = asyncio.run(_with_manager(config, _subscribe))
    if not ok:
        _report_failure(ctx, manager, "Subscribe")
    click.echo(click.style("Push notifications enabled.", fg="green"))


@push.command("unsubscribe")
@click.pass_context
def unsubscribe(ctx: click.Context) -> None:
    """Remove the push subscription."""
    config = ClientConfig()

    async def _unsubscribe(manager: SubscriptionManager) -> bool:
        return await manager.unsubscribe()

    ok, manager = asyncio.run(_with_manager(config, _unsubscribe))
    if not ok:
        _report_failure(ctx, manager, "Unsubscribe")
    click.echo(click.style("Push notifications disabled.", fg="green"))


@push.command("test")
@click.pass_context
def test(ctx: click.Context) -> None:
    """Ask the server to send one test push to this user."""
    config = ClientConfig()
    _require_session(ctx, config)

    async def _test(manager: SubscriptionManager) -> bool:
        return await manager.send_test()

    ok, manager = asyncio.run(_with_manager(config, _test))
    if not ok:
        _report_failure(ctx, manager, "Test notification")
    click.echo(click.style("Test notification sent.", fg="green"))


@push.command("count")
@click.pass_context
def count(ctx: click.Context) -> None:
    """Show how many push subscriptions the server holds for the user."""
    config = ClientConfig()
    _require_session(ctx, config)

    async def _count(manager: SubscriptionManager) -> Optional[int]:
        return await manager.subscriptions_count()

    total, manager = asyncio.run(_with_manager(config, _count))
    if total is None:
        _report_failure(ctx, manager, "Subscription count")
    click.echo(f"Active subscriptions: {total}")


@push.command("deliver")
@click.argument("payload", required=False)
def deliver(payload: Optional[str]) -> None:
    """
    Hand a received push payload to the client.

    Reads the payload from the argument or from stdin. The running client
    (or the next notifications command) shows it and records it.

    Example:

        echo '{"title": "Tugas Baru", "data": {"taskId": 7}}' | taskbell push deliver
    """
    config = ClientConfig()
    raw = payload if payload is not None else sys.stdin.read()
    path = write_inbox_message(config.push_state_dir / INBOX_DIRNAME, raw)
    click.echo(f"Queued push message {path.stem}")


@push.command("reset-permission")
def reset_permission() -> None:
    """Forget the stored permission so the next subscribe asks again."""
    config = ClientConfig()
    platform = LocalPushPlatform(config.push_state_dir, config.push_service_url)
    platform.set_permission(PermissionState.DEFAULT)
    click.echo(click.style("Notification permission reset.", fg="green"))

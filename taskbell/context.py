"""
Notification context.

Owns one instance of every pipeline component for a client session and
wires them together: the store shared by both producers, the realtime
channel following the authentication state, the delivery bridge and the
subscription manager. Tests build isolated contexts by injecting fakes.
"""

import asyncio
from typing import Callable, Optional

from taskbell.bridge import BackgroundDeliveryBridge
from taskbell.config import ClientConfig
from taskbell.logging_config import get_logger
from taskbell.models import Route
from taskbell.platform import LocalPushPlatform, PushPlatform
from taskbell.presenter import NotificationPresenter, labels_for
from taskbell.realtime import PusherConnection, RealtimeChannel
from taskbell.registry_client import NotificationRegistryClient
from taskbell.retry import RetryPolicy
from taskbell.store import NotificationStore
from taskbell.subscription_manager import SubscriptionManager

logger = get_logger("cli")


INBOX_DIRNAME = "inbox"


def build_platform(config: ClientConfig) -> PushPlatform:
    """Desktop push platform for the configured data directory."""
    return LocalPushPlatform(config.push_state_dir, config.push_service_url)


def build_registry(config: ClientConfig) -> NotificationRegistryClient:
    return NotificationRegistryClient(
        server_url=config.root_url,
        api_token=config.api_token or None,
        timeout=config.request_timeout_seconds,
    )


class NotificationContext:
    """
    Lifecycle owner of the notification pipeline.

    Usage:
        >>> async with NotificationContext(config) as ctx:
        ...     ctx.presenter.unread_count()
        ...     await ctx.on_auth_changed(None)   # logout
    """

    def __init__(
        self,
        config: ClientConfig,
        platform: Optional[PushPlatform] = None,
        registry: Optional[NotificationRegistryClient] = None,
        store: Optional[NotificationStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        connection_factory: Optional[Callable[[], PusherConnection]] = None,
    ):
        self.config = config
        self.platform = platform if platform is not None else build_platform(config)
        self._owns_registry = registry is None
        self.registry = registry if registry is not None else build_registry(config)
        self.store = store if store is not None else NotificationStore(config.history_path)
        self.presenter = NotificationPresenter(self.store, labels=labels_for(config.language))
        self.subscriptions = SubscriptionManager(self.platform, self.registry, retry_policy)
        self.channel = RealtimeChannel(
            connection_factory or (lambda: PusherConnection(config.realtime_url)),
            self.registry.authorize_channel,
            self.store,
            self.platform,
        )
        self.bridge = BackgroundDeliveryBridge(
            self.store,
            self.platform,
            inbox_dir=config.push_state_dir / INBOX_DIRNAME,
        )
        self._bridge_task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Load history, start the bridge and connect if a session exists."""
        if self._started:
            return
        self.store.load()
        self.bridge.drain_inbox()
        self.bridge.process_pending()
        await self.subscriptions.refresh()
        self._bridge_task = asyncio.create_task(self.bridge.run())
        self._started = True

        if self.config.is_authenticated:
            await self.channel.connect(self.config.user_id)
        logger.info(
            "Notification context started",
            extra={
                "records": len(self.store),
                "push_supported": self.subscriptions.supported,
            },
        )

    async def on_auth_changed(
        self, user_id: Optional[int], api_token: Optional[str] = None
    ) -> None:
        """
        Follow the authentication state.

        A logout (``user_id`` None) or a different user tears the current
        connection down; a login connects for the new user.
        """
        if user_id is None:
            await self.channel.disconnect()
            self.registry.set_api_token(None)
            return

        if api_token is not None:
            self.registry.set_api_token(api_token)
        await self.channel.connect(user_id)

    def open(self, record_id: str) -> Optional[Route]:
        """
        Open a notification: mark it read and resolve where it leads.

        Returns:
            The navigation target, or None for an unknown id
        """
        record = self.store.get(record_id)
        if record is None:
            return None
        self.store.mark_read(record_id)
        return self.presenter.route_for(record)

    async def close(self) -> None:
        """Tear everything down; safe to call more than once."""
        await self.channel.disconnect()

        task, self._bridge_task = self._bridge_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.bridge.process_pending()

        if self._owns_registry:
            await self.registry.close()
        self._started = False

    async def __aenter__(self) -> "NotificationContext":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

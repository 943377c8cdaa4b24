"""
Push subscription lifecycle.

Mediates the notification opt-in flow between the push platform and the
remote notification registry: capability check, the one-time permission
prompt, subscribe (with retry), unsubscribe and the self-test push.

Operations return a success flag and record a readable ``error`` string
instead of raising, so callers can render failures inline.
"""

import asyncio
import base64
import binascii
from contextlib import contextmanager
from functools import partial
from typing import Optional

from taskbell.exceptions import (
    ApiError,
    AuthenticationError,
    PermissionDenied,
    SubscriptionFailed,
    TaskBellError,
    UnsupportedPlatformError,
    is_transient,
)
from taskbell.logging_config import get_logger
from taskbell.models import PermissionState, PushSubscriptionInfo, SubscriptionState
from taskbell.platform.base import PushPlatform
from taskbell.registry_client import NotificationRegistryClient
from taskbell.retry import RetryPolicy

logger = get_logger("push")


# Expected length of a URL-safe base64 encoded P-256 public key (~87 chars)
VAPID_KEY_MIN_LENGTH = 80
VAPID_KEY_MAX_LENGTH = 90


def decode_server_key(key: str) -> bytes:
    """
    Decode a URL-safe base64 VAPID key, restoring stripped padding.

    Raises:
        SubscriptionFailed: If the key is not valid base64
    """
    padded = key + "=" * (-len(key) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise SubscriptionFailed(f"Invalid VAPID public key: {e}")


def describe_error(exc: BaseException) -> str:
    """Render an exception as the ``error`` string exposed in the state."""
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


class SubscriptionManager:
    """
    Owns the push permission and subscription state.

    ``supported`` is checked once at construction. ``permission`` is read
    from the platform on every access. ``subscribed`` only becomes True
    once both the local subscription and the registry call succeeded.

    Usage:
        >>> manager = SubscriptionManager(platform, registry)
        >>> if await manager.subscribe():
        ...     print("subscribed")
        ... else:
        ...     print(manager.error)
    """

    def __init__(
        self,
        platform: PushPlatform,
        registry: NotificationRegistryClient,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._platform = platform
        self._registry = registry
        self._retry = retry_policy or RetryPolicy()
        self._supported = platform.is_supported()
        self._subscribed = False
        self._error: Optional[str] = None
        self._pending = 0
        self._prompt: Optional[asyncio.Future] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def supported(self) -> bool:
        return self._supported

    @property
    def permission(self) -> PermissionState:
        return self._platform.permission()

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def state(self) -> SubscriptionState:
        """Snapshot of the observable state."""
        return SubscriptionState(
            supported=self._supported,
            permission=self.permission,
            subscribed=self._subscribed,
            is_loading=self.is_loading,
            error=self._error,
        )

    @contextmanager
    def _loading(self):
        self._pending += 1
        try:
            yield
        finally:
            self._pending -= 1

    def _fail(self, exc: BaseException) -> None:
        self._error = describe_error(exc)
        logger.warning(f"Push operation failed: {self._error}")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def check_support(self) -> bool:
        """Check the platform's push capabilities (no side effects)."""
        return self._platform.is_supported()

    async def refresh(self) -> SubscriptionState:
        """
        Re-read the local subscription after startup.

        The registry is not consulted; a local subscription is assumed to
        have been registered when it was created.
        """
        if self._supported:
            try:
                existing = await self._platform.get_subscription()
            except TaskBellError as e:
                logger.warning(f"Failed to check existing subscription: {e}")
            else:
                self._subscribed = existing is not None
                if existing is not None:
                    logger.debug("Existing push subscription found")
        return self.state

    async def request_permission(self) -> PermissionState:
        """
        Ask for notification permission once.

        Returns the current permission without prompting when it is
        already granted or denied. Concurrent callers share one prompt.
        """
        current = self._platform.permission()
        if current != PermissionState.DEFAULT:
            return current

        if not self._supported:
            self._fail(UnsupportedPlatformError("Push notifications are not supported"))
            return current

        with self._loading():
            if self._prompt is None:
                self._prompt = asyncio.ensure_future(self._run_prompt())
            return await asyncio.shield(self._prompt)

    async def _run_prompt(self) -> PermissionState:
        try:
            return await self._platform.prompt_permission()
        finally:
            self._prompt = None

    async def subscribe(self) -> bool:
        """
        Subscribe this client to push notifications.

        Returns:
            True once the subscription is registered with the registry
        """
        if not self._supported:
            self._fail(UnsupportedPlatformError("Push notifications are not supported"))
            return False

        with self._loading():
            self._error = None

            permission = self._platform.permission()
            if permission != PermissionState.GRANTED:
                permission = await self.request_permission()
            if permission != PermissionState.GRANTED:
                self._fail(PermissionDenied(f"Notification permission is {permission.value}"))
                return False

            try:
                await self._platform.register_worker()
                server_key = await self._fetch_server_key()
                await self._retry.run(partial(self._subscribe_attempt, server_key))
            except TaskBellError as e:
                logger.error("Push subscription failed", exc_info=True)
                failure = e if isinstance(e, SubscriptionFailed) else SubscriptionFailed(str(e))
                self._fail(failure)
                return False

            self._subscribed = True
            logger.info("Push notifications subscribed")
            return True

    async def _fetch_server_key(self) -> bytes:
        key = await self._retry.run(self._registry.get_vapid_public_key)
        if not key:
            raise SubscriptionFailed("VAPID public key is not available from the server")

        if not VAPID_KEY_MIN_LENGTH <= len(key) <= VAPID_KEY_MAX_LENGTH:
            logger.warning(
                f"Unexpected VAPID key length {len(key)}, expected ~87 characters"
            )
        return decode_server_key(key)

    async def _subscribe_attempt(self, server_key: bytes) -> PushSubscriptionInfo:
        existing = await self._platform.get_subscription()
        if existing is not None:
            try:
                await self._registry.subscribe(existing)
                return existing
            except ApiError as e:
                # Only a registry rejection of the subscription itself makes
                # the local one stale; auth and server errors propagate
                if isinstance(e, AuthenticationError) or is_transient(e):
                    raise
                logger.warning(
                    f"Registry rejected existing subscription ({describe_error(e)}), "
                    "recreating it"
                )
                await self._platform.remove_subscription()
                self._subscribed = False

        subscription = await self._platform.create_subscription(server_key)
        await self._registry.subscribe(subscription)
        return subscription

    async def unsubscribe(self) -> bool:
        """
        Remove the push subscription.

        The registry is notified first on a best-effort basis; local
        teardown happens even if that call fails.
        """
        with self._loading():
            self._error = None

            try:
                subscription = await self._platform.get_subscription()
            except TaskBellError as e:
                self._fail(e)
                return False

            if subscription is None:
                self._subscribed = False
                self._fail(SubscriptionFailed("No active push subscription found"))
                return False

            try:
                await self._registry.unsubscribe(subscription.endpoint)
            except TaskBellError as e:
                logger.warning(f"Registry unsubscribe failed, continuing: {describe_error(e)}")

            try:
                await self._platform.remove_subscription()
            except TaskBellError as e:
                self._fail(e)
                return False

            self._subscribed = False
            logger.info("Push notifications unsubscribed")
            return True

    async def send_test(self) -> bool:
        """Ask the registry to deliver one self-test push."""
        with self._loading():
            self._error = None
            try:
                success = await self._registry.send_test()
            except TaskBellError as e:
                self._fail(e)
                return False

            if not success:
                self._fail(SubscriptionFailed("Server did not deliver the test notification"))
            return success

    async def subscriptions_count(self) -> Optional[int]:
        """Number of subscriptions the registry holds for the user."""
        with self._loading():
            try:
                return await self._registry.get_subscriptions_count()
            except TaskBellError as e:
                self._fail(e)
                return None

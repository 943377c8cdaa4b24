"""
Abstract base class for push platform adapters.

Defines the capability check and push primitives the Subscription Manager,
Realtime Channel and Background Delivery Bridge rely on: permission state,
the one-time permission prompt, worker registration, the local push
subscription and visible system notifications.

Design Pattern: Strategy pattern for pluggable platforms
"""

from abc import ABC, abstractmethod
from typing import Optional

from taskbell.models import PermissionState, PushSubscriptionInfo, SystemNotification


class PushPlatform(ABC):
    """
    Abstract base class for push platforms.

    Methods:
        is_supported(): Capability check, no side effects
        permission(): Current permission, re-read on every call
        prompt_permission(): Show the one-time permission prompt
        register_worker(): Prepare the background delivery worker
        get_subscription(): Existing local push subscription, if any
        create_subscription(): Create a subscription for a server key
        remove_subscription(): Tear down the local subscription
        show_notification(): Display a system-level notification

    Usage:
        >>> platform = LocalPushPlatform(state_dir, push_service_url)
        >>> if platform.is_supported():
        ...     state = await platform.prompt_permission()
    """

    @abstractmethod
    def is_supported(self) -> bool:
        """
        Check whether worker, push and notification capabilities exist.

        Returns:
            True if push notifications can work on this platform
        """
        pass

    @abstractmethod
    def permission(self) -> PermissionState:
        """
        Read the current notification permission.

        The permission can change outside the client at any time, so
        implementations must not cache it indefinitely.
        """
        pass

    @abstractmethod
    async def prompt_permission(self) -> PermissionState:
        """
        Ask the user for notification permission.

        Returns:
            The resulting permission state
        """
        pass

    @abstractmethod
    async def register_worker(self) -> None:
        """
        Register the background worker that receives pushes.

        Raises:
            PlatformError: If registration fails
        """
        pass

    @abstractmethod
    async def get_subscription(self) -> Optional[PushSubscriptionInfo]:
        """
        Get the existing local push subscription.

        Returns:
            The subscription, or None when there is none
        """
        pass

    @abstractmethod
    async def create_subscription(
        self, application_server_key: bytes
    ) -> PushSubscriptionInfo:
        """
        Create a push subscription bound to the server's public key.

        Args:
            application_server_key: Decoded VAPID public key (65 bytes)

        Returns:
            The new subscription

        Raises:
            PlatformError: If the subscription cannot be created
        """
        pass

    @abstractmethod
    async def remove_subscription(self) -> bool:
        """
        Tear down the local push subscription.

        Returns:
            True if a subscription was removed
        """
        pass

    @abstractmethod
    def show_notification(self, notification: SystemNotification) -> None:
        """
        Display a system-level notification.

        A notification with the same tag as a displayed one replaces it.
        """
        pass

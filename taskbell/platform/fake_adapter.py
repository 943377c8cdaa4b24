"""
In-memory push platform with configurable capabilities.

Used by tests and by headless runs where no desktop notifications are
wanted. Support, permission and the prompt outcome are plain attributes.
"""

import asyncio
import secrets
from typing import Dict, List, Optional

from taskbell.exceptions import PlatformError
from taskbell.models import PermissionState, PushSubscriptionInfo, SystemNotification
from taskbell.platform.base import PushPlatform


class FakePushPlatform(PushPlatform):
    """
    Push platform backed by attributes instead of a real environment.

    Attributes:
        supported: Value returned by is_supported()
        prompt_result: Permission the user "chooses" when prompted
        prompt_delay: Seconds the prompt stays open (exercise overlap)
        fail_create: Number of upcoming create_subscription() calls that fail
        prompt_count: How many prompts were shown
        shown: Every notification passed to show_notification()
        displayed: Currently visible notifications, keyed by tag
    """

    def __init__(
        self,
        supported: bool = True,
        permission: PermissionState = PermissionState.DEFAULT,
        prompt_result: PermissionState = PermissionState.GRANTED,
        prompt_delay: float = 0.0,
        endpoint_base: str = "https://push.example.test/send",
    ):
        self.supported = supported
        self.prompt_result = prompt_result
        self.prompt_delay = prompt_delay
        self.endpoint_base = endpoint_base
        self.fail_create = 0
        self.fail_create_transient = True
        self.prompt_count = 0
        self.worker_registrations = 0
        self.create_calls: List[bytes] = []
        self.removed = 0
        self.subscription: Optional[PushSubscriptionInfo] = None
        self.shown: List[SystemNotification] = []
        self.displayed: Dict[str, SystemNotification] = {}
        self._permission = permission

    def set_permission(self, permission: PermissionState) -> None:
        """Simulate the user changing the permission outside the client."""
        self._permission = permission

    def is_supported(self) -> bool:
        return self.supported

    def permission(self) -> PermissionState:
        return self._permission

    async def prompt_permission(self) -> PermissionState:
        self.prompt_count += 1
        if self.prompt_delay:
            await asyncio.sleep(self.prompt_delay)
        self._permission = self.prompt_result
        return self._permission

    async def register_worker(self) -> None:
        self.worker_registrations += 1

    async def get_subscription(self) -> Optional[PushSubscriptionInfo]:
        return self.subscription

    async def create_subscription(
        self, application_server_key: bytes
    ) -> PushSubscriptionInfo:
        self.create_calls.append(application_server_key)
        if self.fail_create > 0:
            self.fail_create -= 1
            raise PlatformError(
                "push service unavailable", transient=self.fail_create_transient
            )
        self.subscription = PushSubscriptionInfo(
            endpoint=f"{self.endpoint_base}/{secrets.token_urlsafe(8)}",
            p256dh_key=secrets.token_urlsafe(65),
            auth_key=secrets.token_urlsafe(16),
        )
        return self.subscription

    async def remove_subscription(self) -> bool:
        if self.subscription is None:
            return False
        self.subscription = None
        self.removed += 1
        return True

    def show_notification(self, notification: SystemNotification) -> None:
        self.shown.append(notification)
        self.displayed[notification.tag] = notification

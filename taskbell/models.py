"""
Data models for the notification pipeline.

Provides Pydantic models and plain dataclasses shared by all components:
- NotificationRecord: One entry of the persisted notification history
- PushSubscriptionInfo: Endpoint and keys of a push subscription
- SubscriptionState: Observable state of the push opt-in lifecycle
- SystemNotification: A visible OS-level notification request
- Route: Navigation target derived from a record
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Enumerations
# ============================================================================


class NotificationKind(str, Enum):
    """Kind of event a notification record was built from."""

    TASK_CREATED = "task_created"
    TASK_SUBMITTED = "task_submitted"
    USER_FOLLOWED = "user_followed"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: Optional[str]) -> "NotificationKind":
        """Map a raw type string to a kind, falling back to GENERIC."""
        try:
            return cls(value)
        except ValueError:
            return cls.GENERIC


class PermissionState(str, Enum):
    """Platform notification permission (mirrors Notification.permission)."""

    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class ConnectionState(str, Enum):
    """Realtime connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


# ============================================================================
# NotificationRecord
# ============================================================================


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class NotificationRecord(BaseModel):
    """
    One entry of the notification history.

    ``created_at`` is assigned by the client at receipt time, not taken
    from the server. ``read`` only ever moves from False to True; the
    store enforces that.
    """

    id: str = Field(..., min_length=1, description="Unique id within the store")
    title: str = Field(..., description="Display title")
    body: str = Field("", description="Display body")
    kind: NotificationKind = Field(NotificationKind.GENERIC)
    related_task_id: Optional[int] = Field(
        None, description="Task the notification is about"
    )
    related_username: Optional[str] = Field(
        None, description="Follower username for user_followed records"
    )
    created_at: datetime = Field(default_factory=utcnow)
    read: bool = False

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # Naive timestamps in older history files were written in UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ============================================================================
# Push Subscription
# ============================================================================


class PushSubscriptionInfo(BaseModel):
    """
    A push subscription as registered with the notification registry.

    Attributes:
        endpoint: Push service endpoint URL
        p256dh_key: Base64url-encoded ECDH public key
        auth_key: Base64url-encoded auth secret
    """

    endpoint: str = Field(..., min_length=1)
    p256dh_key: str = Field(..., min_length=1)
    auth_key: str = Field(..., min_length=1)

    def to_registry_payload(self) -> Dict[str, str]:
        """Body of POST /api/notifications/subscribe."""
        return {
            "endpoint": self.endpoint,
            "auth_key": self.auth_key,
            "p256dh_key": self.p256dh_key,
        }


@dataclass
class SubscriptionState:
    """
    Observable state of the push opt-in lifecycle.

    ``supported`` is computed once at startup; ``permission`` is re-read
    from the platform whenever it is accessed through the manager.
    """

    supported: bool
    permission: PermissionState = PermissionState.DEFAULT
    subscribed: bool = False
    is_loading: bool = False
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "supported": self.supported,
            "permission": self.permission.value,
            "subscribed": self.subscribed,
            "is_loading": self.is_loading,
            "error": self.error,
        }


# ============================================================================
# Display Helpers
# ============================================================================


@dataclass(frozen=True)
class SystemNotification:
    """
    Request for a visible system-level notification.

    Notifications sharing a ``tag`` replace each other instead of stacking.
    """

    title: str
    body: str = ""
    tag: str = "default"
    icon: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Route:
    """Navigation target for a notification."""

    view: str
    path: str
    params: Dict[str, Any] = field(default_factory=dict)

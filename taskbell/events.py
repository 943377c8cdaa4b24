"""
Realtime event types and their mapping to notification records.

The three broadcast events are modelled as a tagged union discriminated
on ``type``. Each variant carries only the fields it needs, and a single
exhaustive mapping turns any variant into a NotificationRecord and a
SystemNotification.

Wire payload (all events): {type, task?, follower?, message, timestamp}
"""

import itertools
import time
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from taskbell.models import (
    NotificationKind,
    NotificationRecord,
    SystemNotification,
    utcnow,
)


# ============================================================================
# Constants
# ============================================================================

TASK_CREATED_EVENT = ".task.created"
TASK_SUBMITTED_EVENT = ".task.submitted"
USER_FOLLOWED_EVENT = ".user.followed"

EVENT_KINDS: Dict[str, NotificationKind] = {
    TASK_CREATED_EVENT: NotificationKind.TASK_CREATED,
    TASK_SUBMITTED_EVENT: NotificationKind.TASK_SUBMITTED,
    USER_FOLLOWED_EVENT: NotificationKind.USER_FOLLOWED,
}

DEFAULT_ICON = "/batik.png"
TASK_CREATED_TITLE = "Tugas Baru"
TASK_SUBMITTED_TITLE = "Tugas Dikumpulkan"
USER_FOLLOWED_TITLE = "Follower Baru!"

_sequence = itertools.count(1)


def next_record_id() -> str:
    """Generate a record id for events that carry no usable identifier."""
    return f"{int(time.time() * 1000)}-{next(_sequence)}"


# ============================================================================
# Payload Parts
# ============================================================================


class TaskInfo(BaseModel):
    """Task summary embedded in task events (field names as broadcast)."""

    model_config = ConfigDict(extra="ignore")

    id: int
    judul: str = ""
    deskripsi: Optional[str] = None
    tanggal_deadline: Optional[str] = None
    target: Optional[str] = None


class FollowerInfo(BaseModel):
    """Follower summary embedded in user.followed events."""

    model_config = ConfigDict(extra="ignore")

    id: int
    username: str
    name: str = ""
    avatar: Optional[str] = None


# ============================================================================
# Event Variants
# ============================================================================


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = ""
    timestamp: Optional[str] = None


class TaskCreated(_EventBase):
    """A teacher published a task to the student."""

    type: Literal["task_created"] = "task_created"
    task: TaskInfo


class TaskSubmitted(_EventBase):
    """A student submitted a task to the teacher."""

    type: Literal["task_submitted"] = "task_submitted"
    task: TaskInfo


class UserFollowed(_EventBase):
    """Somebody followed the user."""

    type: Literal["user_followed"] = "user_followed"
    follower: FollowerInfo


AnyEvent = Union[TaskCreated, TaskSubmitted, UserFollowed]

RealtimeEvent = Annotated[AnyEvent, Field(discriminator="type")]

_event_adapter: TypeAdapter = TypeAdapter(RealtimeEvent)


def parse_event(event_name: str, payload: Dict[str, Any]) -> AnyEvent:
    """
    Decode a broadcast payload into its event variant.

    The variant is chosen by the event name; a ``type`` field in the
    payload that disagrees with the name is overridden.

    Args:
        event_name: Listener name (e.g. ".task.created")
        payload: Decoded JSON payload

    Returns:
        The matching event variant

    Raises:
        KeyError: If the event name is not one of the listened events
        pydantic.ValidationError: If required fields are missing
    """
    kind = EVENT_KINDS[event_name]
    return _event_adapter.validate_python({**payload, "type": kind.value})


# ============================================================================
# Mapping
# ============================================================================


def record_id_for(event: AnyEvent) -> str:
    """Events are identified by their broadcast timestamp when present."""
    return event.timestamp or next_record_id()


def to_record(
    event: AnyEvent,
    record_id: Optional[str] = None,
    received_at: Optional[datetime] = None,
) -> NotificationRecord:
    """
    Build the notification record for an event.

    Args:
        event: Decoded event
        record_id: Explicit id (defaults to the event timestamp)
        received_at: Receipt time (defaults to now)

    Returns:
        Unread NotificationRecord
    """
    record_id = record_id or record_id_for(event)
    received_at = received_at or utcnow()

    if isinstance(event, TaskCreated):
        return NotificationRecord(
            id=record_id,
            title=event.task.judul or TASK_CREATED_TITLE,
            body=event.message,
            kind=NotificationKind.TASK_CREATED,
            related_task_id=event.task.id,
            created_at=received_at,
        )
    if isinstance(event, TaskSubmitted):
        return NotificationRecord(
            id=record_id,
            title=TASK_SUBMITTED_TITLE,
            body=event.message,
            kind=NotificationKind.TASK_SUBMITTED,
            related_task_id=event.task.id,
            created_at=received_at,
        )
    if isinstance(event, UserFollowed):
        return NotificationRecord(
            id=record_id,
            title=USER_FOLLOWED_TITLE,
            body=event.message,
            kind=NotificationKind.USER_FOLLOWED,
            related_username=event.follower.username,
            created_at=received_at,
        )
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


def system_notification_for(
    event: AnyEvent,
) -> SystemNotification:
    """
    Build the visible notification for an event.

    Tags are derived from the underlying task or follower, so repeated
    events about the same subject collapse instead of stacking.
    """
    if isinstance(event, TaskCreated):
        return SystemNotification(
            title=event.task.judul or TASK_CREATED_TITLE,
            body=event.message,
            tag=f"task-{event.task.id}",
            icon=DEFAULT_ICON,
            data={"taskId": event.task.id},
        )
    if isinstance(event, TaskSubmitted):
        return SystemNotification(
            title=TASK_SUBMITTED_TITLE,
            body=event.message,
            tag=f"task-submitted-{event.task.id}",
            icon=DEFAULT_ICON,
            data={"taskId": event.task.id},
        )
    if isinstance(event, UserFollowed):
        return SystemNotification(
            title=USER_FOLLOWED_TITLE,
            body=event.message,
            tag=f"user-followed-{event.follower.id}",
            icon=event.follower.avatar or DEFAULT_ICON,
            data={"followerUsername": event.follower.username},
        )
    raise TypeError(f"Unsupported event type: {type(event).__name__}")

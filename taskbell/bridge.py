"""
Background delivery bridge.

Receives push payloads delivered while the client is not the active
listener, shows them as system notifications and forwards them into the
notification store through a bounded queue with a single consumer.

Push payloads reach the bridge either directly (handle_push) or through
the inbox directory, where out-of-process receivers drop one file per
push. Files are processed in name order and removed afterwards.
"""

import asyncio
import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from taskbell.events import DEFAULT_ICON, next_record_id
from taskbell.exceptions import TaskBellError
from taskbell.logging_config import get_logger
from taskbell.models import NotificationKind, NotificationRecord, SystemNotification
from taskbell.platform.base import PushPlatform
from taskbell.store import NotificationStore

logger = get_logger("bridge")


DEFAULT_TITLE = "Notifikasi"
DEFAULT_TAG = "default"
DEFAULT_QUEUE_SIZE = 100
INBOX_SUFFIX = ".push"


# ============================================================================
# Messages
# ============================================================================


class PushPayload(BaseModel):
    """Payload sent by the server through the push service."""

    model_config = ConfigDict(extra="ignore")

    title: str = DEFAULT_TITLE
    body: str = ""
    icon: str = DEFAULT_ICON
    tag: str = DEFAULT_TAG
    data: Dict[str, Any] = Field(default_factory=dict)


class PushMessage(BaseModel):
    """Notification message forwarded from the delivery layer to the store."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = "NEW_NOTIFICATION"
    title: str = DEFAULT_TITLE
    body: str = ""
    task_id: Optional[int] = Field(None, alias="taskId")
    url: Optional[str] = None
    follower_username: Optional[str] = Field(None, alias="followerUsername")
    notification_type: Optional[str] = Field(None, alias="notificationType")


def parse_push(raw: Union[bytes, str]) -> PushPayload:
    """
    Decode a raw push body.

    Non-JSON bodies become a default-titled notification with the text
    as body.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Push body is not JSON, showing it as text")
        return PushPayload(body=text)

    if not isinstance(data, dict):
        return PushPayload(body=text)
    try:
        return PushPayload.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Push payload has invalid fields ({e.error_count()} errors)")
        return PushPayload(body=str(data.get("body", "")))


def message_for(payload: PushPayload) -> PushMessage:
    """Build the message forwarded for a push payload."""
    data = payload.data
    task_id = data.get("taskId")
    try:
        task_id = int(task_id) if task_id is not None else None
    except (TypeError, ValueError):
        task_id = None
    return PushMessage(
        title=payload.title,
        body=payload.body,
        task_id=task_id,
        url=data.get("url"),
        follower_username=data.get("followerUsername"),
        notification_type=data.get("notificationType") or data.get("type"),
    )


def write_inbox_message(inbox_dir: Path, raw: Union[bytes, str]) -> Path:
    """
    Drop a push body into the inbox for the bridge to pick up.

    Returns:
        Path of the written file
    """
    inbox_dir = Path(inbox_dir)
    inbox_dir.mkdir(parents=True, exist_ok=True)
    data = raw.encode("utf-8") if isinstance(raw, str) else raw

    name = f"{time.time_ns()}-{os.getpid()}"
    tmp_path = inbox_dir / f".{name}.tmp"
    tmp_path.write_bytes(data)
    final_path = inbox_dir / f"{name}{INBOX_SUFFIX}"
    os.replace(tmp_path, final_path)
    return final_path


# ============================================================================
# BackgroundDeliveryBridge Class
# ============================================================================


class BackgroundDeliveryBridge:
    """
    One inbound queue, one outbound ``append`` per message.

    Records get a freshly generated id, so a push and a realtime event
    for the same occurrence produce two history entries; the visible
    notifications still collapse through their shared tag.

    Usage:
        >>> bridge = BackgroundDeliveryBridge(store, platform)
        >>> bridge.handle_push(b'{"title": "Tugas Baru", "data": {"taskId": 7}}')
        >>> bridge.process_pending()
        1
    """

    def __init__(
        self,
        store: NotificationStore,
        platform: PushPlatform,
        inbox_dir: Optional[Path] = None,
        maxsize: int = DEFAULT_QUEUE_SIZE,
    ):
        self._store = store
        self._platform = platform
        self.inbox_dir = Path(inbox_dir) if inbox_dir is not None else None
        self._queue: "asyncio.Queue[PushMessage]" = asyncio.Queue(maxsize=maxsize)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # -------------------------------------------------------------------------
    # Producer Side
    # -------------------------------------------------------------------------

    async def deliver(self, message: PushMessage) -> None:
        """Queue a message, waiting while the queue is full."""
        await self._queue.put(message)

    def deliver_nowait(self, message: PushMessage) -> bool:
        """
        Queue a message without waiting.

        Returns:
            False if the queue is full and the message was dropped
        """
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Delivery queue full, dropping '{message.title}'")
            return False
        return True

    def handle_push(self, raw: Union[bytes, str]) -> PushMessage:
        """
        Handle one raw push: show it and queue it for the store.

        Returns:
            The message queued for the store
        """
        payload = parse_push(raw)
        try:
            self._platform.show_notification(
                SystemNotification(
                    title=payload.title,
                    body=payload.body,
                    tag=payload.tag,
                    icon=payload.icon,
                    data=payload.data,
                )
            )
        except (TaskBellError, OSError) as e:
            logger.warning(f"Failed to show push notification: {e}")

        message = message_for(payload)
        self.deliver_nowait(message)
        return message

    def drain_inbox(self) -> int:
        """
        Handle every push file waiting in the inbox.

        Returns:
            Number of files handled
        """
        if self.inbox_dir is None or not self.inbox_dir.is_dir():
            return 0

        handled = 0
        for path in sorted(self.inbox_dir.glob(f"*{INBOX_SUFFIX}")):
            try:
                raw = path.read_bytes()
                path.unlink()
            except OSError as e:
                logger.warning(f"Skipping inbox file {path.name}: {e}")
                continue
            self.handle_push(raw)
            handled += 1

        if handled:
            logger.info(f"Picked up {handled} push message(s) from inbox")
        return handled

    # -------------------------------------------------------------------------
    # Consumer Side
    # -------------------------------------------------------------------------

    @staticmethod
    def to_record(message: PushMessage) -> NotificationRecord:
        """Build a record with a fresh id for a delivered message."""
        return NotificationRecord(
            id=next_record_id(),
            title=message.title or DEFAULT_TITLE,
            body=message.body,
            kind=NotificationKind.parse(message.notification_type),
            related_task_id=message.task_id,
            related_username=message.follower_username,
        )

    def process(self, message: PushMessage) -> bool:
        """Append one message to the store."""
        return self._store.append(self.to_record(message))

    def process_pending(self) -> int:
        """
        Append every queued message without waiting.

        Returns:
            Number of records appended
        """
        appended = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return appended
            try:
                if self.process(message):
                    appended += 1
            finally:
                self._queue.task_done()

    async def run(self) -> None:
        """Consume the queue until cancelled."""
        logger.debug("Background delivery bridge started")
        while True:
            message = await self._queue.get()
            try:
                self.process(message)
            finally:
                self._queue.task_done()

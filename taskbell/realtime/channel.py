"""
Realtime notification channel.

Keeps one authenticated connection per user session, subscribes to the
user's private channel and turns the three broadcast events into
notification records and system notifications.

State machine:
    disconnected -> connecting -> connected -> (error | disconnected)
    connecting -> disconnected when the handshake fails (no retry here)

Nothing in the public interface raises: failures only move the state.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from taskbell.events import (
    EVENT_KINDS,
    AnyEvent,
    parse_event,
    system_notification_for,
    to_record,
)
from taskbell.exceptions import TaskBellError
from taskbell.logging_config import get_logger
from taskbell.models import ConnectionState, NotificationRecord, PermissionState
from taskbell.platform.base import PushPlatform
from taskbell.realtime.pusher import PusherConnection
from taskbell.store import NotificationStore

logger = get_logger("realtime")


CHANNEL_PREFIX = "private-"

ConnectionFactory = Callable[[], PusherConnection]
Authorizer = Callable[[str, str], Awaitable[str]]
StateListener = Callable[[ConnectionState], None]


def channel_name_for(user_id: int) -> str:
    """Wire name of the user's private channel (``private-user.<id>``)."""
    return f"{CHANNEL_PREFIX}user.{user_id}"


class RealtimeChannel:
    """
    Live event feed scoped to the authenticated user.

    Args:
        connection_factory: Creates a fresh, unopened PusherConnection
        authorizer: Signs private channel subscriptions (socket_id, channel)
        store: Notification store receiving the records
        platform: Platform used for permission checks and visible notifications

    Usage:
        >>> channel = RealtimeChannel(factory, registry.authorize_channel, store, platform)
        >>> await channel.connect(42)
        >>> channel.is_connected
        True
        >>> await channel.disconnect()
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        authorizer: Authorizer,
        store: NotificationStore,
        platform: PushPlatform,
    ):
        self._factory = connection_factory
        self._authorizer = authorizer
        self._store = store
        self._platform = platform
        self._state = ConnectionState.DISCONNECTED
        self._user_id: Optional[int] = None
        self._connection: Optional[PusherConnection] = None
        self._reader: Optional[asyncio.Task] = None
        self._state_listeners: List[StateListener] = []
        self.last_notification: Optional[AnyEvent] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def user_id(self) -> Optional[int]:
        return self._user_id

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug(f"Realtime state {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Connection state listener failed")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, user_id: int) -> bool:
        """
        Connect and subscribe to the user's private channel.

        No-op when already connected (or connecting) for the same user; an
        existing connection for another user is torn down first.

        Returns:
            True if the channel is connected afterwards
        """
        if self._user_id == user_id and self._state in (
            ConnectionState.CONNECTED,
            ConnectionState.CONNECTING,
        ):
            return True

        if self._connection is not None or self._user_id is not None:
            await self.disconnect()

        channel = channel_name_for(user_id)
        connection = self._factory()
        self._connection = connection
        self._user_id = user_id
        self._set_state(ConnectionState.CONNECTING)

        try:
            socket_id = await connection.open()
            auth = await self._authorizer(socket_id, channel)
            await connection.subscribe(channel, auth)
        except TaskBellError as e:
            logger.warning(f"Realtime connection for user {user_id} failed: {e}")
            await connection.close()
            if self._connection is connection:
                self._connection = None
                self._user_id = None
                self._set_state(ConnectionState.DISCONNECTED)
            return False

        if self._connection is not connection:
            # Torn down while the handshake was in flight
            await connection.close()
            return False

        self._set_state(ConnectionState.CONNECTED)
        self._reader = asyncio.create_task(self._read_loop(connection, channel))
        logger.info(f"Listening for notifications on {channel}")
        return True

    async def disconnect(self) -> None:
        """Stop listening and release the connection (never raises)."""
        connection, self._connection = self._connection, None
        reader, self._reader = self._reader, None
        user_id, self._user_id = self._user_id, None

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Realtime reader failed during shutdown")

        if connection is not None:
            if user_id is not None and connection.is_open:
                try:
                    await connection.unsubscribe(channel_name_for(user_id))
                except TaskBellError as e:
                    logger.debug(f"Unsubscribe during disconnect failed: {e}")
            await connection.close()
            logger.info("Realtime connection closed")

        self._set_state(ConnectionState.DISCONNECTED)

    async def _read_loop(self, connection: PusherConnection, channel: str) -> None:
        try:
            async for event_channel, event_name, payload in connection.events():
                if event_channel and event_channel != channel:
                    continue
                self.handle_event(f".{event_name}", payload)
        except TaskBellError as e:
            logger.warning(f"Realtime connection lost: {e}")

        if self._connection is connection:
            # Ended without disconnect(): the transport dropped
            self._connection = None
            self._reader = None
            await connection.close()
            self._set_state(ConnectionState.ERROR)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def handle_event(
        self, event_name: str, payload: Dict[str, Any]
    ) -> Optional[NotificationRecord]:
        """
        Process one broadcast event in receipt order.

        Appends the mapped record to the store and, for records not seen
        before, shows a system notification when permission is granted.

        Returns:
            The record built for the event, or None if it was not usable
        """
        if event_name not in EVENT_KINDS:
            logger.debug(f"Ignoring unexpected event {event_name}")
            return None

        try:
            event = parse_event(event_name, payload)
        except ValidationError as e:
            logger.warning(f"Dropping malformed {event_name} event: {e.error_count()} errors")
            return None

        record = to_record(event)
        self.last_notification = event

        if not self._store.append(record):
            return record

        if self._platform.permission() == PermissionState.GRANTED:
            try:
                self._platform.show_notification(system_notification_for(event))
            except (TaskBellError, OSError) as e:
                logger.warning(f"Failed to show notification: {e}")
        return record

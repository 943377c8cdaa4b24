"""
Minimal Pusher protocol (v7) client over websockets.

Laravel Reverb speaks the Pusher channels protocol. This client covers
what the notification channel needs: the connection handshake, private
channel subscription, ping/pong keepalive and application events.

Frames are JSON objects ``{"event", "channel"?, "data"}``; ``data`` of
server frames is usually itself a JSON-encoded string.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from taskbell import __version__
from taskbell.exceptions import ChannelAuthorizationError, TransportError
from taskbell.logging_config import get_logger

logger = get_logger("realtime")


PROTOCOL_VERSION = 7
CLIENT_NAME = "taskbell-python"
DEFAULT_HANDSHAKE_TIMEOUT = 10.0  # seconds

CONNECTION_ESTABLISHED = "pusher:connection_established"
SUBSCRIBE = "pusher:subscribe"
UNSUBSCRIBE = "pusher:unsubscribe"
SUBSCRIPTION_SUCCEEDED = "pusher_internal:subscription_succeeded"
SUBSCRIPTION_ERROR = "pusher:subscription_error"
ERROR = "pusher:error"
PING = "pusher:ping"
PONG = "pusher:pong"

AppEvent = Tuple[str, str, Dict[str, Any]]


def build_url(base_url: str) -> str:
    """Append the protocol query string to ``ws(s)://host:port/app/<key>``."""
    query = urlencode({
        "protocol": PROTOCOL_VERSION,
        "client": CLIENT_NAME,
        "version": __version__,
        "flash": "false",
    })
    return f"{base_url}?{query}"


def decode_data(data: Any) -> Dict[str, Any]:
    """Decode a frame's ``data`` member (JSON string or object)."""
    if isinstance(data, str):
        if not data:
            return {}
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise TransportError(f"Malformed event data: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TransportError(f"Unexpected event data type: {type(data).__name__}")
    return data


class PusherConnection:
    """
    One WebSocket connection speaking the Pusher protocol.

    Usage:
        >>> conn = PusherConnection("ws://localhost:8080/app/local-key")
        >>> socket_id = await conn.open()
        >>> await conn.subscribe("private-user.1", auth)
        >>> async for channel, event, data in conn.events():
        ...     print(event, data)
        >>> await conn.close()
    """

    def __init__(
        self,
        url: str,
        connect: Callable[..., Any] = websockets.connect,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
    ):
        self.url = build_url(url)
        self.socket_id: Optional[str] = None
        self.activity_timeout: Optional[int] = None
        self._connect = connect
        self._handshake_timeout = handshake_timeout
        self._ws = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    async def _send(self, event: str, data: Dict[str, Any]) -> None:
        if self._ws is None:
            raise TransportError("Connection is not open")
        try:
            await self._ws.send(json.dumps({"event": event, "data": data}))
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"Failed to send {event}: {e}")

    async def _recv(self) -> Dict[str, Any]:
        if self._ws is None:
            raise TransportError("Connection is not open")
        raw = await self._ws.recv()
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TransportError(f"Malformed frame: {e}")
        if not isinstance(frame, dict) or "event" not in frame:
            raise TransportError("Frame has no event name")
        return frame

    async def _recv_handshake(self) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(self._recv(), self._handshake_timeout)
        except asyncio.TimeoutError:
            raise TransportError("Timed out waiting for the server")
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed during handshake: {e}")

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    async def open(self) -> str:
        """
        Connect and wait for the connection_established frame.

        Returns:
            The socket id assigned by the server

        Raises:
            TransportError: If the connection or handshake fails
        """
        try:
            self._ws = await asyncio.wait_for(
                self._connect(self.url), self._handshake_timeout
            )
        except asyncio.TimeoutError:
            raise TransportError(f"Timed out connecting to {self.url}")
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}")

        frame = await self._recv_handshake()
        if frame["event"] == ERROR:
            error = decode_data(frame.get("data"))
            raise TransportError(
                f"Server refused connection: {error.get('message')} (code {error.get('code')})"
            )
        if frame["event"] != CONNECTION_ESTABLISHED:
            raise TransportError(f"Unexpected handshake event: {frame['event']}")

        data = decode_data(frame.get("data"))
        self.socket_id = data.get("socket_id")
        if not self.socket_id:
            raise TransportError("Handshake did not include a socket id")
        self.activity_timeout = data.get("activity_timeout")

        logger.debug(f"Connected with socket id {self.socket_id}")
        return self.socket_id

    async def subscribe(self, channel: str, auth: Optional[str] = None) -> None:
        """
        Subscribe to a channel and wait for confirmation.

        Raises:
            ChannelAuthorizationError: If the server rejects the subscription
            TransportError: If the connection fails meanwhile
        """
        payload: Dict[str, Any] = {"channel": channel}
        if auth:
            payload["auth"] = auth
        await self._send(SUBSCRIBE, payload)

        while True:
            frame = await self._recv_handshake()
            event = frame["event"]
            if event == SUBSCRIPTION_SUCCEEDED and frame.get("channel") == channel:
                logger.info(f"Subscribed to {channel}")
                return
            if event == SUBSCRIPTION_ERROR:
                raise ChannelAuthorizationError(f"Subscription to {channel} was rejected")
            if event == ERROR:
                error = decode_data(frame.get("data"))
                raise TransportError(
                    f"Subscription to {channel} failed: {error.get('message')}"
                )
            if event == PING:
                await self._send(PONG, {})
                continue
            logger.debug(f"Ignoring {event} while subscribing")

    async def unsubscribe(self, channel: str) -> None:
        await self._send(UNSUBSCRIBE, {"channel": channel})

    async def events(self) -> AsyncIterator[AppEvent]:
        """
        Yield application events as ``(channel, event_name, data)``.

        Pings are answered here. The iterator ends when the connection is
        closed through close(); any other loss raises TransportError.
        """
        while not self._closing:
            try:
                frame = await self._recv()
            except ConnectionClosedOK:
                if self._closing:
                    return
                raise TransportError("Server closed the connection")
            except ConnectionClosed as e:
                if self._closing:
                    return
                raise TransportError(f"Connection lost: {e}")

            event = frame["event"]
            if event == PING:
                await self._send(PONG, {})
                continue
            if event == ERROR:
                error = decode_data(frame.get("data"))
                logger.warning(f"Server error: {error.get('message')} (code {error.get('code')})")
                continue
            if event.startswith("pusher:") or event.startswith("pusher_internal:"):
                continue

            try:
                data = decode_data(frame.get("data"))
            except TransportError as e:
                logger.warning(f"Dropping {event}: {e}")
                continue
            yield frame.get("channel", ""), event, data

    async def close(self) -> None:
        """Close the socket; safe to call more than once."""
        self._closing = True
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.debug(f"Error while closing socket: {e}")

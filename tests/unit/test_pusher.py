"""
Unit tests for the Pusher protocol connection.

The websockets connection is replaced by a mock whose ``recv`` replays
server frames.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from taskbell.exceptions import ChannelAuthorizationError, TransportError
from taskbell.realtime.pusher import PusherConnection, build_url, decode_data


BASE_URL = "ws://localhost:8080/app/local-key"
CHANNEL = "private-user.42"


def _established(pusher_frame, socket_id="123.456"):
    return pusher_frame(
        "pusher:connection_established",
        {"socket_id": socket_id, "activity_timeout": 30},
    )


def _sent_frames(ws):
    return [json.loads(call.args[0]) for call in ws.send.await_args_list]


@pytest.fixture
def connect(mock_websocket):
    return AsyncMock(return_value=mock_websocket)


@pytest.fixture
def connection(connect):
    return PusherConnection(BASE_URL, connect=connect, handshake_timeout=1.0)


class TestHelpers:
    def test_build_url(self):
        url = build_url(BASE_URL)

        assert url.startswith(BASE_URL + "?")
        assert "protocol=7" in url
        assert "client=taskbell-python" in url
        assert "flash=false" in url

    def test_decode_json_string(self):
        assert decode_data('{"a": 1}') == {"a": 1}

    def test_decode_dict(self):
        assert decode_data({"a": 1}) == {"a": 1}

    def test_decode_empty(self):
        assert decode_data("") == {}
        assert decode_data(None) == {}

    def test_decode_malformed(self):
        with pytest.raises(TransportError):
            decode_data("{broken")

    def test_decode_non_object(self):
        with pytest.raises(TransportError):
            decode_data("[1, 2]")


class TestOpen:
    """Tests for PusherConnection.open()."""

    @pytest.mark.asyncio
    async def test_open_returns_socket_id(self, connection, connect, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [_established(pusher_frame)]

        socket_id = await connection.open()

        assert socket_id == "123.456"
        assert connection.activity_timeout == 30
        assert connection.is_open is True
        connect.assert_awaited_once_with(connection.url)

    @pytest.mark.asyncio
    async def test_connect_failure(self, connect, connection):
        connect.side_effect = OSError("Connection refused")

        with pytest.raises(TransportError, match="Connection refused"):
            await connection.open()

    @pytest.mark.asyncio
    async def test_server_error_during_handshake(self, connection, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [
            pusher_frame("pusher:error", {"message": "Application does not exist", "code": 4001})
        ]

        with pytest.raises(TransportError, match="4001"):
            await connection.open()

    @pytest.mark.asyncio
    async def test_unexpected_first_frame(self, connection, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [pusher_frame("task.created", {})]

        with pytest.raises(TransportError):
            await connection.open()

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, connect, mock_websocket):
        async def never():
            await asyncio.sleep(10)

        mock_websocket.recv.side_effect = never
        connection = PusherConnection(BASE_URL, connect=connect, handshake_timeout=0.01)

        with pytest.raises(TransportError, match="Timed out"):
            await connection.open()

    @pytest.mark.asyncio
    async def test_closed_during_handshake(self, connection, mock_websocket):
        mock_websocket.recv.side_effect = [ConnectionClosedError(None, None)]

        with pytest.raises(TransportError):
            await connection.open()


class TestSubscribe:
    """Tests for PusherConnection.subscribe()."""

    @pytest.mark.asyncio
    async def test_subscribe_sends_auth(self, connection, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [
            _established(pusher_frame),
            pusher_frame("pusher_internal:subscription_succeeded", {}, channel=CHANNEL),
        ]
        await connection.open()

        await connection.subscribe(CHANNEL, "local-key:signature")

        assert _sent_frames(mock_websocket) == [
            {
                "event": "pusher:subscribe",
                "data": {"channel": CHANNEL, "auth": "local-key:signature"},
            }
        ]

    @pytest.mark.asyncio
    async def test_subscribe_answers_ping(self, connection, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [
            _established(pusher_frame),
            pusher_frame("pusher:ping"),
            pusher_frame("pusher_internal:subscription_succeeded", {}, channel=CHANNEL),
        ]
        await connection.open()

        await connection.subscribe(CHANNEL, "auth")

        assert [f["event"] for f in _sent_frames(mock_websocket)] == [
            "pusher:subscribe",
            "pusher:pong",
        ]

    @pytest.mark.asyncio
    async def test_subscription_rejected(self, connection, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [
            _established(pusher_frame),
            pusher_frame("pusher:subscription_error", {"status": 403}, channel=CHANNEL),
        ]
        await connection.open()

        with pytest.raises(ChannelAuthorizationError):
            await connection.subscribe(CHANNEL, "bad")

    @pytest.mark.asyncio
    async def test_subscribe_requires_open_connection(self, connection):
        with pytest.raises(TransportError):
            await connection.subscribe(CHANNEL, "auth")


class TestEvents:
    """Tests for PusherConnection.events()."""

    @pytest.mark.asyncio
    async def test_yields_application_events(
        self, connection, mock_websocket, pusher_frame, task_created_payload
    ):
        mock_websocket.recv.side_effect = [
            _established(pusher_frame),
            pusher_frame("pusher:ping"),
            pusher_frame("pusher_internal:member_added", {}, channel=CHANNEL),
            pusher_frame("task.created", task_created_payload, channel=CHANNEL),
            ConnectionClosedError(None, None),
        ]
        await connection.open()

        received = []
        with pytest.raises(TransportError):
            async for item in connection.events():
                received.append(item)

        assert received == [(CHANNEL, "task.created", task_created_payload)]
        assert {"event": "pusher:pong", "data": {}} in _sent_frames(mock_websocket)

    @pytest.mark.asyncio
    async def test_skips_malformed_data(self, connection, mock_websocket, pusher_frame):
        bad = json.dumps({"event": "task.created", "channel": CHANNEL, "data": "{oops"})
        mock_websocket.recv.side_effect = [
            _established(pusher_frame),
            bad,
            pusher_frame("user.followed", {"follower": {"id": 1}}, channel=CHANNEL),
            ConnectionClosedOK(None, None),
        ]
        await connection.open()

        received = []
        with pytest.raises(TransportError):
            async for item in connection.events():
                received.append(item[1])

        assert received == ["user.followed"]

    @pytest.mark.asyncio
    async def test_ends_quietly_after_close(self, connection, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [_established(pusher_frame)]
        await connection.open()
        await connection.close()

        received = [item async for item in connection.events()]

        assert received == []

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, connection, mock_websocket, pusher_frame):
        mock_websocket.recv.side_effect = [_established(pusher_frame)]
        await connection.open()

        await connection.close()
        await connection.close()

        mock_websocket.close.assert_awaited_once()
        assert connection.is_open is False

"""
Pytest configuration and fixtures for TaskBell client tests.

This module provides shared fixtures for testing the notification
pipeline, including an isolated configuration, fake platforms, mock
registry clients, WebSocket mocks and sample broadcast payloads.
"""

import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskbell.config import ClientConfig
from taskbell.models import NotificationKind, NotificationRecord, PermissionState
from taskbell.platform import FakePushPlatform
from taskbell.registry_client import NotificationRegistryClient
from taskbell.retry import RetryPolicy
from taskbell.store import NotificationStore


# A syntactically valid uncompressed P-256 point, base64url without padding (87 chars)
VAPID_PUBLIC_KEY = (
    "BEl62iUYgUivxIkv69yViEuiBIa-Ib9-SkvMeAtA3LFgDzkrxZJjSgSnfckjBJuBkr3qBUYIHBQFLXYp5Nksh8U"
)

BASE_TIME = datetime(2026, 10, 19, 8, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Point configuration and data paths at a temporary directory.

    Removes any TASKBELL_* variables from the developer's environment so
    tests never touch a real configuration or history.
    """
    for key in list(os.environ):
        if key.startswith("TASKBELL_"):
            monkeypatch.delenv(key, raising=False)

    home = tmp_path / "taskbell-home"
    monkeypatch.setenv("TASKBELL_CONFIG_PATH", str(home / "client-config.yaml"))
    monkeypatch.setenv("TASKBELL_DATA_DIR", str(home / "data"))
    return home


@pytest.fixture
def client_config(isolated_environment: Path) -> ClientConfig:
    """A ClientConfig with a stored session and a push service."""
    config = ClientConfig()
    config.server_url = "http://tasks.test/api"
    config.push_service_url = "https://push.example.test/send"
    config.update_session(42, "1|test-token")
    return config


# ============================================================================
# Component Fixtures
# ============================================================================


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def retry_policy(fake_sleep: FakeSleep) -> RetryPolicy:
    """Default policy (3 attempts, linear backoff) on a fake clock."""
    return RetryPolicy(sleep=fake_sleep)


@pytest.fixture
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "history" / "notification_history.json"


@pytest.fixture
def store(history_path: Path) -> NotificationStore:
    return NotificationStore(history_path)


@pytest.fixture
def fake_platform() -> FakePushPlatform:
    """Supported platform whose permission is already granted."""
    return FakePushPlatform(permission=PermissionState.GRANTED)


@pytest.fixture
def mock_registry() -> MagicMock:
    """
    Mock notification registry client.

    Returns:
        MagicMock with async registry methods
    """
    registry = MagicMock(spec=NotificationRegistryClient)
    registry.get_vapid_public_key = AsyncMock(return_value=VAPID_PUBLIC_KEY)
    registry.subscribe = AsyncMock(return_value={"message": "Subscribed"})
    registry.unsubscribe = AsyncMock(return_value=None)
    registry.send_test = AsyncMock(return_value=True)
    registry.get_subscriptions_count = AsyncMock(return_value=1)
    registry.authorize_channel = AsyncMock(return_value="local-key:signature")
    registry.close = AsyncMock()
    return registry


@pytest.fixture
def mock_websocket() -> MagicMock:
    """
    Create a mock WebSocket connection.

    Returns:
        Mock websockets connection
    """
    ws = MagicMock()
    ws.send = AsyncMock()
    ws.recv = AsyncMock()
    ws.close = AsyncMock()
    ws.__aenter__ = AsyncMock(return_value=ws)
    ws.__aexit__ = AsyncMock()
    return ws


# ============================================================================
# Record and Event Fixtures
# ============================================================================


@pytest.fixture
def make_record() -> Callable[..., NotificationRecord]:
    """Factory for NotificationRecords with sensible defaults."""

    def _make(record_id: str = "e1", **overrides) -> NotificationRecord:
        data = {
            "id": record_id,
            "title": "Tugas Baru",
            "body": "Matematika: Latihan soal bab 3",
            "kind": NotificationKind.TASK_CREATED,
            "related_task_id": 42,
            "created_at": BASE_TIME,
            "read": False,
        }
        data.update(overrides)
        return NotificationRecord(**data)

    return _make


@pytest.fixture
def task_created_payload() -> dict:
    """Payload of a .task.created broadcast."""
    return {
        "type": "task_created",
        "task": {
            "id": 42,
            "judul": "Latihan Soal Bab 3",
            "deskripsi": "Kerjakan nomor 1-10",
            "tanggal_deadline": "2026-10-26",
            "target": "siswa",
        },
        "message": "Guru Budi membuat tugas baru: Latihan Soal Bab 3",
        "timestamp": "2026-10-19T08:00:00.000000Z",
    }


@pytest.fixture
def task_submitted_payload() -> dict:
    """Payload of a .task.submitted broadcast."""
    return {
        "type": "task_submitted",
        "task": {"id": 42, "judul": "Latihan Soal Bab 3", "target": "siswa"},
        "message": "Siti mengumpulkan tugas Latihan Soal Bab 3",
        "timestamp": "2026-10-19T09:30:00.000000Z",
    }


@pytest.fixture
def user_followed_payload() -> dict:
    """Payload of a .user.followed broadcast."""
    return {
        "type": "user_followed",
        "follower": {
            "id": 7,
            "username": "siti",
            "name": "Siti Aminah",
            "avatar": "https://cdn.example.test/avatars/siti.png",
        },
        "message": "Siti Aminah mulai mengikuti Anda",
        "timestamp": "2026-10-19T10:00:00.000000Z",
    }


def _pusher_frame(event: str, data=None, channel: str = None) -> str:
    frame = {"event": event, "data": json.dumps(data if data is not None else {})}
    if channel is not None:
        frame["channel"] = channel
    return json.dumps(frame)


@pytest.fixture
def pusher_frame() -> Callable[..., str]:
    """Serializes server frames the way Reverb sends them (data JSON-encoded)."""
    return _pusher_frame


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Fixed clock one hour after BASE_TIME."""
    return lambda: BASE_TIME + timedelta(hours=1)


@pytest.fixture
def vapid_public_key() -> str:
    return VAPID_PUBLIC_KEY


# ============================================================================
# Realtime Fixtures
# ============================================================================


_STREAM_END = object()


class FakeConnection:
    """
    In-memory stand-in for PusherConnection.

    Events are fed through a queue with push(); end() closes the stream
    and fail() makes it raise.
    """

    def __init__(self, socket_id: str = "1.1"):
        self.socket_id = socket_id
        self.open_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.subscribed: List[tuple] = []
        self.unsubscribed: List[str] = []
        self.closed = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> str:
        if self.gate is not None:
            await self.gate.wait()
        if self.open_error is not None:
            raise self.open_error
        self._open = True
        return self.socket_id

    async def subscribe(self, channel: str, auth: Optional[str] = None) -> None:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.subscribed.append((channel, auth))

    async def unsubscribe(self, channel: str) -> None:
        self.unsubscribed.append(channel)

    async def events(self):
        while True:
            item = await self._queue.get()
            if item is _STREAM_END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self._open = False
        self.closed += 1

    def push(self, event: str, payload: dict, channel: str = "private-user.42") -> None:
        """Queue an application event (wire name, without the leading dot)."""
        self._queue.put_nowait((channel, event, payload))

    def end(self) -> None:
        self._queue.put_nowait(_STREAM_END)

    def fail(self, error: Exception) -> None:
        self._queue.put_nowait(error)


class FakeConnectionFactory:
    """Hands out prepared connections first, then fresh ones."""

    def __init__(self):
        self.created: List[FakeConnection] = []
        self.prepared: List[FakeConnection] = []

    def __call__(self) -> FakeConnection:
        connection = self.prepared.pop(0) if self.prepared else FakeConnection()
        self.created.append(connection)
        return connection


@pytest.fixture
def connection_factory() -> FakeConnectionFactory:
    return FakeConnectionFactory()


@pytest.fixture
def fake_connection_class():
    return FakeConnection


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def run_pending():
    return settle

"""
Push platform adapters.

Provides a unified interface over the environment's notification
capabilities through the PushPlatform abstract base class.

Adapters:
- LocalPushPlatform: Desktop client (files under the data directory)
- FakePushPlatform: In-memory, configurable support and permission

Usage:
    >>> from taskbell.platform import FakePushPlatform
    >>> platform = FakePushPlatform(permission=PermissionState.GRANTED)
    >>> platform.is_supported()
    True
"""

from taskbell.platform.base import PushPlatform
from taskbell.platform.fake_adapter import FakePushPlatform
from taskbell.platform.local_adapter import LocalPushPlatform


__all__ = [
    "PushPlatform",
    "FakePushPlatform",
    "LocalPushPlatform",
]

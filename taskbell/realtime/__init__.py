"""
Realtime event feed over Laravel Reverb (Pusher protocol).

- PusherConnection: WebSocket transport and protocol handshake
- RealtimeChannel: Per-user private channel and event dispatch
"""

from taskbell.realtime.channel import RealtimeChannel, channel_name_for
from taskbell.realtime.pusher import PusherConnection


__all__ = [
    "PusherConnection",
    "RealtimeChannel",
    "channel_name_for",
]

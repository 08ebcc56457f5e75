"""Realtime broadcast bus for order updates, sync progress and notifications."""

from .broadcaster import (
    ADMIN_SUBSCRIBER,
    Channel,
    EventType,
    RealtimeBroadcaster,
    format_sse,
    serialize_payload,
)

__all__ = [
    "ADMIN_SUBSCRIBER",
    "Channel",
    "EventType",
    "RealtimeBroadcaster",
    "format_sse",
    "serialize_payload",
]

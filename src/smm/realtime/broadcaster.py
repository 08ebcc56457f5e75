"""In-process realtime broadcast bus.

Fans sync events out to live client streams (server-sent events). Two
independent subscriber pools exist:

    ORDERS         order_updated and sync_progress events
    NOTIFICATIONS  per-user notification events

Delivery is best-effort. A subscriber callback that raises is logged and
the publish loop moves on to the remaining subscribers. Subscribers live
only as long as their connection; the stream handler must call the
unsubscribe handle when the client goes away.

All state is process-local and single-threaded: every method runs on the
event loop, so plain sets are sufficient.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from itertools import count
from typing import Any, Callable

from ..sync.domain.entities import SyncProgress
from ..sync.domain.ports import IBroadcaster

logger = logging.getLogger(__name__)

# 64-bit columns, sent as strings so clients never lose precision
BIGINT_FIELDS = frozenset({"qty", "remains", "start_count", "min_qty", "max_qty"})

ADMIN_SUBSCRIBER = "admin"

SendFn = Callable[[dict[str, Any]], None]


class Channel(str, Enum):
    ORDERS = "orders"
    NOTIFICATIONS = "notifications"


class EventType(str, Enum):
    CONNECTED = "connected"
    ORDER_UPDATED = "order_updated"
    SYNC_PROGRESS = "sync_progress"
    NOTIFICATION = "notification"


@dataclass(eq=False)
class Subscription:
    """One live client connection."""

    subscriber_id: str
    send: SendFn
    channel: Channel
    id: int = 0
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def serialize_payload(value: Any, key: str | None = None) -> Any:
    """Convert a payload into JSON-safe values.

    BIGINT fields become strings, datetimes become ISO strings and
    Decimals become strings. Nested dicts and lists are handled.
    """
    if isinstance(value, dict):
        return {k: serialize_payload(v, k) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_payload(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if key in BIGINT_FIELDS and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class RealtimeBroadcaster(IBroadcaster):
    """Process-wide publish/subscribe service for client streams.

    Usage:
        broadcaster = RealtimeBroadcaster()
        broadcaster.init()

        unsubscribe = broadcaster.subscribe(queue.put_nowait, "admin")
        try:
            ...  # stream queue contents to the client
        finally:
            unsubscribe()

        broadcaster.shutdown()
    """

    def __init__(self):
        self._pools: dict[Channel, set[Subscription]] = {
            Channel.ORDERS: set(),
            Channel.NOTIFICATIONS: set(),
        }
        self._ids = count(1)
        self._running = False

    # ----------------------------------------
    # Lifecycle
    # ----------------------------------------

    def init(self) -> None:
        self._running = True
        logger.info("Realtime broadcaster started")

    def shutdown(self) -> None:
        """Stop accepting events and drop every subscriber."""
        dropped = sum(len(pool) for pool in self._pools.values())
        for pool in self._pools.values():
            pool.clear()
        self._running = False
        logger.info(f"Realtime broadcaster stopped ({dropped} subscribers dropped)")

    @property
    def is_running(self) -> bool:
        return self._running

    # ----------------------------------------
    # Subscriptions
    # ----------------------------------------

    def subscribe(
        self,
        send: SendFn,
        subscriber_id: str | int,
        channel: Channel = Channel.ORDERS,
    ) -> Callable[[], None]:
        """Register a connection and return its unsubscribe handle.

        Args:
            send: Callback receiving each event dict; must not block
            subscriber_id: ``"admin"`` or the owning user's id
            channel: Subscriber pool to join

        Returns:
            Callable that removes the subscription; safe to call twice
        """
        subscription = Subscription(
            subscriber_id=str(subscriber_id),
            send=send,
            channel=Channel(channel),
            id=next(self._ids),
        )
        pool = self._pools[subscription.channel]
        pool.add(subscription)
        logger.info(
            f"Subscriber {subscription.subscriber_id} connected to {subscription.channel.value} "
            f"({len(pool)} connected)"
        )

        def unsubscribe() -> None:
            if subscription in pool:
                pool.discard(subscription)
                logger.info(
                    f"Subscriber {subscription.subscriber_id} disconnected from "
                    f"{subscription.channel.value} ({len(pool)} connected)"
                )

        return unsubscribe

    def connection_count(self, channel: Channel | None = None) -> int:
        if channel is None:
            return sum(len(pool) for pool in self._pools.values())
        return len(self._pools[Channel(channel)])

    # ----------------------------------------
    # Publishing
    # ----------------------------------------

    def publish_order_update(self, order_id: int, order_data: dict[str, Any]) -> None:
        """Send an order to admins and to the order's owner."""
        owner = order_data.get("user_id")
        if owner is None:
            owner = (order_data.get("user") or {}).get("id")
        addressees = {ADMIN_SUBSCRIBER}
        if owner is not None:
            addressees.add(str(owner))

        message = self._message(
            EventType.ORDER_UPDATED,
            {"order_id": order_id, **order_data},
        )
        self._deliver(
            Channel.ORDERS,
            message,
            lambda sub: sub.subscriber_id in addressees,
        )

    def publish_sync_progress(self, progress: SyncProgress) -> None:
        """Send run progress to every orders-channel subscriber."""
        data = progress.to_dict() if isinstance(progress, SyncProgress) else dict(progress)
        self._deliver(
            Channel.ORDERS,
            self._message(EventType.SYNC_PROGRESS, data),
            lambda sub: True,
        )

    def publish_notification(self, user_id: str | int, notification: dict[str, Any]) -> None:
        """Send a notification to the exact user only."""
        target = str(user_id)
        self._deliver(
            Channel.NOTIFICATIONS,
            self._message(EventType.NOTIFICATION, notification),
            lambda sub: sub.subscriber_id == target,
        )

    @staticmethod
    def _message(event_type: EventType, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "type": event_type.value,
            "data": serialize_payload(data),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _deliver(
        self,
        channel: Channel,
        message: dict[str, Any],
        accept: Callable[[Subscription], bool],
    ) -> int:
        if not self._running:
            logger.debug(f"Broadcaster not running, dropping {message['type']} event")
            return 0

        delivered = 0
        # Copy: a callback may unsubscribe while we iterate
        for subscription in list(self._pools[channel]):
            if not accept(subscription):
                continue
            try:
                subscription.send(message)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Error sending {message['type']} to subscriber "
                    f"{subscription.subscriber_id}: {e}"
                )
        return delivered


def format_sse(message: dict[str, Any], event: str | None = None) -> str:
    """Frame an event dict as a server-sent event."""
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(message, default=str)}\n\n"


__all__ = [
    "ADMIN_SUBSCRIBER",
    "BIGINT_FIELDS",
    "Channel",
    "EventType",
    "RealtimeBroadcaster",
    "Subscription",
    "format_sse",
    "serialize_payload",
]

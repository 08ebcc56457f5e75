"""Tests for the realtime broadcast bus."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.smm.realtime.broadcaster import (
    Channel,
    RealtimeBroadcaster,
    format_sse,
    serialize_payload,
)
from src.smm.sync.domain.entities import SyncProgress


@pytest.fixture
def broadcaster():
    bus = RealtimeBroadcaster()
    bus.init()
    yield bus
    bus.shutdown()


class Inbox:
    """Subscriber callback collecting delivered messages."""

    def __init__(self):
        self.messages: list[dict] = []

    def __call__(self, message: dict) -> None:
        self.messages.append(message)

    @property
    def types(self) -> list[str]:
        return [m["type"] for m in self.messages]


class TestSerializePayload:

    def test_bigint_fields_become_strings(self):
        data = serialize_payload({
            "id": 42,
            "qty": 9007199254740993,
            "remains": 0,
            "start_count": 15,
            "service": {"min_qty": 10, "max_qty": 100000},
        })

        assert data["id"] == 42
        assert data["qty"] == "9007199254740993"
        assert data["remains"] == "0"
        assert data["start_count"] == "15"
        assert data["service"] == {"min_qty": "10", "max_qty": "100000"}

    def test_none_stays_none(self):
        assert serialize_payload({"remains": None}) == {"remains": None}

    def test_datetimes_and_decimals(self):
        when = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        data = serialize_payload({"last_sync_at": when, "charge": Decimal("0.50"), "items": [when]})

        assert data == {
            "last_sync_at": "2026-03-01T12:00:00+00:00",
            "charge": "0.50",
            "items": ["2026-03-01T12:00:00+00:00"],
        }


class TestSubscriptions:

    def test_subscribe_and_unsubscribe(self, broadcaster):
        unsubscribe = broadcaster.subscribe(Inbox(), "admin")
        broadcaster.subscribe(Inbox(), 7, channel=Channel.NOTIFICATIONS)

        assert broadcaster.connection_count() == 2
        assert broadcaster.connection_count(Channel.ORDERS) == 1

        unsubscribe()
        unsubscribe()

        assert broadcaster.connection_count(Channel.ORDERS) == 0
        assert broadcaster.connection_count() == 1

    def test_shutdown_drops_subscribers(self):
        bus = RealtimeBroadcaster()
        bus.init()
        inbox = Inbox()
        bus.subscribe(inbox, "admin")

        bus.shutdown()
        bus.publish_sync_progress(SyncProgress(total=1, processed=0, synced=0))

        assert not bus.is_running
        assert bus.connection_count() == 0
        assert inbox.messages == []

    def test_not_running_drops_events(self):
        bus = RealtimeBroadcaster()
        inbox = Inbox()
        bus.subscribe(inbox, "admin")

        bus.publish_order_update(1, {"user_id": 5})

        assert inbox.messages == []


class TestPublishing:

    def test_order_update_goes_to_admin_and_owner(self, broadcaster):
        admin, owner, stranger = Inbox(), Inbox(), Inbox()
        broadcaster.subscribe(admin, "admin")
        broadcaster.subscribe(owner, "7")
        broadcaster.subscribe(stranger, "8")

        broadcaster.publish_order_update(42, {"user_id": 7, "status": "completed", "remains": 0})

        assert admin.types == ["order_updated"]
        assert owner.types == ["order_updated"]
        assert stranger.messages == []
        data = owner.messages[0]["data"]
        assert data == {"order_id": 42, "user_id": 7, "status": "completed", "remains": "0"}
        assert "timestamp" in owner.messages[0]

    def test_order_update_owner_from_nested_user(self, broadcaster):
        owner = Inbox()
        broadcaster.subscribe(owner, 7)

        broadcaster.publish_order_update(42, {"user": {"id": 7}})

        assert owner.types == ["order_updated"]

    def test_order_update_not_sent_to_notification_pool(self, broadcaster):
        inbox = Inbox()
        broadcaster.subscribe(inbox, "admin", channel=Channel.NOTIFICATIONS)

        broadcaster.publish_order_update(1, {"user_id": 1})

        assert inbox.messages == []

    def test_sync_progress_goes_to_everyone(self, broadcaster):
        inboxes = [Inbox(), Inbox(), Inbox()]
        for subscriber_id, inbox in zip(("admin", "7", "8"), inboxes):
            broadcaster.subscribe(inbox, subscriber_id)

        broadcaster.publish_sync_progress(
            SyncProgress(total=3, processed=1, synced=1, current_order_id=42)
        )

        for inbox in inboxes:
            assert inbox.types == ["sync_progress"]
            assert inbox.messages[0]["data"]["current_order_id"] == 42

    def test_notification_exact_user_only(self, broadcaster):
        user, admin, orders_pool_user = Inbox(), Inbox(), Inbox()
        broadcaster.subscribe(user, "7", channel=Channel.NOTIFICATIONS)
        broadcaster.subscribe(admin, "admin", channel=Channel.NOTIFICATIONS)
        broadcaster.subscribe(orders_pool_user, "7")

        broadcaster.publish_notification(7, {"title": "Order completed", "order_id": 42})

        assert user.types == ["notification"]
        assert admin.messages == []
        assert orders_pool_user.messages == []

    def test_failing_callback_does_not_abort_loop(self, broadcaster):
        def broken(message):
            raise RuntimeError("stream closed")

        healthy = Inbox()
        broadcaster.subscribe(broken, "admin")
        broadcaster.subscribe(healthy, "admin")

        broadcaster.publish_sync_progress(SyncProgress(total=1, processed=1, synced=1))

        assert healthy.types == ["sync_progress"]

    def test_callback_may_unsubscribe_during_delivery(self, broadcaster):
        handles = {}

        def once(message):
            handles["self"]()

        handles["self"] = broadcaster.subscribe(once, "admin")
        other = Inbox()
        broadcaster.subscribe(other, "admin")

        broadcaster.publish_sync_progress(SyncProgress(total=1, processed=0, synced=0))

        assert other.types == ["sync_progress"]
        assert broadcaster.connection_count(Channel.ORDERS) == 1


class TestFormatSse:

    def test_data_frame(self):
        frame = format_sse({"type": "connected", "data": {}})

        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {"type": "connected", "data": {}}

    def test_named_event(self):
        assert format_sse({"a": 1}, event="ping").startswith("event: ping\ndata: ")

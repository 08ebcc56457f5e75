"""Tests for the provider sync HTTP routes.

A fresh FastAPI app is built with the sync routers and every
infrastructure dependency overridden, so no database or provider is
needed.
"""

from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.smm.api.exceptions import CandidateFetchError
from src.smm.config import SyncConfig
from src.smm.realtime.broadcaster import Channel, RealtimeBroadcaster
from src.smm.sync.api import cron_router, health_router, realtime_router, router
from src.smm.sync.api import dependencies
from src.smm.sync.api.realtime_router import _stream
from src.smm.sync.domain.entities import (
    OrderSyncOutcome,
    SyncAction,
    SyncLogFilters,
    SyncOptions,
    SyncProgress,
    SyncRunResult,
)


def make_result(outcomes: list[OrderSyncOutcome] | None = None, total_checked: int | None = None) -> SyncRunResult:
    outcomes = outcomes or []
    now = datetime.now(timezone.utc)
    return SyncRunResult(
        started_at=now,
        synced=sum(1 for o in outcomes if o.outcome == "synced"),
        failed=sum(1 for o in outcomes if o.outcome == "failed"),
        skipped=sum(1 for o in outcomes if o.outcome == "skipped"),
        total_checked=len(outcomes) if total_checked is None else total_checked,
        total_processed=len(outcomes),
        outcomes=outcomes,
        completed_at=now,
    )


class FakeUseCase:
    def __init__(self, result: SyncRunResult | None = None, error: Exception | None = None):
        self.result = result or make_result()
        self.error = error
        self.calls: list[SyncOptions] = []
        self.single_calls: list[tuple[int, SyncOptions]] = []

    async def execute(self, options: SyncOptions) -> SyncRunResult:
        self.calls.append(options)
        if self.error:
            raise self.error
        return self.result

    async def sync_order(self, order_id: int, options: SyncOptions) -> SyncRunResult:
        self.single_calls.append((order_id, options))
        if self.error:
            raise self.error
        return self.result


class FakeScheduler:
    def __init__(self, result: SyncRunResult | None = None, error: Exception | None = None):
        self.result = result or make_result()
        self.error = error
        self.triggered = 0

    async def trigger_now(self) -> SyncRunResult:
        self.triggered += 1
        if self.error:
            raise self.error
        return self.result

    def status(self) -> dict[str, Any]:
        return {"running": True, "total_runs": self.triggered}


class FakeLogRepo:
    def __init__(self, logs: list[dict[str, Any]] | None = None, total: int = 0):
        self.logs = logs or []
        self.total = total
        self.calls: list[tuple[SyncLogFilters, int, int]] = []

    async def list_logs(self, filters, page=1, limit=20):
        self.calls.append((filters, page, limit))
        return self.logs, self.total

    async def stats_since(self, since):
        return [{"status": "success", "action": "cron_sync", "count": 4}]


class FakeOrderRepo:
    async def count_by_provider_status(self):
        return [{"provider_status": "Completed", "count": 9}]


@pytest.fixture
def use_case():
    return FakeUseCase(
        make_result([
            OrderSyncOutcome(order_id=1, outcome="synced", updated=True, new_status="completed"),
            OrderSyncOutcome(order_id=2, outcome="skipped", message="Provider 3 is not active"),
        ])
    )


@pytest.fixture
def scheduler():
    return FakeScheduler(make_result([OrderSyncOutcome(order_id=5, outcome="synced")]))


@pytest.fixture
def log_repo():
    return FakeLogRepo(
        logs=[{
            "id": 1,
            "order_id": 42,
            "provider_id": 3,
            "action": "manual_sync",
            "status": "success",
            "response": '{"status": "Completed"}',
            "error_message": None,
            "created_at": datetime(2026, 5, 1, tzinfo=timezone.utc),
            "order": {"id": 42, "link": "https://x.example", "status": "completed"},
            "provider": {"id": 3, "name": "Main"},
        }],
        total=31,
    )


@pytest.fixture
def sync_config():
    config = SyncConfig()
    config.cron_secret = None
    return config


@pytest.fixture
def app(monkeypatch, use_case, scheduler, log_repo, sync_config):
    monkeypatch.setenv("DISABLE_AUTH", "true")

    app = FastAPI()
    app.include_router(router)
    app.include_router(cron_router)
    app.include_router(realtime_router)
    app.include_router(health_router)

    app.dependency_overrides[dependencies.get_sync_use_case] = lambda: use_case
    app.dependency_overrides[dependencies.get_scheduler] = lambda: scheduler
    app.dependency_overrides[dependencies.get_sync_log_repo] = lambda: log_repo
    app.dependency_overrides[dependencies.get_order_repo] = lambda: FakeOrderRepo()
    app.dependency_overrides[dependencies.get_sync_config] = lambda: sync_config
    app.dependency_overrides[dependencies.get_optional_db_pool] = lambda: None
    app.dependency_overrides[dependencies.get_optional_scheduler] = lambda: scheduler
    app.dependency_overrides[dependencies.get_optional_broadcaster] = lambda: None
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestManualSync:

    def test_requires_ids_or_sync_all(self, client, use_case):
        response = client.post("/api/admin/provider-sync", json={})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Either provide order_ids or set sync_all to true",
            "data": None,
        }
        assert use_case.calls == []

    def test_sync_ids(self, client, use_case):
        response = client.post("/api/admin/provider-sync", json={"orderIds": [1, 2], "providerId": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Manually synced 1 provider orders"
        assert body["data"]["synced_count"] == 1
        assert body["data"]["skipped_count"] == 1
        assert body["data"]["total_processed"] == 2
        assert body["data"]["total_checked"] == 2
        assert body["data"]["results"][0]["new_status"] == "completed"

        options = use_case.calls[0]
        assert options.order_ids == [1, 2]
        assert options.provider_id == 3
        assert options.broadcast is True
        assert options.action == SyncAction.MANUAL_SYNC

    def test_sync_all_snake_case(self, client, use_case):
        response = client.post("/api/admin/provider-sync", json={"sync_all": True})

        assert response.status_code == 200
        assert use_case.calls[0].sync_all is True

    def test_fatal_error_is_sanitized(self, client, use_case):
        use_case.error = CandidateFetchError(
            "Failed to load orders to sync: postgresql://admin:hunter2@db/smm unreachable"
        )

        response = client.post("/api/admin/provider-sync", json={"syncAll": True})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Failed to manually sync provider orders"
        assert "hunter2" not in body["error"]


class TestApiKey:

    def test_missing_key_rejected(self, client, monkeypatch):
        monkeypatch.delenv("DISABLE_AUTH", raising=False)
        monkeypatch.setenv("API_KEY", "admin-key")

        response = client.post("/api/admin/provider-sync", json={"syncAll": True})

        assert response.status_code == 401

    def test_valid_key_accepted(self, client, monkeypatch):
        monkeypatch.delenv("DISABLE_AUTH", raising=False)
        monkeypatch.setenv("API_KEY", "admin-key")

        response = client.post(
            "/api/admin/provider-sync",
            json={"syncAll": True},
            headers={"X-API-Key": "admin-key"},
        )

        assert response.status_code == 200

    def test_unconfigured_key_fails_closed(self, client, monkeypatch):
        monkeypatch.delenv("DISABLE_AUTH", raising=False)
        monkeypatch.delenv("API_KEY", raising=False)

        response = client.get("/api/admin/provider-sync")

        assert response.status_code == 500


class TestSyncLogListing:

    def test_list_logs(self, client, log_repo):
        response = client.get(
            "/api/admin/provider-sync",
            params={"page": 2, "limit": 10, "orderId": 42, "status": "success"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"] == {"page": 2, "limit": 10, "total": 31, "total_pages": 4}
        assert data["logs"][0]["order"]["id"] == 42
        assert data["logs"][0]["provider"]["name"] == "Main"
        assert data["stats"]["last_24_hours"] == [
            {"status": "success", "action": "cron_sync", "count": 4}
        ]
        assert data["stats"]["provider_orders"] == [{"provider_status": "Completed", "count": 9}]

        filters, page, limit = log_repo.calls[0]
        assert filters.order_id == 42
        assert filters.status == "success"
        assert filters.provider_id is None
        assert (page, limit) == (2, 10)

    def test_limit_is_bounded(self, client):
        response = client.get("/api/admin/provider-sync", params={"limit": 500})
        assert response.status_code == 422

    def test_repository_failure(self, client, log_repo):
        async def broken(*args, **kwargs):
            raise RuntimeError("relation provider_order_logs does not exist")

        log_repo.list_logs = broken

        response = client.get("/api/admin/provider-sync")

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to fetch provider sync data"


class TestCronRoutes:

    def test_sync_all(self, client, scheduler):
        response = client.get("/api/cron/sync-provider-orders")

        assert response.status_code == 200
        assert response.json()["data"]["synced_count"] == 1
        assert scheduler.triggered == 1

    def test_sync_all_failure(self, client, scheduler):
        scheduler.error = CandidateFetchError("db down")

        response = client.get("/api/cron/sync-provider-orders")

        assert response.status_code == 500
        assert response.json()["success"] is False

    def test_cron_secret_required(self, client, scheduler, sync_config):
        sync_config.cron_secret = "s3cret"

        assert client.get("/api/cron/sync-provider-orders").status_code == 401
        assert client.get(
            "/api/cron/sync-provider-orders",
            headers={"Authorization": "Bearer wrong"},
        ).status_code == 401

        response = client.get(
            "/api/cron/sync-provider-orders",
            headers={"Authorization": "Bearer s3cret"},
        )
        assert response.status_code == 200
        assert scheduler.triggered == 1

    def test_single_order(self, client, use_case):
        use_case.result = make_result([OrderSyncOutcome(order_id=7, outcome="synced")])

        response = client.post("/api/cron/sync-provider-orders", json={"orderId": 7})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Order 7 synced"

        order_id, options = use_case.single_calls[0]
        assert order_id == 7
        assert options.broadcast is False
        assert options.action == SyncAction.CRON_SYNC

    def test_single_order_failed(self, client, use_case):
        use_case.result = make_result([
            OrderSyncOutcome(order_id=7, outcome="failed", message="Empty response from provider"),
        ])

        response = client.post("/api/cron/sync-provider-orders", json={"order_id": 7})

        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_single_order_not_found(self, client, use_case):
        use_case.result = make_result([], total_checked=0)

        response = client.post("/api/cron/sync-provider-orders", json={"orderId": 999})

        assert response.status_code == 404
        assert response.json()["message"] == "Order 999 not found"


class TestHealth:

    def test_unhealthy_without_database(self, client):
        response = client.get("/api/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["database"]["healthy"] is False
        assert body["scheduler"]["running"] is True
        assert body["realtime"] == {"running": False}

    def test_reports_broadcaster(self, app, client):
        broadcaster = RealtimeBroadcaster()
        broadcaster.init()
        broadcaster.subscribe(lambda m: None, "admin")
        app.dependency_overrides[dependencies.get_optional_broadcaster] = lambda: broadcaster

        body = client.get("/api/health").json()

        assert body["realtime"] == {
            "running": True,
            "orders_connections": 1,
            "notification_connections": 0,
        }


class FakeRequest:
    """Reports a disconnect after a fixed number of checks."""

    def __init__(self, connected_checks: int):
        self.connected_checks = connected_checks
        self.checks = 0

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks > self.connected_checks


class TestEventStream:

    async def test_stream_relays_events_and_pings(self):
        broadcaster = RealtimeBroadcaster()
        broadcaster.init()

        response = _stream(FakeRequest(connected_checks=2), broadcaster, "admin", Channel.ORDERS, 0.01)
        assert response.media_type == "text/event-stream"
        assert response.headers["x-accel-buffering"] == "no"

        frames = response.body_iterator
        connected = await frames.__anext__()
        assert '"type": "connected"' in connected
        assert broadcaster.connection_count(Channel.ORDERS) == 1

        broadcaster.publish_sync_progress(SyncProgress(total=2, processed=1, synced=1))
        progress = await frames.__anext__()
        assert '"type": "sync_progress"' in progress

        ping = await frames.__anext__()
        assert '"type": "ping"' in ping

        with pytest.raises(StopAsyncIteration):
            await frames.__anext__()

        assert broadcaster.connection_count() == 0

    async def test_stream_ends_on_shutdown(self):
        broadcaster = RealtimeBroadcaster()
        broadcaster.init()

        response = _stream(FakeRequest(connected_checks=100), broadcaster, "7", Channel.NOTIFICATIONS, 0.01)
        frames = response.body_iterator
        await frames.__anext__()

        broadcaster.shutdown()

        with pytest.raises(StopAsyncIteration):
            await frames.__anext__()

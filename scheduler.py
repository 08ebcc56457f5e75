#!/usr/bin/env python3
"""Standalone Scheduler for SMM provider order sync.

Runs the periodic provider sync as its own process, for deployments that
keep the API server and the sync loop in separate containers. The loop is
the same SyncScheduler the API server embeds.

Architecture:
    - SyncScheduler loop (sync-all every SYNC_INTERVAL_MINUTES, no broadcast)
    - Graceful shutdown on SIGTERM/SIGINT
    - Configurable via environment variables
    - Health check endpoint via a minimal HTTP server

Environment Variables:
    DATABASE_URL: PostgreSQL connection string (required)
    SYNC_INTERVAL_MINUTES: Minutes between sync runs (default: 5)
    SYNC_ON_STARTUP: Run a sync immediately on startup (default: false)
    SYNC_CONCURRENCY: Orders synced at once (default: 4)
    SYNC_MAX_ORDERS: Orders processed per run (default: 100)
    PROVIDER_DEFAULT_TIMEOUT: Provider timeout in seconds (default: 30)
    HEALTH_CHECK_PORT: Port for health check endpoint (default: 8080, 0 to disable)

Example:
    SYNC_INTERVAL_MINUTES=10 python scheduler.py
"""
import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

from src.smm.api import ProviderClient, close_pool, create_pool  # noqa: E402
from src.smm.config import SchedulerConfig, SyncConfig  # noqa: E402
from src.smm.sync.factory import build_sync_use_case  # noqa: E402
from src.smm.sync.scheduler import SyncScheduler  # noqa: E402

logger = logging.getLogger(__name__)


# ============================================
# Health Check Server
# ============================================

class HealthState:
    """Shared state for health checks."""

    def __init__(self, scheduler: SyncScheduler):
        self.scheduler = scheduler
        self.started_at: datetime = datetime.now(timezone.utc)

    def snapshot(self) -> tuple[int, dict]:
        status = self.scheduler.status()
        healthy = status["running"] and (
            status["last_run_success"] or status["total_runs"] == 0
        )
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "uptime_seconds": round((datetime.now(timezone.utc) - self.started_at).total_seconds()),
            **status,
        }
        return (200 if healthy else 503), body


async def health_check_handler(reader, writer, state: HealthState):
    """Handle HTTP health check requests."""
    # Read request (we don't care about the content)
    await reader.read(1024)

    http_status, payload = state.snapshot()
    body = json.dumps(payload)

    response = (
        f"HTTP/1.1 {http_status} {'OK' if http_status == 200 else 'Service Unavailable'}\r\n"
        f"Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        f"Connection: close\r\n"
        f"\r\n"
        f"{body}"
    )

    writer.write(response.encode())
    await writer.drain()
    writer.close()
    await writer.wait_closed()


async def start_health_server(port: int, state: HealthState):
    """Start the health check HTTP server."""
    if port <= 0:
        return None

    async def handler(reader, writer):
        await health_check_handler(reader, writer, state)

    server = await asyncio.start_server(handler, "0.0.0.0", port)
    logger.info(f"Health check server listening on port {port}")
    return server


# ============================================
# Main Entry Point
# ============================================

async def main():
    """Main entry point for the scheduler."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    sync_config = SyncConfig()
    scheduler_config = SchedulerConfig()
    logger.info(f"Config: {sync_config} {scheduler_config}")

    if not sync_config.database_url:
        logger.error("DATABASE_URL not set, nothing to sync")
        sys.exit(1)

    db_pool = await create_pool(sync_config.database_url)
    client = ProviderClient()
    await client.open()

    scheduler = SyncScheduler(
        build_sync_use_case(db_pool, client, sync_config),
        interval_minutes=scheduler_config.interval_minutes,
        sync_on_startup=scheduler_config.sync_on_startup,
    )
    health_state = HealthState(scheduler)

    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    health_server = await start_health_server(scheduler_config.health_check_port, health_state)

    try:
        scheduler.start()
        await shutdown_event.wait()
    finally:
        logger.info("Cleaning up...")

        await scheduler.stop()

        if health_server:
            health_server.close()
            await health_server.wait_closed()

        await client.close()
        await close_pool(db_pool)

        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())

"""FastAPI dependency injection for the provider sync API.

Lifecycle Management:
- Database pool: initialized at startup, shared across requests
- Provider HTTP client: one aiohttp session for every provider call
- Realtime broadcaster: process-wide subscriber registry
- In-flight registry: shared by every sync run in this process
- Scheduler: periodic sync-all loop, started once at startup

Security:
- Admin and realtime routes require the X-API-Key header (API_KEY)
- Cron routes require ``Authorization: Bearer <CRON_SECRET>`` when
  CRON_SECRET is set
"""

import logging
import os
import secrets
from typing import Optional

import asyncpg
from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ...api.client import ProviderClient
from ...api.database import close_pool, create_pool
from ...config import SchedulerConfig, SyncConfig
from ...realtime.broadcaster import RealtimeBroadcaster
from ..adapters import PostgresOrderRepository, PostgresSyncLogRepository
from ..domain.ports import IOrderRepository, ISyncLogRepository
from ..factory import build_sync_use_case
from ..scheduler import SyncScheduler
from ..use_cases import InFlightRegistry, SyncProviderOrdersUseCase

logger = logging.getLogger(__name__)

# ========== API Key Authentication ==========

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _auth_disabled() -> bool:
    return os.getenv("DISABLE_AUTH", "").lower() == "true"


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> bool:
    """Verify the API key from the request header.

    Security model:
    - If DISABLE_AUTH=true (dev mode): authentication is disabled
    - Otherwise: API_KEY is required (fail-closed)

    Raises:
        HTTPException: 401 if API key is missing or invalid, 500 if the
            server has no API_KEY configured
    """
    if _auth_disabled():
        logger.warning("Authentication disabled (DISABLE_AUTH=true). Only use this in development!")
        return True

    expected_key = os.getenv("API_KEY", "")

    if not expected_key:
        logger.error(
            "API_KEY not set - rejecting request. "
            "Set API_KEY environment variable or DISABLE_AUTH=true for development."
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: API_KEY not set",
        )

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(api_key, expected_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return True


# ========== Global State ==========

_sync_config: Optional[SyncConfig] = None
_db_pool: Optional[asyncpg.Pool] = None
_provider_client: Optional[ProviderClient] = None
_broadcaster: Optional[RealtimeBroadcaster] = None
_in_flight = InFlightRegistry()
_scheduler: Optional[SyncScheduler] = None


def get_sync_config() -> SyncConfig:
    global _sync_config
    if _sync_config is None:
        _sync_config = SyncConfig()
    return _sync_config


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    config: SyncConfig = Depends(get_sync_config),
) -> bool:
    """Require ``Bearer <CRON_SECRET>`` when CRON_SECRET is configured.

    Raises:
        HTTPException: 401 if the bearer token is missing or wrong
    """
    expected = config.cron_secret
    if not expected:
        return True

    if not authorization or not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return True


async def init_db_pool():
    """Initialize the database connection pool.

    Should be called on application startup.
    """
    global _db_pool

    database_url = get_sync_config().database_url
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is required")

    _db_pool = await create_pool(database_url, min_size=2, max_size=10)


async def close_db_pool():
    global _db_pool
    if _db_pool:
        await close_pool(_db_pool)
        _db_pool = None


async def init_provider_client():
    """Open the shared provider HTTP session."""
    global _provider_client
    _provider_client = ProviderClient()
    await _provider_client.open()
    logger.info("Provider HTTP client initialized")


async def close_provider_client():
    global _provider_client
    if _provider_client:
        await _provider_client.close()
        _provider_client = None
        logger.info("Provider HTTP client closed")


def init_broadcaster() -> RealtimeBroadcaster:
    global _broadcaster
    _broadcaster = RealtimeBroadcaster()
    _broadcaster.init()
    return _broadcaster


def close_broadcaster():
    global _broadcaster
    if _broadcaster:
        _broadcaster.shutdown()
        _broadcaster = None


def init_scheduler(config: Optional[SchedulerConfig] = None) -> SyncScheduler:
    """Create the scheduler and start it when SYNC_SCHEDULER_ENABLED is true.

    The scheduler object always exists so the cron route can trigger a
    pass even when the periodic loop is disabled.
    """
    global _scheduler
    config = config or SchedulerConfig()

    use_case = build_sync_use_case(
        get_db_pool(),
        get_provider_client(),
        get_sync_config(),
        broadcaster=None,
        in_flight=_in_flight,
    )
    _scheduler = SyncScheduler(
        use_case,
        interval_minutes=config.interval_minutes,
        sync_on_startup=config.sync_on_startup,
    )
    if config.enabled:
        _scheduler.start()
    else:
        logger.info("Sync scheduler disabled (SYNC_SCHEDULER_ENABLED=false)")
    return _scheduler


async def close_scheduler():
    global _scheduler
    if _scheduler:
        await _scheduler.stop()
        _scheduler = None


# ========== Dependency Functions ==========


def get_db_pool() -> asyncpg.Pool:
    """Get the database connection pool."""
    if _db_pool is None:
        raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")
    return _db_pool


def get_provider_client() -> ProviderClient:
    if _provider_client is None:
        raise RuntimeError(
            "Provider client not initialized. Call init_provider_client() first."
        )
    return _provider_client


def get_broadcaster() -> RealtimeBroadcaster:
    if _broadcaster is None:
        raise RuntimeError("Broadcaster not initialized. Call init_broadcaster() first.")
    return _broadcaster


def get_scheduler() -> SyncScheduler:
    if _scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")
    return _scheduler


def get_optional_scheduler() -> Optional[SyncScheduler]:
    return _scheduler


def get_optional_db_pool() -> Optional[asyncpg.Pool]:
    return _db_pool


def get_optional_broadcaster() -> Optional[RealtimeBroadcaster]:
    return _broadcaster


def get_sync_use_case() -> SyncProviderOrdersUseCase:
    """Use case for manual and single-order runs.

    Shares the in-flight registry with the scheduler so overlapping runs
    never sync the same order twice at once.
    """
    return build_sync_use_case(
        get_db_pool(),
        get_provider_client(),
        get_sync_config(),
        broadcaster=_broadcaster,
        in_flight=_in_flight,
    )


def get_order_repo() -> IOrderRepository:
    return PostgresOrderRepository(get_db_pool())


def get_sync_log_repo() -> ISyncLogRepository:
    return PostgresSyncLogRepository(get_db_pool())

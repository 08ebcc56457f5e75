"""Health endpoint reporting database, scheduler and realtime bus state."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...api.database import check_database_health
from ...realtime.broadcaster import Channel, RealtimeBroadcaster
from ..scheduler import SyncScheduler
from .dependencies import (
    get_optional_broadcaster,
    get_optional_db_pool,
    get_optional_scheduler,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["Health"])


@router.get("")
async def health_check(
    pool=Depends(get_optional_db_pool),
    scheduler: Optional[SyncScheduler] = Depends(get_optional_scheduler),
    broadcaster: Optional[RealtimeBroadcaster] = Depends(get_optional_broadcaster),
):
    """Health check endpoint. Returns 503 when the database is unreachable."""
    database = await check_database_health(pool)

    realtime: dict[str, Any] = {"running": False}
    if broadcaster is not None:
        realtime = {
            "running": broadcaster.is_running,
            "orders_connections": broadcaster.connection_count(Channel.ORDERS),
            "notification_connections": broadcaster.connection_count(Channel.NOTIFICATIONS),
        }

    healthy = database.get("healthy", False)
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "service": "provider-sync",
        "database": database,
        "scheduler": scheduler.status() if scheduler else {"running": False},
        "realtime": realtime,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)

"""FastAPI routers that trigger provider sync runs and expose sync logs.

Admin routes (X-API-Key):
    POST /api/admin/provider-sync   manual sync, broadcasts progress
    GET  /api/admin/provider-sync   paginated sync log with 24h stats

Cron routes (CRON_SECRET bearer when configured):
    GET  /api/cron/sync-provider-orders   scheduled sync-all pass
    POST /api/cron/sync-provider-orders   single-order sync, no broadcast
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ...api.error_sanitizer import sanitize_error_message
from ..domain.entities import SyncAction, SyncLogFilters, SyncOptions, SyncRunResult
from ..domain.ports import IOrderRepository, ISyncLogRepository
from ..scheduler import SyncScheduler
from ..use_cases import SyncProviderOrdersUseCase
from .dependencies import (
    get_order_repo,
    get_scheduler,
    get_sync_log_repo,
    get_sync_use_case,
    verify_api_key,
    verify_cron_secret,
)
from .schemas import (
    ManualSyncRequest,
    PaginationDTO,
    SingleOrderSyncRequest,
    SyncLogDTO,
    SyncLogListData,
    SyncLogListResponse,
    SyncLogStatsDTO,
    SyncResponse,
    SyncRunData,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/provider-sync", tags=["Provider Sync"])
cron_router = APIRouter(prefix="/api/cron", tags=["Cron"])


def _run_data(result: SyncRunResult) -> SyncRunData:
    return SyncRunData(**result.to_dict())


def _error_response(status_code: int, message: str, error: Optional[Exception] = None) -> JSONResponse:
    content = {"success": False, "message": message, "data": None}
    if error is not None:
        content["error"] = sanitize_error_message(str(error))
    return JSONResponse(status_code=status_code, content=content)


# ========== Admin ==========


@router.post("", response_model=SyncResponse)
async def manual_sync(
    body: ManualSyncRequest,
    use_case: SyncProviderOrdersUseCase = Depends(get_sync_use_case),
    _auth: bool = Depends(verify_api_key),
):
    """Sync explicit orders, or every eligible order, right now.

    Progress and order updates are broadcast to connected admin streams.
    """
    if not body.sync_all and not body.order_ids:
        return _error_response(400, "Either provide order_ids or set sync_all to true")

    logger.info(
        f"Manual provider sync triggered: order_ids={body.order_ids}, "
        f"sync_all={body.sync_all}, provider_id={body.provider_id}"
    )

    try:
        result = await use_case.execute(
            SyncOptions(
                order_ids=body.order_ids,
                sync_all=body.sync_all,
                provider_id=body.provider_id,
                broadcast=True,
                action=SyncAction.MANUAL_SYNC,
            )
        )
    except Exception as e:
        logger.exception("Error in manual provider sync")
        return _error_response(500, "Failed to manually sync provider orders", e)

    return SyncResponse(
        success=True,
        message=f"Manually synced {result.synced} provider orders",
        data=_run_data(result),
    )


@router.get("", response_model=SyncLogListResponse)
async def list_sync_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    order_id: Optional[int] = Query(None, alias="orderId"),
    provider_id: Optional[int] = Query(None, alias="providerId"),
    action: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    log_repo: ISyncLogRepository = Depends(get_sync_log_repo),
    order_repo: IOrderRepository = Depends(get_order_repo),
    _auth: bool = Depends(verify_api_key),
):
    """List provider sync logs, newest first, with summary statistics."""
    filters = SyncLogFilters(
        order_id=order_id,
        provider_id=provider_id,
        action=action,
        status=status,
    )

    try:
        logs, total = await log_repo.list_logs(filters, page=page, limit=limit)
        since = datetime.now(timezone.utc) - timedelta(hours=24)
        last_24_hours = await log_repo.stats_since(since)
        provider_orders = await order_repo.count_by_provider_status()
    except Exception as e:
        logger.exception("Error fetching provider sync data")
        return _error_response(500, "Failed to fetch provider sync data", e)

    return SyncLogListResponse(
        success=True,
        data=SyncLogListData(
            logs=[SyncLogDTO(**log) for log in logs],
            pagination=PaginationDTO(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if total else 0,
            ),
            stats=SyncLogStatsDTO(
                last_24_hours=last_24_hours,
                provider_orders=provider_orders,
            ),
        ),
    )


# ========== Cron ==========


@cron_router.get("/sync-provider-orders", response_model=SyncResponse)
async def cron_sync_all(
    scheduler: SyncScheduler = Depends(get_scheduler),
    _auth: bool = Depends(verify_cron_secret),
):
    """Run the scheduled sync-all pass (no broadcast)."""
    try:
        result = await scheduler.trigger_now()
    except Exception as e:
        logger.exception("Error in cron provider sync")
        return _error_response(500, "Failed to sync provider orders", e)

    return SyncResponse(
        success=True,
        message=f"Synced {result.synced} provider orders",
        data=_run_data(result),
    )


@cron_router.post("/sync-provider-orders", response_model=SyncResponse)
async def cron_sync_single(
    body: SingleOrderSyncRequest,
    use_case: SyncProviderOrdersUseCase = Depends(get_sync_use_case),
    _auth: bool = Depends(verify_cron_secret),
):
    """Sync one order by id (no broadcast)."""
    try:
        result = await use_case.sync_order(
            body.order_id,
            SyncOptions(broadcast=False, action=SyncAction.CRON_SYNC),
        )
    except Exception as e:
        logger.exception(f"Error syncing order {body.order_id}")
        return _error_response(500, f"Failed to sync order {body.order_id}", e)

    if result.total_checked == 0:
        return _error_response(404, f"Order {body.order_id} not found")

    outcome = result.outcomes[0]
    return SyncResponse(
        success=outcome.outcome != "failed",
        message=f"Order {body.order_id} {outcome.outcome}",
        data=_run_data(result),
    )

"""Server-sent event streams backed by the realtime broadcaster.

GET /api/realtime/orders           order_updated and sync_progress events
GET /api/notifications/realtime    per-user notification events

Each connection subscribes a queue to the broadcaster, sends a
``connected`` event, then relays queued events with a keep-alive ping
whenever nothing arrives for SSE_KEEPALIVE_SECONDS. The subscription is
removed when the client disconnects or the server shuts down.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from ...config import SyncConfig
from ...realtime.broadcaster import Channel, EventType, RealtimeBroadcaster, format_sse
from .dependencies import get_broadcaster, get_sync_config, verify_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable Nginx buffering
}

MAX_QUEUED_EVENTS = 1000


def _stream(
    request: Request,
    broadcaster: RealtimeBroadcaster,
    subscriber_id: str,
    channel: Channel,
    keepalive_seconds: float,
) -> StreamingResponse:
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=MAX_QUEUED_EVENTS)

    async def event_generator():
        unsubscribe = broadcaster.subscribe(queue.put_nowait, subscriber_id, channel)
        try:
            yield format_sse({
                "type": EventType.CONNECTED.value,
                "data": {"subscriber_id": subscriber_id, "channel": channel.value},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })

            while broadcaster.is_running:
                if await request.is_disconnected():
                    logger.info(f"Client {subscriber_id} disconnected from {channel.value} stream")
                    break

                try:
                    message = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                    yield format_sse(message)
                except asyncio.TimeoutError:
                    yield format_sse({
                        "type": "ping",
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    })

        except asyncio.CancelledError:
            pass
        finally:
            unsubscribe()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/api/realtime/orders")
async def stream_order_updates(
    request: Request,
    subscriber_id: str = Query("admin", alias="subscriberId"),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
    config: SyncConfig = Depends(get_sync_config),
    _auth: bool = Depends(verify_api_key),
):
    """Stream order updates for ``admin`` or a single user id."""
    return _stream(
        request,
        broadcaster,
        subscriber_id,
        Channel.ORDERS,
        config.sse_keepalive_seconds,
    )


@router.get("/api/notifications/realtime")
async def stream_notifications(
    request: Request,
    user_id: str = Query(..., alias="userId"),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
    config: SyncConfig = Depends(get_sync_config),
    _auth: bool = Depends(verify_api_key),
):
    """Stream notifications addressed to one user."""
    return _stream(
        request,
        broadcaster,
        user_id,
        Channel.NOTIFICATIONS,
        config.sse_keepalive_seconds,
    )

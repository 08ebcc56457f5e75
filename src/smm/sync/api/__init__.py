"""FastAPI routes for provider sync: admin, cron, realtime and health."""

from .health_router import router as health_router
from .realtime_router import router as realtime_router
from .router import cron_router, router

__all__ = [
    "cron_router",
    "health_router",
    "realtime_router",
    "router",
]

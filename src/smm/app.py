"""FastAPI application for provider order sync.

This is the main entry point for the sync API server. The lifespan
starts the database pool, the shared provider HTTP client, the realtime
broadcaster and the periodic scheduler, and tears them down in reverse.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .sync.api.dependencies import (
    close_broadcaster,
    close_db_pool,
    close_provider_client,
    close_scheduler,
    init_broadcaster,
    init_db_pool,
    init_provider_client,
    init_scheduler,
)
from .sync.api.health_router import router as health_router
from .sync.api.realtime_router import router as realtime_router
from .sync.api.router import cron_router, router

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: database pool, provider client, broadcaster, scheduler
    - Shutdown: scheduler, broadcaster, provider client, database pool
    """
    logger.info("Starting Provider Sync API...")

    try:
        await init_db_pool()
        logger.info("Database pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise

    await init_provider_client()
    init_broadcaster()
    init_scheduler()

    yield

    # Shutdown (reverse order of initialization)
    logger.info("Shutting down Provider Sync API...")

    await close_scheduler()
    close_broadcaster()
    await close_provider_client()

    await close_db_pool()
    logger.info("Database pool closed")


app = FastAPI(
    title="SMM Provider Sync API",
    description="""
    Reconciles SMM panel orders with third-party provider APIs.

    ## Features

    - **Manual Sync**: Sync selected orders or every eligible order on demand
    - **Sync Logs**: Browse per-order sync attempts with 24h statistics
    - **Cron Trigger**: Run the scheduled pass or sync a single order
    - **Realtime Streams**: Server-sent events for order updates and sync progress
    """,
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "X-API-Key"],
)

app.include_router(router)
app.include_router(cron_router)
app.include_router(realtime_router)
app.include_router(health_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "SMM Provider Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# Entry point for running with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.smm.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )

"""Periodic provider sync scheduler.

Runs a sync-all pass every ``interval_minutes`` without broadcasting,
tagged ``cron_sync``. The scheduler is an explicit component: it is
started once at process initialization, stopped at shutdown, and exposes
``trigger_now()`` for on-demand runs (the cron HTTP route uses it).

A failing run is logged and recorded in the scheduler's health state;
the loop keeps going.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ..api.exceptions import SMMError
from .domain.entities import SyncAction, SyncOptions, SyncRunResult
from .use_cases import SyncProviderOrdersUseCase

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Owns the periodic sync loop and its started/stopped state.

    Example:
        scheduler = SyncScheduler(use_case, interval_minutes=5)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        use_case: SyncProviderOrdersUseCase,
        interval_minutes: float = 5,
        sync_on_startup: bool = False,
    ):
        self.use_case = use_case
        self.interval_minutes = interval_minutes
        self.sync_on_startup = sync_on_startup

        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

        # Health state
        self.started_at: Optional[datetime] = None
        self.last_run_at: Optional[datetime] = None
        self.last_run_success: bool = False
        self.last_result: Optional[SyncRunResult] = None
        self.last_error: Optional[str] = None
        self.total_runs = 0
        self.failed_runs = 0
        self.next_run_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60

    def start(self) -> bool:
        """Start the loop. Returns False if it is already running."""
        if self.is_running:
            logger.info("Sync scheduler already running, ignoring start()")
            return False

        self._shutdown_event = asyncio.Event()
        self.started_at = datetime.now(timezone.utc)
        self._task = asyncio.create_task(self._loop(), name="provider-sync-scheduler")
        logger.info(
            f"Sync scheduler started (every {self.interval_minutes} minutes, "
            f"sync_on_startup={self.sync_on_startup})"
        )
        return True

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal the loop to exit and wait for an in-progress run to finish."""
        if self._task is None:
            return

        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Sync scheduler did not stop within {timeout}s, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            self.next_run_at = None
            logger.info("Sync scheduler stopped")

    async def trigger_now(self) -> SyncRunResult:
        """Run one scheduled pass immediately.

        Raises:
            CandidateFetchError: If the candidate orders cannot be loaded
        """
        options = SyncOptions(
            sync_all=True,
            broadcast=False,
            action=SyncAction.CRON_SYNC,
        )
        try:
            result = await self.use_case.execute(options)
        except Exception as e:
            self._record(None, e)
            raise
        self._record(result, None)
        return result

    async def _run_safely(self) -> None:
        try:
            result = await self.trigger_now()
        except SMMError as e:
            logger.error(f"Scheduled provider sync failed: {e}")
            return
        except Exception as e:
            logger.error(
                f"Scheduled provider sync failed: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return

        logger.info(
            f"Scheduled provider sync complete: {result.synced} synced, "
            f"{result.failed} failed, {result.skipped} skipped"
        )

    async def _loop(self) -> None:
        if self.sync_on_startup:
            logger.info("Running initial provider sync on startup...")
            await self._run_safely()

        while not self._shutdown_event.is_set():
            self.next_run_at = datetime.now(timezone.utc) + timedelta(
                seconds=self.interval_seconds
            )
            logger.debug(f"Next provider sync at {self.next_run_at.isoformat()}")

            try:
                # Wait for either the interval or shutdown
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.interval_seconds,
                )
                break
            except asyncio.TimeoutError:
                pass

            await self._run_safely()

        logger.info("Sync scheduler loop exited")

    def _record(self, result: Optional[SyncRunResult], error: Optional[Exception]) -> None:
        self.total_runs += 1
        self.last_run_at = datetime.now(timezone.utc)
        self.last_result = result
        self.last_run_success = error is None
        self.last_error = str(error) if error else None
        if error is not None:
            self.failed_runs += 1

    def status(self) -> dict[str, Any]:
        """Snapshot for health endpoints."""
        return {
            "running": self.is_running,
            "interval_minutes": self.interval_minutes,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_success": self.last_run_success,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "total_runs": self.total_runs,
            "failed_runs": self.failed_runs,
            "last_result": {
                "synced": self.last_result.synced,
                "failed": self.last_result.failed,
                "skipped": self.last_result.skipped,
            } if self.last_result else None,
        }

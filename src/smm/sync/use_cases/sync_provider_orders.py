"""Sync Provider Orders Use Case - Reconciles local orders with provider APIs.

This use case implements one synchronization pass. It depends on ports
(interfaces) for all external operations, making it fully testable without
infrastructure.

Workflow:
1. Resolve candidate orders (explicit ids, or every eligible order)
2. Cap the candidate set and load the providers it needs
3. For each order, with bounded concurrency:
   build request -> call provider -> parse -> map status -> persist -> log
4. Publish progress and order updates when broadcasting
5. Return run statistics

Only candidate resolution can fail a run. Every per-order failure is caught
at the per-order boundary, logged, counted as failed and the sweep goes on.
"""

import asyncio
import json
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ...api.error_sanitizer import sanitize_error_message
from ...api.exceptions import CandidateFetchError, SMMError
from ..adapters.provider_spec import ProviderApiAdapter
from ..adapters.status_mapper import is_known_status, map_provider_status
from ..domain.entities import (
    Order,
    OrderSyncOutcome,
    OrderUpdate,
    ParsedOrderStatus,
    Provider,
    SyncLogEntry,
    SyncLogStatus,
    SyncOptions,
    SyncProgress,
    SyncRunResult,
)
from ..domain.ports import (
    IBroadcaster,
    IOrderRepository,
    IProviderGateway,
    IProviderRepository,
    ISyncLogRepository,
)

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4
DEFAULT_MAX_ORDERS = 100
DEFAULT_MAX_ERRORS = 10
DEFAULT_FETCH_LIMIT = 200
DEFAULT_MAX_DURATION_SECONDS = 25.0
MAX_ERROR_LENGTH = 200


class InFlightRegistry:
    """Order ids currently being synced, shared across runs.

    A cron tick and a manual sync may overlap; an order held by one run is
    skipped by the other. Check-and-add happens without an await, so it is
    atomic on a single event loop.
    """

    def __init__(self):
        self._order_ids: set[int] = set()

    def try_acquire(self, order_id: int) -> bool:
        if order_id in self._order_ids:
            return False
        self._order_ids.add(order_id)
        return True

    def release(self, order_id: int) -> None:
        self._order_ids.discard(order_id)

    def __contains__(self, order_id: int) -> bool:
        return order_id in self._order_ids

    def __len__(self) -> int:
        return len(self._order_ids)


class SyncProviderOrdersUseCase:
    """Orchestrates one provider order sync pass.

    Example:
        use_case = SyncProviderOrdersUseCase(
            order_repo=PostgresOrderRepository(pool),
            provider_repo=PostgresProviderRepository(pool),
            log_repo=PostgresSyncLogRepository(pool),
            gateway=ProviderHTTPGateway(client),
            broadcaster=broadcaster,
        )
        result = await use_case.execute(SyncOptions(sync_all=True))
    """

    def __init__(
        self,
        order_repo: IOrderRepository,
        provider_repo: IProviderRepository,
        log_repo: ISyncLogRepository,
        gateway: IProviderGateway,
        broadcaster: Optional[IBroadcaster] = None,
        in_flight: Optional[InFlightRegistry] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_orders: int = DEFAULT_MAX_ORDERS,
        max_errors: int = DEFAULT_MAX_ERRORS,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
        default_timeout: float = 30.0,
        max_duration_seconds: Optional[float] = DEFAULT_MAX_DURATION_SECONDS,
        adapter_factory: Callable[[Provider], ProviderApiAdapter] = ProviderApiAdapter,
    ):
        """Initialize the use case with its dependencies.

        Args:
            order_repo: Port for order reads and updates
            provider_repo: Port for provider configuration
            log_repo: Port for the append-only sync log
            gateway: Port for outbound provider calls
            broadcaster: Realtime bus; required only for broadcasting runs
            in_flight: Registry shared with other use case instances
            concurrency: Maximum orders synced at once (1 = sequential)
            max_orders: Maximum orders processed per run
            max_errors: Maximum error messages kept on the result
            fetch_limit: Maximum eligible orders loaded for a sync-all run
            default_timeout: Provider timeout when none is configured
            max_duration_seconds: Wall-clock budget per run; orders not started
                before it runs out are skipped (None = unbounded)
        """
        self.order_repo = order_repo
        self.provider_repo = provider_repo
        self.log_repo = log_repo
        self.gateway = gateway
        self.broadcaster = broadcaster
        self.in_flight = in_flight if in_flight is not None else InFlightRegistry()
        self.concurrency = max(1, concurrency)
        self.max_orders = max_orders
        self.max_errors = max_errors
        self.fetch_limit = fetch_limit
        self.default_timeout = default_timeout
        self.max_duration_seconds = max_duration_seconds
        self.adapter_factory = adapter_factory

    async def execute(self, options: SyncOptions) -> SyncRunResult:
        """Execute one sync pass.

        Args:
            options: Candidate selection, broadcast flag and action tag

        Returns:
            SyncRunResult with per-order outcomes and counters

        Raises:
            ValueError: If neither order ids nor sync_all were given
            CandidateFetchError: If the candidate set cannot be loaded
        """
        if not options.sync_all and not options.order_ids:
            raise ValueError("Either provide order_ids or set sync_all")

        started_at = datetime.now(timezone.utc)
        result = SyncRunResult(started_at=started_at)

        logger.info(
            f"Starting provider sync ({options.action.value}) at {started_at.isoformat()}: "
            f"sync_all={options.sync_all}, order_ids={options.order_ids}, "
            f"provider_id={options.provider_id}"
        )

        # Step 1-2: Resolve candidates and the providers they need
        candidates = await self._resolve_candidates(options)
        limited = candidates[: self.max_orders]
        result.total_checked = len(candidates)
        result.total_processed = len(limited)

        if len(candidates) > len(limited):
            logger.info(
                f"Found {len(candidates)} orders to sync, processing first {len(limited)}"
            )

        providers = await self._load_providers(limited)

        if options.broadcast:
            self._publish_progress(result, len(limited))

        # Step 3: Sync each order with bounded concurrency
        semaphore = asyncio.Semaphore(self.concurrency)
        deadline = (
            time.monotonic() + self.max_duration_seconds
            if self.max_duration_seconds is not None
            else None
        )
        outcomes = await asyncio.gather(
            *(
                self._process_order(
                    order, providers, options, result, semaphore, len(limited), deadline
                )
                for order in limited
            )
        )
        result.outcomes = list(outcomes)
        result.completed_at = datetime.now(timezone.utc)

        logger.info(
            f"Provider sync completed in {result.duration_seconds:.2f}s: "
            f"{result.synced} synced, {result.failed} failed, {result.skipped} skipped "
            f"({result.total_processed}/{result.total_checked} processed)"
        )
        return result

    async def sync_order(self, order_id: int, options: SyncOptions) -> SyncRunResult:
        """Sync a single order by id, reusing the run's options otherwise."""
        return await self.execute(replace(options, order_ids=[order_id], sync_all=False))

    # ----------------------------------------
    # Candidate resolution
    # ----------------------------------------

    async def _resolve_candidates(self, options: SyncOptions) -> list[Order]:
        try:
            if options.order_ids:
                # Preserve caller order, drop duplicates
                order_ids = list(dict.fromkeys(options.order_ids))
                orders = await self.order_repo.get_orders_by_ids(order_ids)
                if options.provider_id is not None:
                    orders = [o for o in orders if o.provider_id == options.provider_id]
            else:
                orders = await self.order_repo.get_eligible_orders(
                    provider_id=options.provider_id,
                    limit=self.fetch_limit,
                )
        except Exception as e:
            logger.error(f"Failed to load orders to sync: {e}")
            raise CandidateFetchError(
                f"Failed to load orders to sync: {e}",
                cause=e,
            )

        # Never count an order twice, even if the repository repeats it
        seen: set[int] = set()
        unique = []
        for order in orders:
            if order.id not in seen:
                seen.add(order.id)
                unique.append(order)
        return unique

    async def _load_providers(self, orders: list[Order]) -> dict[int, Provider]:
        provider_ids = sorted({o.provider_id for o in orders if o.provider_id is not None})
        if not provider_ids:
            return {}
        try:
            return await self.provider_repo.get_providers(provider_ids)
        except Exception as e:
            logger.error(f"Failed to load providers {provider_ids}: {e}")
            raise CandidateFetchError(
                f"Failed to load providers: {e}",
                cause=e,
            )

    # ----------------------------------------
    # Per-order processing
    # ----------------------------------------

    async def _process_order(
        self,
        order: Order,
        providers: dict[int, Provider],
        options: SyncOptions,
        result: SyncRunResult,
        semaphore: asyncio.Semaphore,
        total: int,
        deadline: Optional[float] = None,
    ) -> OrderSyncOutcome:
        provider = providers.get(order.provider_id) if order.provider_id is not None else None
        skip_reason = self._skip_reason(order, provider)

        if skip_reason is None and not self.in_flight.try_acquire(order.id):
            skip_reason = "Order is already being synced by another run"

        if skip_reason is not None:
            logger.info(f"Skipping order {order.id}: {skip_reason}")
            outcome = OrderSyncOutcome(
                order_id=order.id,
                outcome="skipped",
                old_status=order.status,
                message=skip_reason,
            )
        else:
            try:
                async with semaphore:
                    # Checked once a slot is free, when the order would actually start
                    if deadline is not None and time.monotonic() >= deadline:
                        logger.info(f"Skipping order {order.id}: sync time limit reached")
                        outcome = OrderSyncOutcome(
                            order_id=order.id,
                            outcome="skipped",
                            old_status=order.status,
                            message="Sync time limit reached",
                        )
                    else:
                        outcome = await self._sync_one(order, provider, options)
            finally:
                self.in_flight.release(order.id)

        self._tally(result, outcome)

        if options.broadcast:
            if outcome.outcome == "synced":
                await self._publish_order_update(order.id)
            self._publish_progress(result, total, current_order_id=order.id)

        return outcome

    @staticmethod
    def _skip_reason(order: Order, provider: Optional[Provider]) -> Optional[str]:
        if order.provider_id is None:
            return "Service has no linked provider"
        if provider is None:
            return f"Provider {order.provider_id} not found"
        if not provider.is_active:
            return f"Provider {provider.id} is not active"
        if not order.submitted_upstream:
            return "Order has not been submitted to the provider"
        return None

    async def _sync_one(
        self,
        order: Order,
        provider: Provider,
        options: SyncOptions,
    ) -> OrderSyncOutcome:
        """Check one order upstream and persist what the provider reported."""
        raw: Optional[dict[str, Any]] = None
        try:
            adapter = self.adapter_factory(provider)
            request = adapter.build_order_status_request(order.provider_order_id)

            logger.debug(
                f"Checking status for order {order.id} "
                f"(provider order: {order.provider_order_id})"
            )
            raw = await self.gateway.send(
                request,
                timeout_seconds=provider.timeout_seconds or self.default_timeout,
            )
            parsed = adapter.parse_order_status_response(raw)
            update = self._build_update(order, parsed, raw)
            await self.order_repo.apply_update(update)

        except SMMError as e:
            return await self._record_failure(order, provider, options, e, raw)
        except Exception as e:
            logger.exception(f"Unexpected error syncing order {order.id}")
            return await self._record_failure(order, provider, options, e, raw)

        await self._append_log(
            SyncLogEntry(
                order_id=order.id,
                provider_id=provider.id,
                action=options.action,
                status=SyncLogStatus.SUCCESS,
                created_at=update.last_sync_at,
                response=json.dumps(raw, default=str),
            )
        )

        new_status = update.status if update.status is not None else order.status
        updated = (
            new_status != order.status
            or (update.provider_status is not None and update.provider_status != order.provider_status)
            or (update.remains is not None and update.remains != order.remains)
            or (update.start_count is not None and update.start_count != order.start_count)
            or (update.charge is not None and update.charge != order.charge)
        )
        if updated:
            logger.info(
                f"Order {order.id} synced: {order.status} -> {new_status} "
                f"(provider status: {parsed.status})"
            )

        return OrderSyncOutcome(
            order_id=order.id,
            outcome="synced",
            updated=updated,
            old_status=order.status,
            new_status=new_status,
            provider_status=update.provider_status or order.provider_status,
            remains=update.remains,
            start_count=update.start_count,
            charge=update.charge,
        )

    def _build_update(
        self,
        order: Order,
        parsed: ParsedOrderStatus,
        raw: dict[str, Any],
    ) -> OrderUpdate:
        return OrderUpdate(
            order_id=order.id,
            status=self._resolve_status(order, parsed.status),
            provider_status=parsed.status,
            last_sync_at=datetime.now(timezone.utc),
            remains=parsed.remains,
            start_count=parsed.start_count,
            charge=parsed.charge,
            api_response=json.dumps(raw, default=str),
        )

    @staticmethod
    def _resolve_status(order: Order, provider_status: Optional[str]) -> Optional[str]:
        """Map the provider status, never moving a terminal order backward.

        Returns None when the provider reported no status, leaving the
        stored one untouched. An unrecognized string on a terminal order
        keeps the stored status; a recognized one is applied as reported.
        """
        if provider_status is None:
            return None
        if order.is_terminal and not is_known_status(provider_status):
            logger.warning(
                f"Order {order.id} is {order.status}; ignoring unrecognized "
                f"provider status {provider_status!r}"
            )
            return order.status
        return map_provider_status(provider_status).value

    async def _record_failure(
        self,
        order: Order,
        provider: Provider,
        options: SyncOptions,
        error: Exception,
        raw: Optional[dict[str, Any]],
    ) -> OrderSyncOutcome:
        text = error.message if isinstance(error, SMMError) else str(error)
        message = sanitize_error_message(
            text or type(error).__name__,
            max_length=MAX_ERROR_LENGTH,
        )
        logger.error(f"Error syncing order {order.id}: {message}")

        response: dict[str, Any] = {
            "error": message,
            "code": getattr(error, "code", type(error).__name__),
        }
        if raw is not None:
            response["response"] = raw

        await self._append_log(
            SyncLogEntry(
                order_id=order.id,
                provider_id=provider.id,
                action=options.action,
                status=SyncLogStatus.FAILED,
                created_at=datetime.now(timezone.utc),
                response=json.dumps(response, default=str),
                error_message=message,
            )
        )

        return OrderSyncOutcome(
            order_id=order.id,
            outcome="failed",
            old_status=order.status,
            message=message,
        )

    async def _append_log(self, entry: SyncLogEntry) -> None:
        try:
            await self.log_repo.append(entry)
        except Exception as e:
            logger.error(
                f"Failed to write sync log for order {entry.order_id} "
                f"({entry.status.value}): {e}"
            )

    def _tally(self, result: SyncRunResult, outcome: OrderSyncOutcome) -> None:
        if outcome.outcome == "synced":
            result.synced += 1
        elif outcome.outcome == "failed":
            result.failed += 1
            if len(result.errors) < self.max_errors:
                result.errors.append(
                    f"Failed to sync order {outcome.order_id}: {outcome.message}"
                )
        else:
            result.skipped += 1

    # ----------------------------------------
    # Broadcasting
    # ----------------------------------------

    def _publish_progress(
        self,
        result: SyncRunResult,
        total: int,
        current_order_id: Optional[int] = None,
    ) -> None:
        if self.broadcaster is None:
            return
        self.broadcaster.publish_sync_progress(
            SyncProgress(
                total=total,
                processed=result.synced + result.failed + result.skipped,
                synced=result.synced,
                failed=result.failed,
                skipped=result.skipped,
                current_order_id=current_order_id,
            )
        )

    async def _publish_order_update(self, order_id: int) -> None:
        if self.broadcaster is None:
            return
        try:
            snapshot = await self.order_repo.get_order_snapshot(order_id)
        except Exception as e:
            logger.warning(f"Could not load order {order_id} for broadcast: {e}")
            return
        if snapshot is not None:
            self.broadcaster.publish_order_update(order_id, snapshot)

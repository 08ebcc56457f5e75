"""Wiring of the sync use case onto its PostgreSQL and HTTP adapters.

Shared by the FastAPI app and the standalone scheduler process so both
build the orchestrator the same way.
"""

from typing import TYPE_CHECKING, Optional

from ..config import SyncConfig
from .adapters import (
    PostgresOrderRepository,
    PostgresProviderRepository,
    PostgresSyncLogRepository,
    ProviderHTTPGateway,
)
from .domain.ports import IBroadcaster
from .use_cases import InFlightRegistry, SyncProviderOrdersUseCase

if TYPE_CHECKING:
    import asyncpg

    from ..api.client import ProviderClient


def build_sync_use_case(
    pool: "asyncpg.Pool",
    client: "ProviderClient",
    config: SyncConfig,
    broadcaster: Optional[IBroadcaster] = None,
    in_flight: Optional[InFlightRegistry] = None,
) -> SyncProviderOrdersUseCase:
    """Create a SyncProviderOrdersUseCase backed by PostgreSQL and aiohttp."""
    return SyncProviderOrdersUseCase(
        order_repo=PostgresOrderRepository(pool),
        provider_repo=PostgresProviderRepository(
            pool,
            default_timeout=config.provider_default_timeout,
        ),
        log_repo=PostgresSyncLogRepository(pool),
        gateway=ProviderHTTPGateway(client),
        broadcaster=broadcaster,
        in_flight=in_flight,
        concurrency=config.concurrency,
        max_orders=config.max_orders,
        max_errors=config.max_errors,
        max_duration_seconds=config.max_duration_seconds,
        default_timeout=config.provider_default_timeout,
    )

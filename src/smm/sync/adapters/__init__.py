"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- PostgresOrderRepository: PostgreSQL implementation of IOrderRepository
- PostgresProviderRepository: PostgreSQL implementation of IProviderRepository
- PostgresSyncLogRepository: PostgreSQL implementation of ISyncLogRepository
- ProviderHTTPGateway: aiohttp implementation of IProviderGateway

and the pure translation helpers used by the use case:
- ProviderApiAdapter: request building and response parsing per provider
- status_mapper: provider status strings to OrderStatus
"""

from .http_gateway import ProviderHTTPGateway
from .postgres_order_repo import PostgresOrderRepository
from .postgres_provider_repo import PostgresProviderRepository
from .postgres_sync_log_repo import PostgresSyncLogRepository
from .provider_spec import ProviderApiAdapter
from .status_mapper import is_known_status, map_provider_status

__all__ = [
    # Persistence adapters
    "PostgresOrderRepository",
    "PostgresProviderRepository",
    "PostgresSyncLogRepository",
    # Provider adapters
    "ProviderApiAdapter",
    "ProviderHTTPGateway",
    # Status mapping
    "is_known_status",
    "map_provider_status",
]

"""Sync module - Clean Architecture implementation of provider order sync.

Architecture:
    domain/     - Pure domain entities and port interfaces
    use_cases/  - Sync orchestration
    adapters/   - Infrastructure implementations (PostgreSQL, provider HTTP)
    api/        - FastAPI routes that trigger runs and expose sync logs
    scheduler   - Periodic sync-all runs
"""

from .domain.entities import (
    Order,
    OrderStatus,
    Provider,
    ProviderApiSpec,
    SyncAction,
    SyncLogEntry,
    SyncOptions,
    SyncRunResult,
)
from .domain.ports import (
    IBroadcaster,
    IOrderRepository,
    IProviderGateway,
    IProviderRepository,
    ISyncLogRepository,
)

__all__ = [
    # Entities
    "Order",
    "OrderStatus",
    "Provider",
    "ProviderApiSpec",
    "SyncAction",
    "SyncLogEntry",
    "SyncOptions",
    "SyncRunResult",
    # Ports
    "IBroadcaster",
    "IOrderRepository",
    "IProviderGateway",
    "IProviderRepository",
    "ISyncLogRepository",
]

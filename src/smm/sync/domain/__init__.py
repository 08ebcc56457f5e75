"""Domain layer - Pure domain entities and port interfaces.

This layer contains:
- Entities: Orders, providers, sync logs and run results
- Ports: Abstract interfaces for repositories, the provider gateway and the
  realtime broadcaster

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
    TERMINAL_STATUSES,
    Order,
    OrderStatus,
    OrderSyncOutcome,
    OrderUpdate,
    ParsedOrderStatus,
    Provider,
    ProviderApiSpec,
    ProviderRequest,
    SyncAction,
    SyncLogEntry,
    SyncLogFilters,
    SyncLogStatus,
    SyncOptions,
    SyncProgress,
    SyncRunResult,
    is_terminal,
)
from .ports import (
    IBroadcaster,
    IOrderRepository,
    IProviderGateway,
    IProviderRepository,
    ISyncLogRepository,
)

__all__ = [
    # Order Entities
    "Order",
    "OrderStatus",
    "OrderUpdate",
    "TERMINAL_STATUSES",
    "is_terminal",
    # Provider Entities
    "Provider",
    "ProviderApiSpec",
    "ProviderRequest",
    "ParsedOrderStatus",
    # Run Entities
    "SyncAction",
    "SyncLogEntry",
    "SyncLogFilters",
    "SyncLogStatus",
    "SyncOptions",
    "SyncProgress",
    "OrderSyncOutcome",
    "SyncRunResult",
    # Ports
    "IBroadcaster",
    "IOrderRepository",
    "IProviderGateway",
    "IProviderRepository",
    "ISyncLogRepository",
]

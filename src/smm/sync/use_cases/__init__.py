"""Use cases layer - Business logic orchestration for provider order sync.

This layer contains use case classes that orchestrate the sync workflow:
- Resolve candidate orders (via IOrderRepository)
- Check each order upstream (via IProviderGateway and ProviderApiAdapter)
- Persist updates and sync logs (via IOrderRepository/ISyncLogRepository)
- Publish progress (via IBroadcaster)

Use cases depend only on ports, not concrete implementations.
"""

from .sync_provider_orders import InFlightRegistry, SyncProviderOrdersUseCase

__all__ = [
    "InFlightRegistry",
    "SyncProviderOrdersUseCase",
]

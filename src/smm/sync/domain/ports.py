"""Port interfaces for provider order sync.

Ports define the contracts between the sync use case and the infrastructure.
Adapters implement these ports; the use case depends only on the ports, so
it can be exercised in tests with in-memory fakes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from .entities import (
    Order,
    OrderUpdate,
    Provider,
    ProviderRequest,
    SyncLogEntry,
    SyncLogFilters,
    SyncProgress,
)


class IOrderRepository(ABC):
    """Port for order reads and sync updates."""

    @abstractmethod
    async def get_orders_by_ids(self, order_ids: list[int]) -> list[Order]:
        """Fetch exactly the given orders (unknown ids are ignored)."""
        ...

    @abstractmethod
    async def get_eligible_orders(
        self,
        provider_id: int | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        """Fetch orders with a provider order id and a non-terminal status.

        Args:
            provider_id: Restrict to orders whose service uses this provider
            limit: Optional cap on the number of rows returned
        """
        ...

    @abstractmethod
    async def apply_update(self, update: OrderUpdate) -> None:
        """Persist a sync update transactionally.

        Only the fields carried by ``update.changed_fields()`` are written.

        Raises:
            PersistenceError: If the write fails
        """
        ...

    @abstractmethod
    async def get_order_snapshot(self, order_id: int) -> dict[str, Any] | None:
        """Load the order with user/service details for broadcast payloads."""
        ...

    @abstractmethod
    async def count_by_provider_status(self) -> list[dict[str, Any]]:
        """Count upstream-submitted orders grouped by provider status."""
        ...


class IProviderRepository(ABC):
    """Port for read-only provider configuration lookups."""

    @abstractmethod
    async def get_providers(self, provider_ids: list[int]) -> dict[int, Provider]:
        """Fetch providers keyed by id (missing ids are absent)."""
        ...


class ISyncLogRepository(ABC):
    """Port for the append-only provider sync log."""

    @abstractmethod
    async def append(self, entry: SyncLogEntry) -> None:
        """Insert one log entry.

        Raises:
            PersistenceError: If the insert fails
        """
        ...

    @abstractmethod
    async def list_logs(
        self,
        filters: SyncLogFilters,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of log rows (newest first) and the total count."""
        ...

    @abstractmethod
    async def stats_since(self, since: datetime) -> list[dict[str, Any]]:
        """Count log rows grouped by status and action since a timestamp."""
        ...


class IProviderGateway(ABC):
    """Port for executing outbound provider requests."""

    @abstractmethod
    async def send(
        self,
        request: ProviderRequest,
        timeout_seconds: float,
    ) -> dict[str, Any]:
        """Execute a request and return the decoded JSON object.

        Raises:
            ProviderResponseError: Empty or non-JSON body
            APIError: Non-2xx status
            NetworkError: Transport failure or timeout
        """
        ...


class IBroadcaster(ABC):
    """Port for publishing sync events to connected clients."""

    @abstractmethod
    def publish_sync_progress(self, progress: SyncProgress) -> None:
        ...

    @abstractmethod
    def publish_order_update(self, order_id: int, order_data: dict[str, Any]) -> None:
        ...

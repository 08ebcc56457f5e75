"""Domain entities for provider order sync.

These are pure data structures with no infrastructure dependencies.
They represent the core business objects used in sync operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class OrderStatus(str, Enum):
    """Canonical order status vocabulary."""

    PENDING = "pending"
    PROCESSING = "processing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARTIAL = "partial"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.FAILED,
    }
)


def is_terminal(status: str | None) -> bool:
    """Check whether a stored status string is terminal."""
    return status in {s.value for s in TERMINAL_STATUSES}


class SyncAction(str, Enum):
    """Tag recorded on every sync log entry."""

    MANUAL_SYNC = "manual_sync"
    CRON_SYNC = "cron_sync"


class SyncLogStatus(str, Enum):
    """Outcome recorded on a sync log entry."""

    SUCCESS = "success"
    FAILED = "failed"


# ============================================
# Provider Entities
# ============================================


@dataclass
class ProviderApiSpec:
    """Declarative field-name mapping for one provider's wire contract.

    Request-side names say how the panel talks to the provider; response-side
    names say where each value lives in the provider's JSON. Response fields
    accept dotted paths (``data.status``) for nested objects.
    """

    # Request side
    api_key_param: str = "key"
    action_param: str = "action"
    status_action: str = "status"
    order_id_param: str = "order"
    auth_placement: str = "body"  # body | query | header
    auth_header: str = "Authorization"
    request_format: str = "form"  # form | json

    # Response side
    status_field: str = "status"
    remains_field: str | None = "remains"
    start_count_field: str | None = "start_count"
    charge_field: str | None = "charge"
    currency_field: str | None = "currency"
    error_field: str | None = "error"

    REQUIRED_KEYS = (
        "api_key_param",
        "action_param",
        "status_action",
        "order_id_param",
        "status_field",
    )

    @classmethod
    def from_mapping(cls, mapping: dict[str, Any] | None) -> "ProviderApiSpec":
        """Build a spec from stored provider columns, ignoring unknown keys.

        NULL columns fall back to the defaults. Empty strings are kept, so a
        blanked-out required key is caught by validation.
        """
        if not mapping:
            return cls()
        known = {
            k: v
            for k, v in mapping.items()
            if k in cls.__dataclass_fields__ and v is not None
        }
        return cls(**known)

    def missing_keys(self) -> list[str]:
        """Return required mapping keys that are empty."""
        return [key for key in self.REQUIRED_KEYS if not getattr(self, key)]


@dataclass
class Provider:
    """Third-party SMM provider configuration. Read-only to the sync engine."""

    id: int
    name: str = ""
    api_url: str = ""
    api_key: str = ""
    http_method: str = "POST"
    status: str = "active"
    timeout_seconds: int | None = 30
    api_spec: ProviderApiSpec = field(default_factory=ProviderApiSpec)

    @property
    def is_active(self) -> bool:
        """Business rule: only active providers are synced."""
        return self.status == "active"


@dataclass
class ProviderRequest:
    """Concrete outbound HTTP request built from a provider spec."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    body: dict[str, str] | None = None
    body_format: str = "form"


@dataclass
class ParsedOrderStatus:
    """Normalized view of a provider status response.

    ``None`` means the provider did not supply the value; ``0`` is an
    explicit zero and must be persisted.
    """

    status: str | None = None
    remains: int | None = None
    start_count: int | None = None
    charge: Decimal | None = None
    currency: str | None = None


# ============================================
# Order Entities
# ============================================


@dataclass
class Order:
    """Order fields the sync engine reads.

    ``provider_order_id`` is None until the order has been submitted
    upstream; such orders are never eligible for sync.
    """

    id: int
    status: str = OrderStatus.PENDING.value
    provider_order_id: str | None = None
    provider_status: str | None = None
    remains: int | None = None
    start_count: int | None = None
    charge: Decimal | None = None
    link: str | None = None
    qty: int | None = None
    user_id: int | None = None
    service_id: int | None = None
    provider_id: int | None = None
    last_sync_at: datetime | None = None

    @property
    def submitted_upstream(self) -> bool:
        return self.provider_order_id is not None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


@dataclass
class OrderUpdate:
    """Fields to persist after a successful provider check.

    Only non-None fields are written; ``last_sync_at`` is always present.
    ``status`` is None when the provider response carried no status.
    """

    order_id: int
    status: str | None
    provider_status: str | None
    last_sync_at: datetime
    remains: int | None = None
    start_count: int | None = None
    charge: Decimal | None = None
    api_response: str | None = None

    def changed_fields(self) -> dict[str, Any]:
        """Return the column/value pairs this update writes."""
        values = {
            "status": self.status,
            "provider_status": self.provider_status,
            "last_sync_at": self.last_sync_at,
            "remains": self.remains,
            "start_count": self.start_count,
            "charge": self.charge,
            "api_response": self.api_response,
        }
        return {k: v for k, v in values.items() if v is not None}


@dataclass
class SyncLogEntry:
    """Append-only record of one attempted order sync."""

    order_id: int
    provider_id: int
    action: SyncAction
    status: SyncLogStatus
    created_at: datetime
    response: str | None = None
    error_message: str | None = None
    id: int | None = None


# ============================================
# Run Entities
# ============================================


@dataclass
class SyncOptions:
    """Input to one orchestrator run."""

    order_ids: list[int] | None = None
    sync_all: bool = False
    provider_id: int | None = None
    broadcast: bool = False
    action: SyncAction = SyncAction.MANUAL_SYNC


@dataclass
class OrderSyncOutcome:
    """Result for one candidate order within a run."""

    order_id: int
    outcome: str  # synced | failed | skipped
    updated: bool = False
    old_status: str | None = None
    new_status: str | None = None
    provider_status: str | None = None
    remains: int | None = None
    start_count: int | None = None
    charge: Decimal | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "order_id": self.order_id,
            "outcome": self.outcome,
            "updated": self.updated,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "provider_status": self.provider_status,
            "remains": self.remains,
            "start_count": self.start_count,
            "charge": str(self.charge) if self.charge is not None else None,
            "message": self.message,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class SyncRunResult:
    """Aggregate of one orchestrator invocation. Not persisted."""

    started_at: datetime
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    total_checked: int = 0
    total_processed: int = 0
    outcomes: list[OrderSyncOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the trigger response payload."""
        return {
            "synced_count": self.synced,
            "failed_count": self.failed,
            "skipped_count": self.skipped,
            "total_processed": self.total_processed,
            "total_checked": self.total_checked,
            "results": [o.to_dict() for o in self.outcomes],
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class SyncProgress:
    """Payload of a ``sync_progress`` event."""

    total: int
    processed: int
    synced: int
    failed: int = 0
    skipped: int = 0
    current_order_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "total": self.total,
            "processed": self.processed,
            "synced": self.synced,
            "failed": self.failed,
            "skipped": self.skipped,
        }
        if self.current_order_id is not None:
            data["current_order_id"] = self.current_order_id
        return data


@dataclass
class SyncLogFilters:
    """Filters for the admin sync-log listing."""

    order_id: int | None = None
    provider_id: int | None = None
    action: str | None = None
    status: str | None = None

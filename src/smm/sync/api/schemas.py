"""Pydantic schemas for provider sync request/response validation.

Request bodies accept both snake_case and the camelCase keys the admin
dashboard sends (``orderIds``, ``syncAll``, ``providerId``, ``orderId``).
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ManualSyncRequest(BaseModel):
    """Admin-triggered sync of explicit orders or every eligible order."""

    model_config = ConfigDict(populate_by_name=True)

    order_ids: Optional[list[int]] = Field(default=None, alias="orderIds")
    sync_all: bool = Field(default=False, alias="syncAll")
    provider_id: Optional[int] = Field(default=None, alias="providerId")


class SingleOrderSyncRequest(BaseModel):
    """Sync one order by its local id."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: int = Field(alias="orderId")


class SyncRunData(BaseModel):
    """Summary of one sync run."""

    synced_count: int
    failed_count: int = 0
    skipped_count: int = 0
    total_processed: int
    total_checked: int
    results: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SyncResponse(BaseModel):
    success: bool
    message: str
    data: Optional[SyncRunData] = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None
    data: None = None


# ========== Sync Log Listing ==========


class SyncLogOrderDTO(BaseModel):
    id: int
    link: Optional[str] = None
    status: Optional[str] = None
    provider_order_id: Optional[str] = None
    username: Optional[str] = None


class SyncLogProviderDTO(BaseModel):
    id: int
    name: Optional[str] = None


class SyncLogDTO(BaseModel):
    """One provider_order_logs row with order and provider summaries."""

    id: int
    order_id: int
    provider_id: int
    action: str
    status: str
    response: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    order: Optional[SyncLogOrderDTO] = None
    provider: Optional[SyncLogProviderDTO] = None


class PaginationDTO(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class StatusActionCount(BaseModel):
    status: str
    action: str
    count: int


class ProviderStatusCount(BaseModel):
    provider_status: Optional[str] = None
    count: int


class SyncLogStatsDTO(BaseModel):
    last_24_hours: list[StatusActionCount] = Field(default_factory=list)
    provider_orders: list[ProviderStatusCount] = Field(default_factory=list)


class SyncLogListData(BaseModel):
    logs: list[SyncLogDTO]
    pagination: PaginationDTO
    stats: SyncLogStatsDTO


class SyncLogListResponse(BaseModel):
    success: bool = True
    data: SyncLogListData

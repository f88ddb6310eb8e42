"""
Request and response bodies for the HTTP surface.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from app.models.order import Order, OrderStatus, OrderSyncModel
from app.models.query import FilterSpec, SortSpec


class OrderWindow(OrderSyncModel):
    """One slice of the ordered view."""
    total: int
    offset: int
    ids: List[str] = Field(default_factory=list)
    orders: List[Order] = Field(default_factory=list)


class OrderUpdateRequest(OrderSyncModel):
    """PATCH body: either a status move (with timeline note) or raw field changes."""

    status: Optional[OrderStatus] = None
    note: Optional[str] = None
    updated_by: Optional[str] = None
    failure_reason: Optional[str] = None
    changes: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_something(self):
        if self.status is None and not self.changes:
            raise ValueError("Provide a status or at least one field in changes")
        return self


class MutationResponse(OrderSyncModel):
    mutation_id: str
    state: str
    order: Optional[Order] = None


class ViewResponse(OrderSyncModel):
    """Current view configuration and its size."""
    total: int
    filters: FilterSpec
    sort: SortSpec


class ResyncResponse(OrderSyncModel):
    total: int


class HealthResponse(OrderSyncModel):
    status: str
    version: str
    initialized: bool
    loading: bool
    orders: int
    agents: int = 0
    realtime: bool
    last_update_time: Optional[datetime] = None


class ResolveExceptionRequest(OrderSyncModel):
    resolution: str = Field(min_length=1)
    resolved_by: Optional[str] = None


class RefreshResponse(OrderSyncModel):
    total: int

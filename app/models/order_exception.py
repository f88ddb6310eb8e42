"""
Delivery exceptions raised against failed orders.

An exception is open until resolved; resolving stamps resolved_at,
resolved_by and the free-text resolution.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from app.models.order import OrderSyncModel, UtcDatetime
from app.models.updates import utcnow


class ExceptionType(str, Enum):
    DELAYED_DELIVERY = "delayed_delivery"
    FAILED_DELIVERY = "failed_delivery"
    MISSING_LOCATION = "missing_location"
    CUSTOMER_UNAVAILABLE = "customer_unavailable"
    ADDRESS_ISSUE = "address_issue"
    PACKAGE_DAMAGED = "package_damaged"


class ExceptionSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class OrderException(OrderSyncModel):
    id: str
    order_id: str
    type: ExceptionType
    description: str
    severity: ExceptionSeverity = ExceptionSeverity.MEDIUM
    created_at: UtcDatetime = Field(default_factory=utcnow)
    resolved_at: Optional[UtcDatetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None

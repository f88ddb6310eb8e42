"""
Order Models
============

Pydantic models for the order records held by the repository.

Orders round-trip as flat JSON objects with camelCase keys (orderNumber,
customerName, createdAt, ...). Nested objects (addresses, items, timeline
entries) are embedded, not referenced. Snake_case field names are accepted
on input as well.

assigned_driver is a lookup key into the delivery agent registry, not an
owned relation: nothing cascades when an agent goes away.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC so every comparison is tz-aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class OrderSyncModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys and no unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def to_field_names(model_cls: type[BaseModel], data: Mapping[str, Any]) -> Dict[str, Any]:
    """Map camelCase aliases in ``data`` onto field names; drop unknown keys."""
    aliases = {
        (info.alias or name): name for name, info in model_cls.model_fields.items()
    }
    out: Dict[str, Any] = {}
    for key, value in data.items():
        if key in model_cls.model_fields:
            out[key] = value
        elif key in aliases:
            out[aliases[key]] = value
    return out


class OrderStatus(str, Enum):
    """Delivery lifecycle. delivered and failed are terminal."""
    CREATED = "created"
    PACKED = "packed"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.FAILED)


class OrderPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


STATUS_RANK: Dict[OrderStatus, int] = {status: idx for idx, status in enumerate(OrderStatus)}
PRIORITY_RANK: Dict[OrderPriority, int] = {prio: idx for idx, prio in enumerate(OrderPriority)}

# Forward path without the failure branch
STATUS_FLOW: List[OrderStatus] = [
    OrderStatus.CREATED,
    OrderStatus.PACKED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


class Coordinates(OrderSyncModel):
    lat: float
    lng: float


class Address(OrderSyncModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    coordinates: Optional[Coordinates] = None


class OrderItem(OrderSyncModel):
    id: str
    name: str
    quantity: int = Field(ge=0)
    price: float
    sku: str


class TimelineEntry(OrderSyncModel):
    """One status-history entry. The timeline is append-only."""
    status: OrderStatus
    timestamp: UtcDatetime
    note: Optional[str] = None
    updated_by: Optional[str] = None


class Order(OrderSyncModel):
    """A single order record as held by the repository."""

    id: str
    order_number: str
    customer_name: str
    customer_email: str
    customer_phone: str = ""
    status: OrderStatus
    priority: OrderPriority = OrderPriority.NORMAL
    items: List[OrderItem] = Field(default_factory=list)
    total_amount: float = 0.0
    currency: str = "USD"
    shipping_address: Address
    billing_address: Optional[Address] = None
    timeline: List[TimelineEntry] = Field(default_factory=list)
    region: str
    created_at: UtcDatetime
    updated_at: UtcDatetime
    tracking_number: Optional[str] = None
    assigned_driver: Optional[str] = None
    failure_reason: Optional[str] = None
    estimated_delivery: Optional[UtcDatetime] = None
    actual_delivery: Optional[UtcDatetime] = None
    notes: Optional[str] = None

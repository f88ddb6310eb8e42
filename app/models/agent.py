"""
Delivery agent models.

An agent is referenced from Order.assigned_driver by id. The registry holds
agents next to the order table; nothing links the two beyond that key.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import Field

from app.models.order import Coordinates, OrderSyncModel, UtcDatetime
from app.models.updates import utcnow


class AgentStatus(str, Enum):
    AVAILABLE = "available"
    ON_DELIVERY = "on_delivery"
    OFFLINE = "offline"
    BREAK = "break"


class VehicleType(str, Enum):
    BIKE = "bike"
    VAN = "van"
    TRUCK = "truck"


class DeliveryAgent(OrderSyncModel):
    id: str
    name: str
    phone: str = ""
    status: AgentStatus = AgentStatus.AVAILABLE
    current_location: Coordinates
    assigned_orders: List[str] = Field(default_factory=list)
    region: str
    vehicle_type: VehicleType = VehicleType.VAN
    rating: float = Field(default=5.0, ge=0, le=5)
    total_deliveries: int = Field(default=0, ge=0)
    avatar: Optional[str] = None


class AgentLocationUpdate(OrderSyncModel):
    """One position report from the agent push channel."""
    agent_id: str
    lat: float
    lng: float
    timestamp: UtcDatetime = Field(default_factory=utcnow)

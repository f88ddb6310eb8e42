"""
Stats Models
============

Summaries computed over the full, unfiltered repository.
"""

from typing import Dict, List

from pydantic import Field

from app.models.order import OrderPriority, OrderStatus, OrderSyncModel


class OrderStats(OrderSyncModel):
    """Counts by status and priority. Every enum member is present."""
    total: int = 0
    by_status: Dict[OrderStatus, int] = Field(default_factory=dict)
    by_priority: Dict[OrderPriority, int] = Field(default_factory=dict)


class DashboardStats(OrderSyncModel):
    total_orders: int = 0
    orders_today: int = 0
    pending_orders: int = 0        # created + packed
    in_transit: int = 0            # shipped + out_for_delivery
    delivered: int = 0
    failed: int = 0
    avg_delivery_hours: float = 0.0


class RegionStats(OrderSyncModel):
    region: str
    total_orders: int = 0
    delivered: int = 0
    pending: int = 0
    failed: int = 0


class RegionStatsResponse(OrderSyncModel):
    regions: List[RegionStats] = Field(default_factory=list)

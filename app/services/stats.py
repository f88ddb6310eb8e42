"""
Stats Aggregator
================

On-demand full scans over the unfiltered repository snapshot. Nothing is
cached: every call walks the records it is given.
"""

from collections import Counter
from datetime import datetime, time, timezone
from typing import Dict, Iterable, Optional

from app.models.order import Order, OrderPriority, OrderStatus
from app.models.stats import DashboardStats, OrderStats, RegionStats, RegionStatsResponse
from app.models.updates import utcnow

PENDING_STATUSES = frozenset({OrderStatus.CREATED, OrderStatus.PACKED})
IN_TRANSIT_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY})


def compute_stats(snapshot: Iterable[Order]) -> OrderStats:
    """Counts by status and priority; every enum member is present."""
    by_status: Dict[OrderStatus, int] = {status: 0 for status in OrderStatus}
    by_priority: Dict[OrderPriority, int] = {priority: 0 for priority in OrderPriority}
    total = 0
    for order in snapshot:
        total += 1
        by_status[order.status] += 1
        by_priority[order.priority] += 1
    return OrderStats(total=total, by_status=by_status, by_priority=by_priority)


def compute_dashboard_stats(snapshot: Iterable[Order], now: Optional[datetime] = None) -> DashboardStats:
    """Headline numbers for the dashboard.

    "Today" starts at midnight UTC of ``now``. The delivery average is taken
    over every delivered order; one without ``actual_delivery`` contributes
    zero hours but still counts toward the divisor.
    """
    now = now or utcnow()
    midnight = datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)

    counts: Counter = Counter()
    total = today = 0
    delivered_seconds = 0.0
    for order in snapshot:
        total += 1
        counts[order.status] += 1
        if order.created_at >= midnight:
            today += 1
        if order.status is OrderStatus.DELIVERED and order.actual_delivery is not None:
            delivered_seconds += (order.actual_delivery - order.created_at).total_seconds()

    delivered = counts[OrderStatus.DELIVERED]
    avg_hours = delivered_seconds / delivered / 3600 if delivered else 0.0
    return DashboardStats(
        total_orders=total,
        orders_today=today,
        pending_orders=sum(counts[s] for s in PENDING_STATUSES),
        in_transit=sum(counts[s] for s in IN_TRANSIT_STATUSES),
        delivered=delivered,
        failed=counts[OrderStatus.FAILED],
        avg_delivery_hours=round(avg_hours, 1),
    )


def compute_region_stats(snapshot: Iterable[Order]) -> RegionStatsResponse:
    """Per-region totals, regions in alphabetical order."""
    regions: Dict[str, RegionStats] = {}
    for order in snapshot:
        entry = regions.get(order.region)
        if entry is None:
            entry = regions[order.region] = RegionStats(region=order.region)
        entry.total_orders += 1
        if order.status is OrderStatus.DELIVERED:
            entry.delivered += 1
        elif order.status is OrderStatus.FAILED:
            entry.failed += 1
        else:
            entry.pending += 1
    return RegionStatsResponse(regions=[regions[name] for name in sorted(regions)])

"""
Notification center: the user-facing side channel of the ingestion pipeline.

Push updates that touch status produce a notification (delivered -> success,
failed -> error, anything else -> info). Failed mutations and failed loads
produce error notifications. Notifications expire after their duration;
duration 0 keeps one until it is dismissed.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional

from app.models.order import OrderStatus
from app.models.updates import Notification, NotificationType, utcnow

logger = logging.getLogger(__name__)

STATUS_TITLES = {
    OrderStatus.DELIVERED: "Order delivered successfully",
    OrderStatus.FAILED: "Order delivery failed",
    OrderStatus.OUT_FOR_DELIVERY: "Order out for delivery",
    OrderStatus.SHIPPED: "Order shipped",
    OrderStatus.PACKED: "Order packed",
    OrderStatus.CREATED: "Order created",
}


def status_notification_type(status: OrderStatus) -> NotificationType:
    if status is OrderStatus.DELIVERED:
        return NotificationType.SUCCESS
    if status is OrderStatus.FAILED:
        return NotificationType.ERROR
    return NotificationType.INFO


class NotificationCenter:
    """Bounded, in-memory list of active notifications."""

    def __init__(self, default_duration_ms: int = 5000, max_items: int = 100) -> None:
        self._default_duration_ms = default_duration_ms
        self._items: Deque[Notification] = deque(maxlen=max_items)

    def add(
        self,
        type: NotificationType,
        title: str,
        message: Optional[str] = None,
        duration_ms: Optional[int] = None,
        order_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            id=f"notif-{uuid.uuid4().hex[:12]}",
            type=type,
            title=title,
            message=message,
            duration_ms=self._default_duration_ms if duration_ms is None else duration_ms,
            order_id=order_id,
        )
        self._items.append(notification)
        logger.debug("Notification %s: %s", type.value, title)
        return notification

    def notify_status(self, order_id: str, status: OrderStatus, duration_ms: Optional[int] = None) -> Notification:
        return self.add(
            status_notification_type(status),
            STATUS_TITLES[status],
            message=f"Order {order_id[:8]}...",
            duration_ms=duration_ms,
            order_id=order_id,
        )

    def remove(self, notification_id: str) -> bool:
        for item in list(self._items):
            if item.id == notification_id:
                self._items.remove(item)
                return True
        return False

    def active(self, now: Optional[datetime] = None) -> List[Notification]:
        """Unexpired notifications, oldest first. Prunes expired ones."""
        now = now or utcnow()
        expired = [n for n in self._items if n.expired(now)]
        for item in expired:
            self._items.remove(item)
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

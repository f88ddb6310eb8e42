"""
Tests for the notification center.
"""

from datetime import timedelta

from app.models.order import OrderStatus
from app.models.updates import NotificationType, utcnow
from app.services.notifications import NotificationCenter, status_notification_type


class TestNotificationCenter:

    def test_add_and_list(self):
        center = NotificationCenter()
        n = center.add(NotificationType.INFO, "Hello", message="world")
        assert center.active() == [n]
        assert n.duration_ms == 5000
        assert n.id.startswith("notif-")

    def test_expired_notifications_are_pruned(self):
        center = NotificationCenter(default_duration_ms=1000)
        center.add(NotificationType.INFO, "Short")
        assert center.active(now=utcnow() + timedelta(seconds=2)) == []
        assert len(center) == 0

    def test_zero_duration_never_expires(self):
        center = NotificationCenter()
        sticky = center.add(NotificationType.ERROR, "Sticky", duration_ms=0)
        assert center.active(now=utcnow() + timedelta(days=1)) == [sticky]

    def test_remove(self):
        center = NotificationCenter()
        n = center.add(NotificationType.WARNING, "Dismiss me")
        assert center.remove(n.id) is True
        assert center.remove(n.id) is False
        assert len(center) == 0

    def test_bounded(self):
        center = NotificationCenter(max_items=3)
        for i in range(5):
            center.add(NotificationType.INFO, f"n{i}")
        assert [n.title for n in center.active()] == ["n2", "n3", "n4"]

    def test_status_notification(self):
        center = NotificationCenter()
        n = center.notify_status("order-1234567890", OrderStatus.DELIVERED, duration_ms=3000)
        assert n.type is NotificationType.SUCCESS
        assert n.title == "Order delivered successfully"
        assert n.message == "Order order-12..."
        assert n.order_id == "order-1234567890"
        assert n.duration_ms == 3000

    def test_status_type_mapping(self):
        assert status_notification_type(OrderStatus.DELIVERED) is NotificationType.SUCCESS
        assert status_notification_type(OrderStatus.FAILED) is NotificationType.ERROR
        assert status_notification_type(OrderStatus.SHIPPED) is NotificationType.INFO

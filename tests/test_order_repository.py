"""
Tests for the order repository: bulk replace, field-level merges, silent
drops and listener notifications.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from app.models.order import OrderPriority, OrderStatus
from app.services.order_repository import OrderRepository

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _loaded(orders):
    repo = OrderRepository()
    repo.replace_all(orders)
    return repo


class TestReplaceAll:

    def test_replace_marks_initialized(self, sample_orders):
        repo = OrderRepository()
        assert not repo.initialized
        repo.replace_all(sample_orders)
        assert repo.initialized
        assert len(repo) == 6
        assert "order-3" in repo

    def test_replace_discards_previous_records(self, sample_orders, order_factory):
        repo = _loaded(sample_orders)
        repo.replace_all([order_factory(99)])
        assert repo.ids() == ["order-99"]
        assert repo.get("order-0") is None

    def test_duplicate_ids_keep_last(self, order_factory):
        first = order_factory(1, customer_name="First")
        second = order_factory(1, customer_name="Second")
        repo = _loaded([first, second])
        assert len(repo) == 1
        assert repo.get("order-1").customer_name == "Second"

    def test_reset_returns_to_uninitialized(self, sample_orders):
        repo = _loaded(sample_orders)
        repo.reset()
        assert not repo.initialized
        assert len(repo) == 0

    def test_replace_listener_fires(self, sample_orders):
        repo = OrderRepository()
        listener = MagicMock()
        repo.add_replace_listener(listener)
        repo.replace_all(sample_orders)
        listener.assert_called_once_with()


class TestMerge:

    def test_merge_overwrites_only_given_fields(self, sample_orders):
        repo = _loaded(sample_orders)
        before = repo.get("order-1")
        updated = repo.merge("order-1", {"status": "shipped"}, timestamp=BASE_TIME + timedelta(days=1))
        assert updated.status is OrderStatus.SHIPPED
        assert updated.customer_name == before.customer_name
        assert updated.priority is before.priority
        assert updated.updated_at == BASE_TIME + timedelta(days=1)

    def test_merge_accepts_camel_case_keys(self, sample_orders):
        repo = _loaded(sample_orders)
        updated = repo.merge("order-0", {"assignedDriver": "driver-3", "trackingNumber": "TRK-X"})
        assert updated.assigned_driver == "driver-3"
        assert updated.tracking_number == "TRK-X"

    def test_merge_is_copy_on_write(self, sample_orders):
        repo = _loaded(sample_orders)
        held = repo.get("order-0")
        repo.merge("order-0", {"notes": "leave at door"})
        assert held.notes is None
        assert repo.get("order-0").notes == "leave at door"

    def test_merge_unknown_id_is_silent_noop(self, sample_orders):
        repo = _loaded(sample_orders)
        version = repo.version
        snapshot = repo.snapshot()
        listener = MagicMock()
        repo.add_merge_listener(listener)

        assert repo.merge("order-404", {"status": "delivered"}) is None

        assert repo.version == version
        assert repo.snapshot() == snapshot
        listener.assert_not_called()

    def test_merge_is_idempotent(self, sample_orders):
        repo = _loaded(sample_orders)
        stamp = BASE_TIME + timedelta(days=2)
        changes = {"priority": "urgent", "notes": "fragile"}
        once = repo.merge("order-2", changes, timestamp=stamp)
        twice = repo.merge("order-2", changes, timestamp=stamp)
        assert once.model_dump() == twice.model_dump()

    def test_updated_at_never_moves_backwards(self, sample_orders):
        repo = _loaded(sample_orders)
        later = BASE_TIME + timedelta(days=3)
        repo.merge("order-0", {"notes": "a"}, timestamp=later)
        updated = repo.merge("order-0", {"notes": "b"}, timestamp=BASE_TIME - timedelta(days=30))
        assert updated.notes == "b"
        assert updated.updated_at == later

    def test_updated_at_from_changes_is_used(self, sample_orders):
        repo = _loaded(sample_orders)
        stamp = BASE_TIME + timedelta(days=4)
        updated = repo.merge("order-0", {"updatedAt": stamp.isoformat()})
        assert updated.updated_at == stamp

    def test_id_cannot_be_overwritten(self, sample_orders):
        repo = _loaded(sample_orders)
        updated = repo.merge("order-0", {"id": "order-hijack"})
        assert updated.id == "order-0"
        assert "order-hijack" not in repo

    def test_invalid_values_are_dropped_field_by_field(self, sample_orders):
        repo = _loaded(sample_orders)
        updated = repo.merge("order-0", {"status": "teleported", "notes": "still applied"})
        assert updated.status is OrderStatus.CREATED
        assert updated.notes == "still applied"

    def test_unknown_keys_are_ignored(self, sample_orders):
        repo = _loaded(sample_orders)
        updated = repo.merge("order-0", {"warpFactor": 9, "priority": "high"})
        assert updated.priority is OrderPriority.HIGH
        assert not hasattr(updated, "warp_factor")

    def test_merge_listener_receives_old_and_new(self, sample_orders):
        repo = _loaded(sample_orders)
        listener = MagicMock()
        repo.add_merge_listener(listener)
        old = repo.get("order-1")
        new = repo.merge("order-1", {"status": "shipped"})
        listener.assert_called_once_with(old, new)
        assert repo.version > 1


class TestBatchMerge:

    def test_batch_uses_one_timestamp(self, sample_orders):
        repo = _loaded(sample_orders)
        stamp = BASE_TIME + timedelta(days=5)
        updated = repo.batch_merge(
            [("order-0", {"status": "packed"}), ("order-1", {"status": "shipped"})],
            timestamp=stamp,
        )
        assert [o.id for o in updated] == ["order-0", "order-1"]
        assert {o.updated_at for o in updated} == {stamp}

    def test_batch_skips_unknown_ids(self, sample_orders):
        repo = _loaded(sample_orders)
        updated = repo.batch_merge([("ghost", {"status": "packed"}), ("order-0", {"notes": "x"})])
        assert [o.id for o in updated] == ["order-0"]

    def test_batch_applies_in_arrival_order(self, sample_orders):
        repo = _loaded(sample_orders)
        repo.batch_merge([("order-0", {"notes": "first"}), ("order-0", {"notes": "second"})])
        assert repo.get("order-0").notes == "second"

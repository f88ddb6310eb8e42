"""
Tests for FilterSpec / SortSpec normalization and the order wire format.
"""

from datetime import datetime, timezone

from app.models.order import OrderPriority, OrderStatus
from app.models.query import DateRange, FilterSpec, SortDirection, SortField, SortSpec
from app.models.updates import UpdateEnvelope


class TestFilterSpec:

    def test_normalizes_members(self):
        spec = FilterSpec.normalize({"status": ["Shipped", "bogus", OrderStatus.FAILED], "priority": "urgent"})
        assert spec.status == frozenset({OrderStatus.SHIPPED, OrderStatus.FAILED})
        assert spec.priority == frozenset({OrderPriority.URGENT})

    def test_empty_sets_mean_no_constraint(self):
        spec = FilterSpec.normalize({"status": [], "region": ["", "  "]})
        assert spec.status is None
        assert spec.region is None
        assert spec.is_empty

    def test_search_is_trimmed(self):
        assert FilterSpec.normalize({"search": "  smith "}).search == "smith"

    def test_merged_keeps_untouched_dimensions(self):
        spec = FilterSpec.normalize({"region": ["West"], "search": "smith"})
        merged = spec.merged({"status": ["packed"], "search": None})
        assert merged.region == frozenset({"West"})
        assert merged.status == frozenset({OrderStatus.PACKED})
        assert merged.search is None

    def test_naive_dates_are_utc(self):
        spec = FilterSpec.normalize({"dateRange": {"start": "2026-03-01T00:00:00"}})
        assert spec.date_range.start == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert spec.date_range.end is None

    def test_date_range_contains(self):
        window = DateRange(start=datetime(2026, 3, 1, tzinfo=timezone.utc), end=datetime(2026, 3, 2, tzinfo=timezone.utc))
        assert window.contains(datetime(2026, 3, 1, tzinfo=timezone.utc))
        assert window.contains(datetime(2026, 3, 2, tzinfo=timezone.utc))
        assert not window.contains(datetime(2026, 3, 3, tzinfo=timezone.utc))

    def test_unparseable_dates_are_dropped(self):
        assert FilterSpec.normalize({"dateRange": {"start": "last tuesday"}}).date_range is None


class TestSortSpec:

    def test_defaults(self):
        spec = SortSpec()
        assert spec.field is SortField.CREATED_AT
        assert spec.descending

    def test_partial_input_uses_default_for_the_rest(self):
        default = SortSpec(field=SortField.STATUS, direction=SortDirection.ASC)
        spec = SortSpec.normalize({"direction": "desc"}, default=default)
        assert spec.field is SortField.STATUS
        assert spec.direction is SortDirection.DESC

    def test_camel_case_field(self):
        assert SortSpec.normalize({"field": "customerName"}).field is SortField.CUSTOMER_NAME


class TestWireFormat:

    def test_order_round_trips_with_camel_case(self, order_factory):
        order = order_factory(3, OrderStatus.SHIPPED, tracking_number="TRK-1")
        wire = order.to_wire()
        assert wire["orderNumber"] == "ORD-000003-TEST"
        assert wire["shippingAddress"]["zipCode"] == "60601"
        assert "failureReason" not in wire
        assert type(order).model_validate(wire) == order

    def test_envelope_accepts_wire_keys(self):
        envelope = UpdateEnvelope.model_validate(
            {"orderId": "order-1", "changes": {"status": "packed"}, "timestamp": "2026-03-01T12:00:00Z", "type": "status_change"}
        )
        assert envelope.order_id == "order-1"
        assert envelope.status == "packed"
        assert envelope.timestamp.tzinfo is not None

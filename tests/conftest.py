"""
Pytest configuration for order sync tests.
Sets environment variables so the simulated source is fast and deterministic.
"""

import os
import tempfile

# Must be set before any app imports
_test_log_dir = tempfile.mkdtemp(prefix="ordersync_test_")
os.environ.setdefault("ORDERSYNC_LOG_DIR", _test_log_dir)
os.environ["ORDERSYNC_SEED_ORDER_COUNT"] = "200"
os.environ["ORDERSYNC_SOURCE_MIN_LATENCY_MS"] = "0"
os.environ["ORDERSYNC_SOURCE_MAX_LATENCY_MS"] = "0"
os.environ["ORDERSYNC_SOURCE_FAILURE_RATE"] = "0"
os.environ["ORDERSYNC_REALTIME_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone

import pytest

from app.models.agent import AgentStatus, DeliveryAgent
from app.models.order import Address, Coordinates, Order, OrderPriority, OrderStatus

# Load error registry so OrderSyncError returns correct HTTP status codes
from app.core.errors.registry import error_registry
error_registry.load()

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

_ADDRESS = Address(street="1 Main St", city="Chicago", state="IL", zip_code="60601", country="USA")


def make_order(index: int, status: OrderStatus = OrderStatus.CREATED, **overrides) -> Order:
    """Small, fully specified order. created_at moves forward one hour per index."""
    created = BASE_TIME + timedelta(hours=index)
    data = dict(
        id=f"order-{index}",
        order_number=f"ORD-{index:06d}-TEST",
        customer_name=f"Customer {index}",
        customer_email=f"customer{index}@example.com",
        status=status,
        priority=OrderPriority.NORMAL,
        total_amount=10.0 * (index + 1),
        shipping_address=_ADDRESS,
        region="Central",
        created_at=created,
        updated_at=created,
    )
    data.update(overrides)
    return Order(**data)


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def sample_orders():
    """Six orders covering every status, three regions and all priorities."""
    return [
        make_order(0, OrderStatus.CREATED, priority=OrderPriority.LOW, region="Northeast"),
        make_order(1, OrderStatus.PACKED, priority=OrderPriority.HIGH, region="Central"),
        make_order(2, OrderStatus.SHIPPED, priority=OrderPriority.URGENT, region="West",
                   tracking_number="TRK-AAAA-BBBB-CCCC"),
        make_order(3, OrderStatus.OUT_FOR_DELIVERY, region="West",
                   tracking_number="TRK-DDDD-EEEE-FFFF", assigned_driver="driver-7"),
        make_order(4, OrderStatus.DELIVERED, region="Central",
                   tracking_number="TRK-GGGG-HHHH-IIII", assigned_driver="driver-7",
                   actual_delivery=BASE_TIME + timedelta(hours=28)),
        make_order(5, OrderStatus.FAILED, priority=OrderPriority.HIGH, region="Northeast",
                   failure_reason="Wrong address"),
    ]


@pytest.fixture
def fast_source_kwargs():
    return dict(min_latency_ms=0, max_latency_ms=0, failure_rate=0.0, seed=1)


def make_agent(index: int, status: AgentStatus = AgentStatus.AVAILABLE, **overrides) -> DeliveryAgent:
    data = dict(
        id=f"driver-{index}",
        name=f"Driver {index}",
        status=status,
        current_location=Coordinates(lat=41.88, lng=-87.63),
        region="Central",
    )
    data.update(overrides)
    return DeliveryAgent(**data)


@pytest.fixture
def sample_agents():
    """driver-7 carries the out-for-delivery order in sample_orders."""
    return [
        make_agent(3, AgentStatus.AVAILABLE, region="Northeast"),
        make_agent(7, AgentStatus.ON_DELIVERY, region="West"),
        make_agent(9, AgentStatus.OFFLINE),
    ]


@pytest.fixture
def agent_factory():
    return make_agent

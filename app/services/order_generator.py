"""
Synthetic order generator for the in-memory order source.

Produces realistic-looking orders spread across statuses the way a live
dashboard sees them (35% delivered, 5% failed, ...), with timelines that
match the status and creation dates within the last seven days. Also the
delivery agents those orders point at and the exceptions raised against
failed orders.
"""

from __future__ import annotations

import random
import string
from datetime import datetime, timedelta
from typing import List, Optional

from app.models.agent import AgentStatus, DeliveryAgent, VehicleType
from app.models.order import (
    STATUS_FLOW,
    Address,
    Coordinates,
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    TimelineEntry,
)
from app.models.order_exception import ExceptionSeverity, ExceptionType, OrderException
from app.models.updates import utcnow

FIRST_NAMES = [
    "James", "Mary", "Robert", "Patricia", "John", "Jennifer", "Michael", "Linda",
    "William", "Elizabeth", "David", "Barbara", "Richard", "Susan", "Joseph", "Jessica",
]
LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
    "Rodriguez", "Martinez", "Wilson", "Anderson", "Taylor", "Moore", "Jackson", "Lee",
]
STREET_NAMES = ["Main St", "Oak Ave", "Maple Dr", "Cedar Ln", "Pine Rd", "Elm St", "Park Ave", "Lake Dr"]
CITIES = [
    ("New York", "NY", "Northeast", 40.7128, -74.006),
    ("Los Angeles", "CA", "West", 34.0522, -118.2437),
    ("Chicago", "IL", "Central", 41.8781, -87.6298),
    ("Houston", "TX", "South", 29.7604, -95.3698),
    ("Phoenix", "AZ", "Southwest", 33.4484, -112.074),
    ("Seattle", "WA", "Northwest", 47.6062, -122.3321),
    ("Atlanta", "GA", "Southeast", 33.749, -84.388),
    ("Boston", "MA", "Northeast", 42.3601, -71.0589),
    ("Miami", "FL", "Southeast", 25.7617, -80.1918),
]
PRODUCTS = [
    ("Wireless Bluetooth Headphones", 79.99, "WBH-001"),
    ("Smart Watch Pro", 299.99, "SWP-002"),
    ("Portable Power Bank 20000mAh", 49.99, "PPB-003"),
    ("USB-C Hub 7-in-1", 39.99, "UCH-004"),
    ("Mechanical Keyboard RGB", 129.99, "MKR-005"),
    ("Portable SSD 1TB", 119.99, "PSD-013"),
]
FAILURE_REASONS = [
    "Customer not available",
    "Wrong address",
    "Package damaged",
    "Refused by customer",
    "Address not found",
]
STATUS_DISTRIBUTION = {
    OrderStatus.CREATED: 0.10,
    OrderStatus.PACKED: 0.15,
    OrderStatus.SHIPPED: 0.20,
    OrderStatus.OUT_FOR_DELIVERY: 0.15,
    OrderStatus.DELIVERED: 0.35,
    OrderStatus.FAILED: 0.05,
}
DRIVER_POOL_SIZE = 50

# normal is weighted 3x
PRIORITY_CHOICES = [
    OrderPriority.LOW, OrderPriority.NORMAL, OrderPriority.NORMAL,
    OrderPriority.NORMAL, OrderPriority.HIGH, OrderPriority.URGENT,
]


def _code(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(string.ascii_uppercase + string.digits) for _ in range(length))


def order_number(rng: random.Random) -> str:
    return f"ORD-{_code(rng, 6)}-{_code(rng, 4)}"


def tracking_number(rng: random.Random) -> str:
    return "TRK-" + "-".join(_code(rng, 4) for _ in range(3))


def _address(rng: random.Random, city, with_coords: bool) -> Address:
    name, state, _, lat, lng = city
    return Address(
        street=f"{rng.randint(100, 9999)} {rng.choice(STREET_NAMES)}",
        city=name,
        state=state,
        zip_code=str(rng.randint(10000, 99999)),
        country="USA",
        coordinates=Coordinates(
            lat=lat + (rng.random() - 0.5) * 0.1,
            lng=lng + (rng.random() - 0.5) * 0.1,
        ) if with_coords else None,
    )


def _timeline(rng: random.Random, status: OrderStatus, created: datetime) -> List[TimelineEntry]:
    if status is OrderStatus.FAILED:
        last_step = rng.randint(1, 3)
    else:
        last_step = STATUS_FLOW.index(status)
    moment = created
    entries = []
    for step in STATUS_FLOW[: last_step + 1]:
        entries.append(TimelineEntry(status=step, timestamp=moment, note=f"Status updated to {step.value}"))
        moment += timedelta(hours=rng.randint(2, 24))
    if status is OrderStatus.FAILED:
        entries.append(TimelineEntry(status=OrderStatus.FAILED, timestamp=moment, note="Delivery attempt failed"))
    return entries


def generate_order(
    index: int,
    rng: random.Random,
    status: Optional[OrderStatus] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = now or utcnow()
    status = status or rng.choice(list(OrderStatus))
    first, last = rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES)
    city = rng.choice(CITIES)

    items = []
    for _ in range(rng.randint(1, 5)):
        name, price, sku = rng.choice(PRODUCTS)
        items.append(OrderItem(id=f"item-{_code(rng, 7).lower()}", name=name, quantity=rng.randint(1, 3), price=price, sku=sku))

    created = now - timedelta(seconds=rng.randint(0, 7 * 24 * 3600))
    timeline = _timeline(rng, status, created)

    order = Order(
        id=f"order-{index}-{_code(rng, 7).lower()}",
        order_number=order_number(rng),
        customer_name=f"{first} {last}",
        customer_email=f"{first.lower()}.{last.lower()}{rng.randint(1, 99)}@example.com",
        customer_phone=f"({rng.randint(200, 999)}) {rng.randint(200, 999)}-{rng.randint(1000, 9999)}",
        status=status,
        priority=rng.choice(PRIORITY_CHOICES),
        items=items,
        total_amount=round(sum(i.price * i.quantity for i in items), 2),
        currency="USD",
        shipping_address=_address(rng, city, with_coords=True),
        billing_address=_address(rng, city, with_coords=False),
        timeline=timeline,
        region=city[2],
        created_at=created,
        updated_at=timeline[-1].timestamp,
        tracking_number=tracking_number(rng) if status is not OrderStatus.CREATED else None,
    )

    extra = {}
    if status is OrderStatus.FAILED:
        extra["failure_reason"] = rng.choice(FAILURE_REASONS)
    if status in (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED):
        extra["assigned_driver"] = f"driver-{rng.randint(1, DRIVER_POOL_SIZE)}"
        extra["estimated_delivery"] = created + timedelta(days=rng.randint(2, 5))
    if status is OrderStatus.DELIVERED:
        extra["actual_delivery"] = timeline[-1].timestamp
    return order.model_copy(update=extra) if extra else order


def generate_orders(count: int, seed: Optional[int] = None, now: Optional[datetime] = None) -> List[Order]:
    """``count`` orders following STATUS_DISTRIBUTION, shuffled."""
    rng = random.Random(seed)
    now = now or utcnow()
    orders: List[Order] = []
    index = 0
    for status, ratio in STATUS_DISTRIBUTION.items():
        for _ in range(int(count * ratio)):
            orders.append(generate_order(index, rng, status, now))
            index += 1
    while len(orders) < count:
        orders.append(generate_order(index, rng, now=now))
        index += 1
    rng.shuffle(orders)
    return orders


# ----------------------------------------------------------------------
# Delivery agents and exceptions
# ----------------------------------------------------------------------

# on_delivery is weighted 3x, van 2x
AGENT_STATUS_CHOICES = [
    AgentStatus.AVAILABLE, AgentStatus.ON_DELIVERY, AgentStatus.ON_DELIVERY,
    AgentStatus.ON_DELIVERY, AgentStatus.OFFLINE, AgentStatus.BREAK,
]
VEHICLE_CHOICES = [VehicleType.BIKE, VehicleType.VAN, VehicleType.VAN, VehicleType.TRUCK]
EXCEPTION_DESCRIPTIONS = {
    ExceptionType.DELAYED_DELIVERY: ["Weather conditions", "High volume", "Route issues", "Vehicle breakdown"],
    ExceptionType.FAILED_DELIVERY: ["No one home", "Refused", "Business closed", "Access denied"],
    ExceptionType.MISSING_LOCATION: ["GPS error", "Incomplete address", "New development"],
    ExceptionType.CUSTOMER_UNAVAILABLE: ["Phone unreachable", "No response", "Wrong contact"],
    ExceptionType.ADDRESS_ISSUE: ["Address not found", "Building demolished", "Restricted area"],
    ExceptionType.PACKAGE_DAMAGED: ["Transit damage", "Water damage", "Crushed package"],
}


def generate_agent(index: int, rng: random.Random) -> DeliveryAgent:
    """Agent ``driver-<index>``; orders reference agents by this id."""
    first, last = rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES)
    _, _, region, lat, lng = rng.choice(CITIES)
    return DeliveryAgent(
        id=f"driver-{index}",
        name=f"{first} {last}",
        phone=f"({rng.randint(200, 999)}) {rng.randint(200, 999)}-{rng.randint(1000, 9999)}",
        status=rng.choice(AGENT_STATUS_CHOICES),
        current_location=Coordinates(
            lat=lat + (rng.random() - 0.5) * 0.1,
            lng=lng + (rng.random() - 0.5) * 0.1,
        ),
        region=region,
        vehicle_type=rng.choice(VEHICLE_CHOICES),
        rating=round(3.5 + rng.random() * 1.5, 1),
        total_deliveries=rng.randint(50, 2000),
    )


def generate_agents(count: int, seed: Optional[int] = None) -> List[DeliveryAgent]:
    """driver-1 .. driver-<count>, matching the ids generate_order assigns."""
    rng = random.Random(seed)
    return [generate_agent(i + 1, rng) for i in range(count)]


def generate_exception(order_id: str, rng: random.Random, now: Optional[datetime] = None) -> OrderException:
    kind = rng.choice(list(ExceptionType))
    return OrderException(
        id=f"exc-{_code(rng, 7).lower()}",
        order_id=order_id,
        type=kind,
        description=rng.choice(EXCEPTION_DESCRIPTIONS[kind]),
        severity=rng.choice(list(ExceptionSeverity)),
        created_at=now or utcnow(),
    )

r"""
Order status state machine.

    created -> packed -> shipped -> out_for_delivery -> delivered
         \________\__________\_____________\__________> failed

delivered and failed are terminal. Any non-terminal status may move forward
(skipping steps is allowed) or to failed. Nothing moves backwards.

The repository does not enforce this; local mutations are checked here
before they are applied. Push updates come from the server and are applied
as received.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from app.core.errors import InvalidTransitionError
from app.models.order import STATUS_FLOW, Order, OrderStatus, TimelineEntry
from app.models.updates import utcnow


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if current == target:
        return True
    if current.is_terminal:
        return False
    if target is OrderStatus.FAILED:
        return True
    return target.rank > current.rank


def validate_transition(current: OrderStatus, target: OrderStatus, order_id: str = "") -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            detail=f"{current.value} -> {target.value} is not allowed",
            context={"order_id": order_id, "from": current.value, "to": target.value},
        )


def next_status(current: OrderStatus) -> Optional[OrderStatus]:
    """The next step on the happy path, or None when there is none."""
    if current not in STATUS_FLOW:
        return None
    idx = STATUS_FLOW.index(current)
    if idx == len(STATUS_FLOW) - 1:
        return None
    return STATUS_FLOW[idx + 1]


def status_changes(
    order: Order,
    target: OrderStatus,
    note: Optional[str] = None,
    updated_by: Optional[str] = None,
    failure_reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Partial-order changes for moving ``order`` to ``target``.

    Appends a timeline entry and fills the fields that go with the new
    status (failure_reason, actual_delivery).
    """
    now = now or utcnow()
    if note is None:
        note = "Delivery failed" if target is OrderStatus.FAILED else f"Status updated to {target.value}"
    entry = TimelineEntry(status=target, timestamp=now, note=note, updated_by=updated_by)
    changes: Dict[str, Any] = {
        "status": target,
        "updated_at": now,
        "timeline": [*order.timeline, entry],
    }
    if target is OrderStatus.FAILED:
        changes["failure_reason"] = failure_reason or "Customer not available"
    if target is OrderStatus.DELIVERED:
        changes["actual_delivery"] = now
    return changes

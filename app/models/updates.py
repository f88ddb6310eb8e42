"""
Update envelopes and notifications.

An UpdateEnvelope is the unit delivered by the push channel and produced by
optimistic mutations:

    {"orderId": "...", "changes": {"status": "shipped", ...}, "timestamp": "..."}

``changes`` is a partial order; keys may be camelCase or snake_case.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field

from app.models.order import OrderSyncModel, UtcDatetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UpdateType(str, Enum):
    STATUS_CHANGE = "status_change"
    LOCATION_UPDATE = "location_update"
    ASSIGNMENT_CHANGE = "assignment_change"
    PRIORITY_CHANGE = "priority_change"
    FAILURE = "failure"


class UpdateEnvelope(OrderSyncModel):
    order_id: str
    changes: Dict[str, Any] = Field(default_factory=dict)
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    type: Optional[UpdateType] = None

    @property
    def status(self) -> Optional[str]:
        """Status named by the change, if any (raw string, not validated)."""
        value = self.changes.get("status")
        if isinstance(value, Enum):
            return value.value
        return value if isinstance(value, str) else None


class NotificationType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Notification(OrderSyncModel):
    id: str
    type: NotificationType
    title: str
    message: Optional[str] = None
    duration_ms: int = 5000  # 0 keeps it until dismissed
    created_at: UtcDatetime = Field(default_factory=utcnow)
    order_id: Optional[str] = None

    def expired(self, now: datetime) -> bool:
        if self.duration_ms <= 0:
            return False
        age_ms = (now - self.created_at).total_seconds() * 1000
        return age_ms >= self.duration_ms

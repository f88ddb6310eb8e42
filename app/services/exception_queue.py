"""
Exception Queue
===============

Delivery exceptions opened against failed orders, as listed by the data
source. The queue is a local copy refreshed on demand; resolving goes to the
source first and only the confirmed record replaces the local one.

Every resolve attempt ends in a user-facing notification: success when the
source confirms, error when it fails (the error is re-raised).
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from app.core.errors import ExceptionNotLoadedError, OrderSyncError
from app.models.order_exception import OrderException
from app.models.updates import NotificationType
from app.services.notifications import NotificationCenter
from app.services.order_source import OrderDataSource

logger = logging.getLogger(__name__)


class ExceptionQueue:
    def __init__(self, source: OrderDataSource, notifications: NotificationCenter) -> None:
        self._source = source
        self._notifications = notifications
        self._exceptions: Dict[str, OrderException] = {}
        self.loaded = False

    async def refresh(self) -> int:
        """Replace the local copy with the source's list. TransientError propagates."""
        exceptions = await self._source.fetch_exceptions()
        self._exceptions = {e.id: e for e in exceptions}
        self.loaded = True
        logger.info("Exception queue refreshed: %d exceptions", len(self._exceptions))
        return len(self._exceptions)

    def view(self, include_resolved: bool = False) -> List[OrderException]:
        """Newest first."""
        items = [e for e in self._exceptions.values() if include_resolved or not e.resolved]
        return sorted(items, key=lambda e: e.created_at, reverse=True)

    def get(self, exception_id: str) -> Optional[OrderException]:
        return self._exceptions.get(exception_id)

    def for_order(self, order_id: str) -> List[OrderException]:
        return [e for e in self._exceptions.values() if e.order_id == order_id]

    async def resolve(
        self,
        exception_id: str,
        resolution: str,
        resolved_by: Optional[str] = None,
    ) -> OrderException:
        if exception_id not in self._exceptions:
            raise ExceptionNotLoadedError(
                detail=f"Exception {exception_id} is not loaded",
                context={"exception_id": exception_id},
            )
        order_id = self._exceptions[exception_id].order_id
        try:
            resolved = await self._source.resolve_exception(exception_id, resolution, resolved_by)
        except OrderSyncError as exc:
            logger.warning("Resolving exception %s failed (%s)", exception_id, exc.code)
            self._notifications.add(
                NotificationType.ERROR,
                "Failed to resolve",
                message="Could not resolve the exception. Please try again.",
                order_id=order_id,
            )
            raise
        self._exceptions[exception_id] = resolved
        self._notifications.add(
            NotificationType.SUCCESS,
            "Exception resolved",
            message="The exception has been marked as resolved",
            order_id=order_id,
        )
        return resolved

    def reset(self) -> None:
        self._exceptions = {}
        self.loaded = False

    def __len__(self) -> int:
        return len(self._exceptions)

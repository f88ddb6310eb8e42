"""
Update Ingestion Pipeline
=========================

Applies the three sources of truth to the repository:

1. Bulk fetch (load): replace_all with the server snapshot. A full resync:
   anything not yet confirmed by the server is discarded.
2. Push updates (handle_push): merged the moment they arrive, in arrival
   order, no dedup. A change that touches status raises a notification.
   Updates for unknown ids are dropped silently.
3. Optimistic mutations (update_order): applied locally first, then sent to
   the data source. Confirmation needs no further work. On failure there is
   no field-level rollback: the pipeline resyncs from fetch_all. Push
   updates that landed during the failed window may be lost with it.

Each mutation moves requested -> applied -> confirmed | rolled_back.

Everything runs on one event loop. The suspension points are fetch_all,
update_status and the push callback; whichever continuation runs last wins
per field.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Mapping, Optional, Union

from app.config import settings
from app.core.errors import (
    InvalidTransitionError,
    OrderNotLoadedError,
    OrderSyncError,
    TransientError,
)
from app.core.structured_logging import order_context
from app.models.order import Order, OrderStatus, to_field_names
from app.models.updates import NotificationType, UpdateEnvelope, utcnow
from app.services.notifications import NotificationCenter
from app.services.order_repository import OrderRepository
from app.services.order_source import OrderDataSource, Unsubscribe
from app.services.status_machine import can_transition, status_changes, validate_transition

logger = logging.getLogger(__name__)

MUTATION_HISTORY_SIZE = 200


class MutationState(str, Enum):
    REQUESTED = "requested"
    APPLIED = "applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass
class PendingMutation:
    """One local mutation and where it is in its lifecycle."""
    id: str
    order_id: str
    changes: Dict[str, Any]
    state: MutationState = MutationState.REQUESTED
    requested_at: datetime = field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    error_code: Optional[str] = None


class UpdateIngestionPipeline:
    """Reconciles bulk loads, push updates and optimistic mutations."""

    def __init__(
        self,
        repository: OrderRepository,
        source: OrderDataSource,
        notifications: NotificationCenter,
        *,
        fetch_retries: Optional[int] = None,
        region_scope: Optional[str] = None,
    ) -> None:
        self._repository = repository
        self._source = source
        self._notifications = notifications
        self._fetch_retries = settings.fetch_retries if fetch_retries is None else fetch_retries
        self._region_scope = region_scope
        self._unsubscribe: Optional[Unsubscribe] = None
        self._load_task: Optional[asyncio.Task] = None
        self._pending_pushes: List[UpdateEnvelope] = []
        self._in_flight: Dict[str, PendingMutation] = {}
        self._history: Deque[PendingMutation] = deque(maxlen=MUTATION_HISTORY_SIZE)
        self.last_update_time: Optional[datetime] = None
        self.loading = False

    # ------------------------------------------------------------------
    # Bulk fetch
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """Full resync from fetch_all. Returns the number of orders installed.

        Concurrent callers share one fetch. TransientError gets
        ``fetch_retries`` automatic retries; after that it is reported and
        re-raised.
        """
        if self._load_task is None or self._load_task.done():
            self._load_task = asyncio.ensure_future(self._load())
        return await self._load_task

    async def _load(self) -> int:
        self.loading = True
        attempts = 1 + max(0, self._fetch_retries)
        try:
            for attempt in range(1, attempts + 1):
                try:
                    records = await self._source.fetch_all()
                    break
                except TransientError as exc:
                    if attempt < attempts:
                        logger.warning("fetch_all failed (attempt %d/%d): %s; retrying", attempt, attempts, exc)
                        continue
                    logger.error("fetch_all failed after %d attempts: %s", attempts, exc)
                    self._notifications.add(
                        NotificationType.ERROR,
                        "Failed to load orders",
                        message="The order service could not be reached.",
                    )
                    raise
        finally:
            self.loading = False

        if self._region_scope:
            records = [r for r in records if r.region == self._region_scope]
        self._repository.replace_all(records)
        return len(records)

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce(envelope: Union[UpdateEnvelope, Mapping[str, Any]]) -> UpdateEnvelope:
        if isinstance(envelope, UpdateEnvelope):
            return envelope
        return UpdateEnvelope.model_validate(envelope)

    def handle_push(self, envelope: Union[UpdateEnvelope, Mapping[str, Any]]) -> Optional[Order]:
        """Merge one push update now. Returns the updated record, or None if dropped."""
        envelope = self._coerce(envelope)
        previous = self._repository.get(envelope.order_id)
        if previous is None:
            logger.debug("Dropping push for unknown order %s", envelope.order_id)
            return None

        carries_stamp = "updated_at" in to_field_names(Order, envelope.changes)
        updated = self._repository.merge(
            envelope.order_id,
            envelope.changes,
            timestamp=None if carries_stamp else envelope.timestamp,
        )
        if updated is None:
            return None
        self.last_update_time = utcnow()
        self._after_status_change(previous, updated, envelope)
        return updated

    def _after_status_change(self, previous: Order, updated: Order, envelope: UpdateEnvelope) -> None:
        if envelope.status is None or updated.status.value != envelope.status:
            return
        if not can_transition(previous.status, updated.status):
            # Server is authoritative; just flag it
            logger.warning(
                "Push moved order %s %s -> %s",
                updated.id, previous.status.value, updated.status.value,
            )
        self._notifications.notify_status(
            updated.id,
            updated.status,
            duration_ms=settings.status_notification_duration_ms,
        )

    def enqueue_push(self, envelope: Union[UpdateEnvelope, Mapping[str, Any]]) -> int:
        """Buffer a push update for the next process_pending(). Returns queue depth."""
        self._pending_pushes.append(self._coerce(envelope))
        return len(self._pending_pushes)

    def process_pending(self) -> int:
        """Apply every buffered push under one logical timestamp, in arrival order."""
        if not self._pending_pushes:
            return 0
        batch, self._pending_pushes = self._pending_pushes, []
        stamp = utcnow()
        applied = 0
        for envelope in batch:
            # Each envelope is judged against the record as it stood just before it
            previous = self._repository.get(envelope.order_id)
            updated = self._repository.merge(envelope.order_id, envelope.changes, timestamp=stamp)
            if updated is None:
                continue
            applied += 1
            self._after_status_change(previous, updated, envelope)
        if applied:
            self.last_update_time = stamp
        logger.debug("Processed %d buffered pushes (%d applied)", len(batch), applied)
        return applied

    @property
    def pending_count(self) -> int:
        return len(self._pending_pushes)

    def start_realtime(self) -> bool:
        """Subscribe to the push channel. Returns False if already subscribed."""
        if self._unsubscribe is not None:
            return False
        self._unsubscribe = self._source.subscribe_updates(self.handle_push)
        logger.info("Realtime updates enabled")
        return True

    def stop_realtime(self) -> bool:
        """Stop future push delivery. In-flight requests still complete."""
        if self._unsubscribe is None:
            return False
        self._unsubscribe()
        self._unsubscribe = None
        logger.info("Realtime updates disabled")
        return True

    @property
    def realtime_active(self) -> bool:
        return self._unsubscribe is not None

    # ------------------------------------------------------------------
    # Optimistic mutations
    # ------------------------------------------------------------------

    async def update_order(self, order_id: str, changes: Mapping[str, Any]) -> PendingMutation:
        """Apply ``changes`` now, confirm with the data source, resync on failure.

        Raises InvalidTransitionError before touching anything if the status
        change is illegal. A data source failure is reported, triggers a
        full resync, and is then re-raised to the caller.
        """
        mutation = PendingMutation(id=uuid.uuid4().hex, order_id=order_id, changes=dict(changes))
        self._check_transition(order_id, changes)

        applied = self._repository.merge(order_id, changes)
        if applied is not None:
            mutation.state = MutationState.APPLIED
        self._in_flight[mutation.id] = mutation
        self._history.append(mutation)

        with order_context(order_id, mutation_id=mutation.id):
            try:
                await self._source.update_status(order_id, changes)
            except OrderSyncError as exc:
                mutation.state = MutationState.ROLLED_BACK
                mutation.error_code = exc.code
                mutation.resolved_at = utcnow()
                logger.warning("Update of order %s failed (%s); resyncing", order_id, exc.code)
                self._notifications.add(
                    NotificationType.ERROR,
                    "Update failed",
                    message=f"Failed to update order {order_id}",
                    order_id=order_id,
                )
                try:
                    await self.load()
                except TransientError:
                    logger.error("Resync after failed update of %s also failed", order_id)
                raise
            finally:
                self._in_flight.pop(mutation.id, None)

        mutation.state = MutationState.CONFIRMED
        mutation.resolved_at = utcnow()
        return mutation

    def _check_transition(self, order_id: str, changes: Mapping[str, Any]) -> None:
        fields = to_field_names(Order, changes)
        if "status" not in fields:
            return
        raw = fields["status"]
        try:
            target = OrderStatus(raw)
        except ValueError:
            raise InvalidTransitionError(
                detail=f"Unknown status {raw!r}",
                context={"order_id": order_id},
            ) from None
        current = self._repository.get(order_id)
        if current is not None:
            validate_transition(current.status, target, order_id)

    async def set_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        note: Optional[str] = None,
        updated_by: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> PendingMutation:
        """Move a loaded order to ``status`` with a timeline entry, optimistically."""
        current = self._repository.get(order_id)
        if current is None:
            raise OrderNotLoadedError(detail=f"Order {order_id} is not loaded", context={"order_id": order_id})
        validate_transition(current.status, status, order_id)
        changes = status_changes(current, status, note=note, updated_by=updated_by, failure_reason=failure_reason)
        return await self.update_order(order_id, changes)

    @property
    def in_flight(self) -> List[PendingMutation]:
        return list(self._in_flight.values())

    @property
    def history(self) -> List[PendingMutation]:
        return list(self._history)

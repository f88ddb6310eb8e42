"""
Order Repository
================

Keyed in-memory table of order records: the single source of truth for a
session.

Membership only comes from replace_all(). merge() on an unknown id is a
silent drop: updates for records we never loaded are ignored, not inserted.
Records are swapped copy-on-write on every merge, so a reader holding an
Order instance keeps a consistent snapshot of that record.

The repository never raises on bad input. Unknown change keys and values
that fail validation are dropped field by field.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.models.order import Order, to_field_names
from app.models.updates import utcnow

logger = logging.getLogger(__name__)

MergeListener = Callable[[Order, Order], None]
ReplaceListener = Callable[[], None]

# Fields a merge may never overwrite
_IMMUTABLE_FIELDS = frozenset({"id"})


class OrderRepository:
    """In-memory order table keyed by order id."""

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._initialized = False
        self._version = 0
        self._merge_listeners: List[MergeListener] = []
        self._replace_listeners: List[ReplaceListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def replace_all(self, records: Iterable[Order]) -> None:
        """Install a new canonical set, discarding everything held before."""
        orders: Dict[str, Order] = {}
        for record in records:
            if record.id in orders:
                logger.warning("Duplicate order id %s in bulk load; keeping the last one", record.id)
            orders[record.id] = record
        self._orders = orders
        self._initialized = True
        self._version += 1
        logger.info("Repository replaced: %d orders (version=%d)", len(orders), self._version)
        for listener in self._replace_listeners:
            listener()

    def reset(self) -> None:
        """Drop all records and mark the repository uninitialized (session end)."""
        self._orders = {}
        self._initialized = False
        self._version += 1
        for listener in self._replace_listeners:
            listener()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def version(self) -> int:
        """Bumped on every replace, reset and successful merge."""
        return self._version

    # ------------------------------------------------------------------
    # Merges
    # ------------------------------------------------------------------

    def merge(
        self,
        order_id: str,
        changes: Mapping[str, Any],
        timestamp: Optional[datetime] = None,
    ) -> Optional[Order]:
        """Shallow field-level overwrite of ``changes`` onto an existing record.

        Returns the updated record, or None when ``order_id`` is unknown.
        updated_at becomes the merge timestamp but never moves backwards.
        """
        current = self._orders.get(order_id)
        if current is None:
            logger.debug("Dropping merge for unknown order %s", order_id)
            return None

        fields = to_field_names(Order, changes)
        for name in _IMMUTABLE_FIELDS:
            fields.pop(name, None)

        stamp = timestamp or fields.pop("updated_at", None) or utcnow()
        fields.pop("updated_at", None)

        updated = self._apply(current, fields, stamp)
        self._orders[order_id] = updated
        self._version += 1
        for listener in self._merge_listeners:
            listener(current, updated)
        return updated

    def batch_merge(
        self,
        entries: Sequence[Tuple[str, Mapping[str, Any]]],
        timestamp: Optional[datetime] = None,
    ) -> List[Order]:
        """Apply several merges under one logical timestamp.

        Entries are (order_id, changes) pairs. Unknown ids are skipped.
        """
        stamp = timestamp or utcnow()
        updated: List[Order] = []
        for order_id, changes in entries:
            record = self.merge(order_id, changes, timestamp=stamp)
            if record is not None:
                updated.append(record)
        if len(updated) < len(entries):
            logger.debug("Batch merge dropped %d unknown ids", len(entries) - len(updated))
        return updated

    @staticmethod
    def _apply(current: Order, fields: Dict[str, Any], stamp: Any) -> Order:
        data = {name: getattr(current, name) for name in Order.model_fields}
        data.update(fields)
        data["updated_at"] = stamp
        try:
            candidate = Order.model_validate(data)
        except ValidationError as exc:
            # Drop the offending change fields and keep the rest
            bad = {err["loc"][0] for err in exc.errors() if err.get("loc")}
            logger.warning("Ignoring invalid change fields %s for order %s", sorted(map(str, bad)), current.id)
            for name in bad:
                if name == "updated_at":
                    data[name] = current.updated_at
                else:
                    data[name] = getattr(current, name)
            candidate = Order.model_validate(data)

        if candidate.updated_at < current.updated_at:
            candidate = candidate.model_copy(update={"updated_at": current.updated_at})
        return candidate

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def get_all(self) -> List[Order]:
        """All records, in no particular order."""
        return list(self._orders.values())

    def ids(self) -> List[str]:
        return list(self._orders)

    def snapshot(self) -> Mapping[str, Order]:
        """Read-only view of the current table. Do not mutate."""
        return dict(self._orders)

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_merge_listener(self, listener: MergeListener) -> None:
        self._merge_listeners.append(listener)

    def add_replace_listener(self, listener: ReplaceListener) -> None:
        self._replace_listeners.append(listener)

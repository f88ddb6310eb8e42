"""
Projection Engine
=================

Turns a repository snapshot plus a filter and a sort into the ordered id
sequence the list view renders.

project() is the pure full pass: filter every record, then one O(n log n)
sort. It runs whenever the filter or the sort changes.

ProjectionIndex keeps the last projection as a sorted list of (key, id)
entries and patches it per merged record (bisect remove + insort), so a push
update costs O(log n) search plus one list shift instead of a full re-sort.
After any sequence of merges its ordered_ids() holds exactly the ids
project() would return for the same snapshot, in an order that satisfies
the same comparator. Ties have no defined order in either path.
"""

from __future__ import annotations

import bisect
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from app.models.order import Order
from app.models.query import FilterSpec, SortField, SortSpec

logger = logging.getLogger(__name__)

Snapshot = Union[Mapping[str, Order], Iterable[Order]]

_SORT_KEYS: Dict[SortField, Callable[[Order], Any]] = {
    SortField.ORDER_NUMBER: lambda o: o.order_number,
    SortField.CUSTOMER_NAME: lambda o: o.customer_name,
    SortField.STATUS: lambda o: o.status.rank,
    SortField.PRIORITY: lambda o: o.priority.rank,
    SortField.TOTAL_AMOUNT: lambda o: o.total_amount,
    SortField.CREATED_AT: lambda o: o.created_at,
    SortField.UPDATED_AT: lambda o: o.updated_at,
}


def sort_key(order: Order, field: SortField) -> Any:
    return _SORT_KEYS[field](order)


def _records(snapshot: Snapshot) -> Iterable[Order]:
    if isinstance(snapshot, Mapping):
        return snapshot.values()
    return snapshot


def matches_search(order: Order, needle: str) -> bool:
    """Case-insensitive substring match on number, name, email and tracking number."""
    needle = needle.lower()
    if needle in order.order_number.lower():
        return True
    if needle in order.customer_name.lower():
        return True
    if needle in order.customer_email.lower():
        return True
    return order.tracking_number is not None and needle in order.tracking_number.lower()


def matches(order: Order, filters: FilterSpec) -> bool:
    """True iff ``order`` satisfies every active dimension of ``filters``."""
    if filters.status is not None and order.status not in filters.status:
        return False
    if filters.priority is not None and order.priority not in filters.priority:
        return False
    if filters.region is not None and order.region not in filters.region:
        return False
    if filters.assigned_driver is not None and order.assigned_driver != filters.assigned_driver:
        return False
    if filters.date_range is not None and not filters.date_range.contains(order.created_at):
        return False
    if filters.search is not None and not matches_search(order, filters.search):
        return False
    return True


def project(snapshot: Snapshot, filters: Any = None, sort: Any = None) -> List[str]:
    """Ordered ids of the records in ``snapshot`` that pass ``filters``.

    Malformed filter or sort input is normalized, never rejected.
    """
    filters = FilterSpec.normalize(filters)
    sort = SortSpec.normalize(sort)
    members = [o for o in _records(snapshot) if matches(o, filters)]
    key = _SORT_KEYS[sort.field]
    members.sort(key=key, reverse=sort.descending)
    return [o.id for o in members]


class ProjectionIndex:
    """Incrementally maintained projection for one filter/sort pair."""

    def __init__(self, filters: Optional[FilterSpec] = None, sort: Optional[SortSpec] = None) -> None:
        self._filters = filters or FilterSpec()
        self._sort = sort or SortSpec()
        # Ascending by (sort key, id); descending views read it reversed
        self._entries: List[Tuple[Any, str]] = []
        self._keys: Dict[str, Any] = {}
        self._ordered: Optional[List[str]] = []

    @property
    def filters(self) -> FilterSpec:
        return self._filters

    @property
    def sort(self) -> SortSpec:
        return self._sort

    def rebuild(
        self,
        snapshot: Snapshot,
        filters: Optional[FilterSpec] = None,
        sort: Optional[SortSpec] = None,
    ) -> List[str]:
        """Full pass. Used on filter or sort changes and after replace_all."""
        if filters is not None:
            self._filters = filters
        if sort is not None:
            self._sort = sort
        field = self._sort.field
        entries = [
            (sort_key(o, field), o.id)
            for o in _records(snapshot)
            if matches(o, self._filters)
        ]
        entries.sort()
        self._entries = entries
        self._keys = {order_id: key for key, order_id in entries}
        self._ordered = None
        logger.debug(
            "Projection rebuilt: %d ids (sort=%s %s)",
            len(entries), field.value, self._sort.direction.value,
        )
        return self.ordered_ids()

    def apply_merge(self, old: Order, new: Order) -> None:
        """Patch membership and position of one record after a merge."""
        order_id = new.id
        old_key = self._keys.get(order_id)
        keep = matches(new, self._filters)
        new_key = sort_key(new, self._sort.field) if keep else None

        if old_key is not None and keep and old_key == new_key:
            return

        if old_key is not None:
            idx = bisect.bisect_left(self._entries, (old_key, order_id))
            if idx < len(self._entries) and self._entries[idx][1] == order_id:
                del self._entries[idx]
            del self._keys[order_id]
        if keep:
            bisect.insort(self._entries, (new_key, order_id))
            self._keys[order_id] = new_key
        self._ordered = None

    def clear(self) -> None:
        self._entries = []
        self._keys = {}
        self._ordered = []

    def ordered_ids(self) -> List[str]:
        """Current ordered id sequence. Callers get a copy."""
        if self._ordered is None:
            ids = [order_id for _, order_id in self._entries]
            if self._sort.descending:
                ids.reverse()
            self._ordered = ids
        return list(self._ordered)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._keys

"""
Filter and sort models for the projection engine.

Both specs normalize instead of rejecting: an unknown status, a blank
search string or an inverted date range simply removes the constraint on
that dimension. An unknown sort field or direction falls back to the
default sort.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_snake

from app.models.order import (
    OrderPriority,
    OrderStatus,
    OrderSyncModel,
    UtcDatetime,
    to_field_names,
)

E = TypeVar("E", bound=Enum)

_utc_adapter = TypeAdapter(UtcDatetime)


class SortField(str, Enum):
    ORDER_NUMBER = "order_number"
    CUSTOMER_NAME = "customer_name"
    STATUS = "status"
    PRIORITY = "priority"
    TOTAL_AMOUNT = "total_amount"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def _enum_or_none(enum_cls: Type[E], value: Any) -> Optional[E]:
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return None


def _coerce_members(value: Any, enum_cls: Optional[Type[Enum]] = None) -> Optional[FrozenSet[Any]]:
    """Multi-select values -> frozenset of valid members, or None for 'no constraint'."""
    if value is None:
        return None
    if isinstance(value, (str, Enum)):
        value = [value]
    if not isinstance(value, Iterable):
        return None
    members = set()
    for raw in value:
        if enum_cls is not None:
            member = _enum_or_none(enum_cls, raw)
        else:
            member = raw.strip() if isinstance(raw, str) and raw.strip() else None
        if member is not None:
            members.add(member)
    return frozenset(members) or None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return _utc_adapter.validate_python(value)
    except ValidationError:
        return None


class DateRange(OrderSyncModel):
    """Inclusive creation-time window. Either bound may be open."""

    start: Optional[UtcDatetime] = None
    end: Optional[UtcDatetime] = None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


class FilterSpec(OrderSyncModel):
    """Active filter dimensions. AND across dimensions, OR within one."""

    status: Optional[FrozenSet[OrderStatus]] = None
    priority: Optional[FrozenSet[OrderPriority]] = None
    region: Optional[FrozenSet[str]] = None
    search: Optional[str] = None
    date_range: Optional[DateRange] = None
    assigned_driver: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any):
        return _coerce_members(value, OrderStatus)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any):
        return _coerce_members(value, OrderPriority)

    @field_validator("region", mode="before")
    @classmethod
    def _normalize_region(cls, value: Any):
        return _coerce_members(value)

    @field_validator("search", "assigned_driver", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any):
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    @field_validator("date_range", mode="before")
    @classmethod
    def _normalize_date_range(cls, value: Any):
        if isinstance(value, DateRange):
            value = {"start": value.start, "end": value.end}
        if not isinstance(value, Mapping):
            return None
        start = _parse_timestamp(value.get("start"))
        end = _parse_timestamp(value.get("end"))
        if start is None and end is None:
            return None
        if start is not None and end is not None and start > end:
            return None
        return DateRange(start=start, end=end)

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)

    @classmethod
    def normalize(cls, value: Any) -> "FilterSpec":
        """Build a FilterSpec from anything; garbage means 'no constraint'."""
        if isinstance(value, FilterSpec):
            return value
        if not isinstance(value, Mapping):
            return cls()
        try:
            return cls.model_validate(to_field_names(cls, value))
        except ValidationError:
            return cls()

    def merged(self, partial: Mapping[str, Any]) -> "FilterSpec":
        """Overlay a partial filter update on this one (keys present in partial win)."""
        current = {name: getattr(self, name) for name in type(self).model_fields}
        current.update(to_field_names(type(self), partial))
        return FilterSpec.normalize(current)


class SortSpec(OrderSyncModel):
    field: SortField = SortField.CREATED_AT
    direction: SortDirection = SortDirection.DESC

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any):
        if not isinstance(data, Mapping):
            return {}
        out = {}
        raw_field = data.get("field")
        if isinstance(raw_field, str):
            raw_field = to_snake(raw_field)
        field = _enum_or_none(SortField, raw_field)
        if field is not None:
            out["field"] = field
        direction = _enum_or_none(SortDirection, data.get("direction"))
        if direction is not None:
            out["direction"] = direction
        return out

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESC

    @classmethod
    def normalize(cls, value: Any, default: Optional["SortSpec"] = None) -> "SortSpec":
        """Build a SortSpec; missing or unknown parts come from ``default``."""
        if isinstance(value, SortSpec):
            return value
        default = default or cls()
        if not isinstance(value, Mapping):
            return default
        spec = cls.model_validate(value)
        return cls(
            field=spec.field if "field" in spec.model_fields_set else default.field,
            direction=spec.direction if "direction" in spec.model_fields_set else default.direction,
        )

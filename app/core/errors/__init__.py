"""
Error code system for the order sync engine.

OrderSyncError is the base exception for all structured errors. Raise it
(or one of the typed subclasses below) with an error code from the registry,
and the error handler will produce a structured JSON response.

Only the ingestion pipeline's interaction with the data source raises these.
The repository and the projection engine normalize bad input to no-ops.

Usage:
    from app.core.errors import NotFoundError
    raise NotFoundError(detail="order-17 not in remote store", context={"order_id": "order-17"})
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^OSE-[A-Z]{2,6}-\d{3}$")


class OrderSyncError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "OSE-SRC-404".
        detail: Internal-only detail message (never exposed to users).
        context: Arbitrary key-value context for structured logging.
    """

    default_code: str | None = None

    def __init__(
        self,
        code: str | None = None,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if code is None or not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class NotFoundError(OrderSyncError):
    """Mutation target is absent from the remote store. Never retried."""

    default_code = "OSE-SRC-404"


class TransientError(OrderSyncError):
    """Network-level failure talking to the data source. Eligible for one retry."""

    default_code = "OSE-SRC-503"


class InvalidTransitionError(OrderSyncError):
    """A local mutation asked for a status change the state machine forbids."""

    default_code = "OSE-ORD-409"


class OrderNotLoadedError(OrderSyncError):
    """The order id is not in this session's repository."""

    default_code = "OSE-API-404"


class SessionNotReadyError(OrderSyncError):
    """The session has not finished its initial load."""

    default_code = "OSE-SYS-500"


class AgentNotLoadedError(OrderSyncError):
    """The agent id is not in this session's agent registry."""

    default_code = "OSE-API-414"


class ExceptionNotLoadedError(OrderSyncError):
    """The exception id is not in this session's exception queue."""

    default_code = "OSE-API-424"

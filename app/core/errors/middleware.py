"""
FastAPI exception handler for OrderSyncError.

The response body carries the registry's safe message, never the internal
detail. The order id from the error context is echoed back so a dashboard
can highlight the row; retryable errors get a Retry-After header.
"""

import logging
from typing import List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.core.errors import OrderSyncError
from app.core.errors.registry import error_registry

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 1

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class ErrorBody(BaseModel):
    code: str
    title: str
    message: str
    retryable: bool = False
    user_action_required: bool = False
    remediation: List[str] = Field(default_factory=list)
    order_id: Optional[str] = None


def _render(status_code: int, body: ErrorBody, retryable: bool) -> JSONResponse:
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if retryable else None
    return JSONResponse(
        status_code=status_code,
        content={"error": body.model_dump(exclude_none=True)},
        headers=headers,
    )


async def order_sync_error_handler(request: Request, exc: OrderSyncError) -> JSONResponse:
    """Convert OrderSyncError into a structured JSON response."""
    order_id = exc.context.get("order_id") or None
    entry = error_registry.get(exc.code)

    if entry is None:
        logger.error(
            "unregistered_error_code",
            extra={"error.code": exc.code, "error.message": exc.detail},
        )
        body = ErrorBody(
            code=exc.code,
            title="Internal error",
            message="An unexpected error occurred.",
            order_id=order_id,
        )
        return _render(500, body, retryable=False)

    logger.log(
        _LOG_LEVELS.get(entry.severity, logging.ERROR),
        entry.title,
        extra={
            "error.code": exc.code,
            "error.kind": type(exc).__name__,
            "error.message": exc.detail,
            "error.retryable": entry.retryable,
            **{f"error.ctx.{k}": v for k, v in exc.context.items()},
        },
    )

    body = ErrorBody(
        code=entry.code,
        title=entry.title,
        message=entry.safe_message,
        retryable=entry.retryable,
        user_action_required=entry.user_action_required,
        remediation=entry.remediation,
        order_id=order_id,
    )
    return _render(entry.http_status, body, retryable=entry.retryable)

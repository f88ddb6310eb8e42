"""
FastAPI middleware for request, correlation and session context.

Every request gets a request_id and correlation_id (taken from the inbound
x-request-id / x-correlation-id headers when present) plus the id of the
order session serving it, all bound in contextvars so structlog adds them
to every log line. The ids are echoed back in the response headers.
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.structured_logging import correlation_id_var, request_id_var, session_id_var

logger = logging.getLogger(__name__)


def _route_template(request: Request) -> str:
    # /api/orders/{order_id} rather than the concrete id, so logs group by endpoint
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind request_id / correlation_id / session_id for the duration of a request."""

    def __init__(self, app, session_id_provider=None) -> None:
        super().__init__(app)
        self._session_id_provider = session_id_provider

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        corr_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex
        session_id = self._session_id_provider() if self._session_id_provider else None

        tokens = [
            (request_id_var, request_id_var.set(req_id)),
            (correlation_id_var, correlation_id_var.set(corr_id)),
            (session_id_var, session_id_var.set(session_id)),
        ]

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            logger.info(
                "request_completed",
                extra={
                    "http.method": request.method,
                    "http.path_template": _route_template(request),
                    "http.status_code": response.status_code if response else None,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            for var, token in reversed(tokens):
                var.reset(token)

        response.headers["x-request-id"] = req_id
        response.headers["x-correlation-id"] = corr_id
        if session_id:
            response.headers["x-session-id"] = session_id
        return response

"""
Order Sync Engine - FastAPI application.

Serves the client-resident order table of one dashboard session over HTTP:
windowed reads of the filtered, sorted view, optimistic status updates,
stats and the notification side channel.

Single worker, single event loop. The session is created at startup and
torn down at shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.routers import agents, exceptions, health, notifications, orders
from app.core.structured_logging import APP_VERSION, setup_logging
from app.core.errors import OrderSyncError, TransientError
from app.core.errors.registry import error_registry
from app.core.errors.middleware import order_sync_error_handler
from app.core.log_middleware import CorrelationMiddleware
from app.services.order_session import OrderSyncSession, current_session_id, set_order_session
from app.services.order_source import InMemoryOrderSource, OrderDataSource

# Initialize structured logging before any logger calls
setup_logging(
    log_dir=settings.log_dir,
    log_file=settings.log_file,
    log_level=settings.log_level,
    log_format=settings.log_format,
)

logger = logging.getLogger(__name__)

API_TITLE = "Order Sync Engine API"

API_DESCRIPTION = """
## Order Sync Engine

Client-resident order synchronization for a logistics dashboard.

- Windowed reads over a filtered, sorted view of every loaded order
- Optimistic status updates with full resync on failure
- Real-time push updates from the order source
- Delivery agent positions and exception resolution
"""

TAGS_METADATA = [
    {"name": "health", "description": "Liveness and session state"},
    {"name": "orders", "description": "Order view, lookup, updates and stats"},
    {"name": "notifications", "description": "User-facing notification side channel"},
    {"name": "agents", "description": "Delivery agent registry"},
    {"name": "exceptions", "description": "Delivery exceptions on failed orders"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting %s v%s...", settings.app_name, APP_VERSION)

    error_registry.load()

    source: OrderDataSource = app.state.source or InMemoryOrderSource()
    session = OrderSyncSession(source)
    set_order_session(session)

    try:
        await session.start(realtime=app.state.realtime)
    except TransientError as e:
        # Serve anyway; /api/health reports "starting" and POST /api/orders/resync retries
        logger.error("Initial order load failed: %s", e)

    yield

    logger.info("Shutting down %s...", settings.app_name)
    session.reset()
    set_order_session(None)


def create_app(source: Optional[OrderDataSource] = None, realtime: Optional[bool] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.source = source
    app.state.realtime = realtime

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # request_id, correlation_id and session_id in every log
    app.add_middleware(CorrelationMiddleware, session_id_provider=current_session_id)

    # Structured error handler for OrderSyncError
    app.add_exception_handler(OrderSyncError, order_sync_error_handler)

    # Catch-all handler so unhandled exceptions return JSON (not bare text)
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error"},
        )

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
    app.include_router(agents.router, prefix="/api/agents", tags=["agents"])
    app.include_router(exceptions.router, prefix="/api/exceptions", tags=["exceptions"])

    return app


# Create the app instance
app = create_app()

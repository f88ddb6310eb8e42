"""
Health endpoint.

GET /api/health : liveness plus session load state. Never requires the
initial load to have finished.
"""

from fastapi import APIRouter, Depends

from app.core.structured_logging import APP_VERSION
from app.models.api import HealthResponse
from app.services.order_session import OrderSyncSession, get_order_session

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(session: OrderSyncSession = Depends(get_order_session)):
    return HealthResponse(
        status="ok" if session.initialized else "starting",
        version=APP_VERSION,
        initialized=session.initialized,
        loading=session.loading,
        orders=len(session.repository),
        agents=len(session.agents),
        realtime=session.pipeline.realtime_active,
        last_update_time=session.last_update_time,
    )

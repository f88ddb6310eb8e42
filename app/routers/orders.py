"""
Order endpoints over the process-wide sync session.

- GET    /api/orders                : windowed slice of the filtered, sorted view
- GET    /api/orders/stats          : counts by status and priority (unfiltered)
- GET    /api/orders/dashboard      : dashboard headline numbers
- GET    /api/orders/regions        : per-region totals
- PUT    /api/orders/view/filters   : merge a partial filter into the view
- DELETE /api/orders/view/filters   : clear every filter
- PUT    /api/orders/view/sort      : replace the sort
- POST   /api/orders/resync         : full reload from the order source
- GET    /api/orders/{order_id}     : one order (local first, then the source)
- PATCH  /api/orders/{order_id}     : optimistic update

Data source failures surface as structured OrderSyncError responses.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query

from app.core.errors import OrderNotLoadedError
from app.models.api import (
    MutationResponse,
    OrderUpdateRequest,
    OrderWindow,
    ResyncResponse,
    ViewResponse,
)
from app.models.order import Order
from app.models.stats import DashboardStats, OrderStats, RegionStatsResponse
from app.services.order_session import OrderSyncSession, get_order_session

logger = logging.getLogger(__name__)

router = APIRouter()


def ready_session(session: OrderSyncSession = Depends(get_order_session)) -> OrderSyncSession:
    session.require_ready()
    return session


def _view(session: OrderSyncSession) -> ViewResponse:
    return ViewResponse(total=len(session.index), filters=session.filters, sort=session.sort)


@router.get("", response_model=OrderWindow)
async def list_orders(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    session: OrderSyncSession = Depends(ready_session),
):
    """Return one window of the current view."""
    return OrderWindow(**session.window(offset, limit))


@router.get("/stats", response_model=OrderStats)
async def order_stats(session: OrderSyncSession = Depends(ready_session)):
    return session.stats()


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard_stats(session: OrderSyncSession = Depends(ready_session)):
    return session.dashboard_stats()


@router.get("/regions", response_model=RegionStatsResponse)
async def region_stats(session: OrderSyncSession = Depends(ready_session)):
    return session.region_stats()


@router.put("/view/filters", response_model=ViewResponse)
async def update_filters(
    partial: Dict[str, Any] = Body(...),
    session: OrderSyncSession = Depends(ready_session),
):
    """Merge a partial filter. Invalid values simply drop that constraint."""
    session.set_filters(**partial)
    return _view(session)


@router.delete("/view/filters", response_model=ViewResponse)
async def clear_filters(session: OrderSyncSession = Depends(ready_session)):
    session.clear_filters()
    return _view(session)


@router.put("/view/sort", response_model=ViewResponse)
async def update_sort(
    spec: Dict[str, Any] = Body(...),
    session: OrderSyncSession = Depends(ready_session),
):
    session.set_sort(spec)
    return _view(session)


@router.post("/resync", response_model=ResyncResponse)
async def resync(session: OrderSyncSession = Depends(get_order_session)):
    """Discard local state and reload from the order source."""
    total = await session.resync()
    return ResyncResponse(total=total)


@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: str, session: OrderSyncSession = Depends(ready_session)):
    order = await session.lookup(order_id)
    if order is None:
        raise OrderNotLoadedError(detail=f"Order {order_id} not found", context={"order_id": order_id})
    return order


@router.patch("/{order_id}", response_model=MutationResponse)
async def patch_order(
    order_id: str,
    body: OrderUpdateRequest,
    session: OrderSyncSession = Depends(ready_session),
):
    """Optimistic update. The response reflects the confirmed local record."""
    if body.status is not None:
        mutation = await session.set_status(
            order_id,
            body.status,
            note=body.note,
            updated_by=body.updated_by,
            failure_reason=body.failure_reason,
        )
    else:
        if order_id not in session.repository:
            raise OrderNotLoadedError(detail=f"Order {order_id} is not loaded", context={"order_id": order_id})
        mutation = await session.update_order(order_id, body.changes)
    logger.info("Order %s updated (mutation=%s)", order_id, mutation.id)
    return MutationResponse(
        mutation_id=mutation.id,
        state=mutation.state.value,
        order=session.get(order_id),
    )

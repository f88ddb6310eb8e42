"""
Delivery exception endpoints.

- GET  /api/exceptions                        : open exceptions, newest first
- POST /api/exceptions/refresh                : refetch from the source
- POST /api/exceptions/{exception_id}/resolve : resolve one

Resolving posts a success or error notification either way.
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from app.models.api import RefreshResponse, ResolveExceptionRequest
from app.models.order_exception import OrderException
from app.services.order_session import OrderSyncSession, get_order_session

router = APIRouter()


@router.get("", response_model=List[OrderException])
async def list_exceptions(
    include_resolved: bool = Query(False, alias="includeResolved"),
    session: OrderSyncSession = Depends(get_order_session),
):
    return await session.list_exceptions(include_resolved=include_resolved)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_exceptions(session: OrderSyncSession = Depends(get_order_session)):
    return RefreshResponse(total=await session.exceptions.refresh())


@router.post("/{exception_id}/resolve", response_model=OrderException)
async def resolve_exception(
    exception_id: str,
    body: ResolveExceptionRequest,
    session: OrderSyncSession = Depends(get_order_session),
):
    if not session.exceptions.loaded:
        await session.exceptions.refresh()
    return await session.resolve_exception(exception_id, body.resolution, body.resolved_by)

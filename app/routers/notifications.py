"""
Notification endpoints.

- GET    /api/notifications        : active notifications, oldest first
- DELETE /api/notifications/{id}   : dismiss one
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.models.updates import Notification
from app.services.order_session import OrderSyncSession, get_order_session

router = APIRouter()


@router.get("", response_model=List[Notification])
async def list_notifications(session: OrderSyncSession = Depends(get_order_session)):
    return session.notifications.active()


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(notification_id: str, session: OrderSyncSession = Depends(get_order_session)):
    if not session.notifications.remove(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

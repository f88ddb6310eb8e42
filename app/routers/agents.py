"""
Delivery agent endpoints.

- GET  /api/agents                   : agents, optionally by status and region
- POST /api/agents/refresh           : reload the registry from the source
- GET  /api/agents/{agent_id}        : one agent (registry first, then the source)
- GET  /api/agents/{agent_id}/orders : loaded orders assigned to the agent
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from app.core.errors import AgentNotLoadedError
from app.models.agent import AgentStatus, DeliveryAgent
from app.models.api import RefreshResponse
from app.models.order import Order
from app.routers.orders import ready_session
from app.services.order_session import OrderSyncSession, get_order_session

router = APIRouter()


@router.get("", response_model=List[DeliveryAgent])
async def list_agents(
    status: Optional[AgentStatus] = None,
    region: Optional[str] = None,
    session: OrderSyncSession = Depends(get_order_session),
):
    return session.list_agents(status=status, region=region)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_agents(session: OrderSyncSession = Depends(get_order_session)):
    return RefreshResponse(total=await session.refresh_agents())


@router.get("/{agent_id}", response_model=DeliveryAgent)
async def get_agent(agent_id: str, session: OrderSyncSession = Depends(get_order_session)):
    agent = await session.lookup_agent(agent_id)
    if agent is None:
        raise AgentNotLoadedError(detail=f"Agent {agent_id} not found", context={"agent_id": agent_id})
    return agent


@router.get("/{agent_id}/orders", response_model=List[Order])
async def agent_orders(agent_id: str, session: OrderSyncSession = Depends(ready_session)):
    if agent_id not in session.agents:
        raise AgentNotLoadedError(detail=f"Agent {agent_id} is not loaded", context={"agent_id": agent_id})
    return session.orders_for_agent(agent_id)

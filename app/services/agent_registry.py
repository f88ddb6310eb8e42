"""
Delivery Agent Registry
=======================

Keyed in-memory table of delivery agents, held next to the order
repository. Order.assigned_driver values are looked up here; the registry
never touches orders.

Same rules as the order table: membership only comes from set_agents(),
position and status updates for unknown ids are dropped silently, and every
update swaps in a new record so readers keep a consistent copy.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from app.models.agent import AgentLocationUpdate, AgentStatus, DeliveryAgent
from app.models.order import Coordinates

logger = logging.getLogger(__name__)


class AgentRegistry:
    """In-memory delivery agent table keyed by agent id."""

    def __init__(self) -> None:
        self._agents: Dict[str, DeliveryAgent] = {}
        self._initialized = False

    def set_agents(self, agents: Iterable[DeliveryAgent]) -> None:
        """Replace every agent with ``agents``."""
        self._agents = {agent.id: agent for agent in agents}
        self._initialized = True
        logger.info("Agent registry replaced: %d agents", len(self._agents))

    def reset(self) -> None:
        self._agents = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def update_location(self, agent_id: str, lat: float, lng: float) -> Optional[DeliveryAgent]:
        current = self._agents.get(agent_id)
        if current is None:
            logger.debug("Dropping location update for unknown agent %s", agent_id)
            return None
        updated = current.model_copy(update={"current_location": Coordinates(lat=lat, lng=lng)})
        self._agents[agent_id] = updated
        return updated

    def update_status(self, agent_id: str, status: AgentStatus) -> Optional[DeliveryAgent]:
        current = self._agents.get(agent_id)
        if current is None:
            logger.debug("Dropping status update for unknown agent %s", agent_id)
            return None
        updated = current.model_copy(update={"status": AgentStatus(status)})
        self._agents[agent_id] = updated
        return updated

    def handle_location(self, update: AgentLocationUpdate) -> Optional[DeliveryAgent]:
        """Push-channel entry point for position reports."""
        return self.update_location(update.agent_id, update.lat, update.lng)

    def get(self, agent_id: str) -> Optional[DeliveryAgent]:
        return self._agents.get(agent_id)

    def get_all(self) -> List[DeliveryAgent]:
        return list(self._agents.values())

    def by_status(self, status: AgentStatus) -> List[DeliveryAgent]:
        return [a for a in self._agents.values() if a.status is status]

    def by_region(self, region: str) -> List[DeliveryAgent]:
        return [a for a in self._agents.values() if a.region == region]

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

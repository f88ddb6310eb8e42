"""
Order Sync Session
==================

PURPOSE:
    One explicit context object per dashboard session. It owns the
    repository, the projection index, the current filter and sort, the
    notification center, the ingestion pipeline and the selected order, and
    wires them together:

        pipeline -> repository -> (merge / replace listeners) -> projection
                                                             -> readers

    Filters and sort changes trigger a full projection rebuild; merges patch
    the projection incrementally.

    Alongside the orders it holds the delivery agent registry (loaded at
    start, positions pushed while realtime is on) and the exception queue
    (fetched on first use).

USAGE:
    session = OrderSyncSession(InMemoryOrderSource())
    await session.start()
    session.set_filters(status=["shipped"], search="smith")
    ids = session.ordered_ids
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from app.config import Settings, settings as default_settings
from app.core.errors import SessionNotReadyError, TransientError
from app.core.structured_logging import session_id_var
from app.models.agent import AgentStatus, DeliveryAgent
from app.models.order import Order, OrderStatus
from app.models.order_exception import OrderException
from app.models.query import FilterSpec, SortSpec
from app.models.stats import DashboardStats, OrderStats, RegionStatsResponse
from app.services.agent_registry import AgentRegistry
from app.services.exception_queue import ExceptionQueue
from app.services.ingestion import PendingMutation, UpdateIngestionPipeline
from app.services.notifications import NotificationCenter
from app.services.order_repository import OrderRepository
from app.services.order_source import OrderDataSource, Unsubscribe
from app.services.projection import ProjectionIndex
from app.services.stats import compute_dashboard_stats, compute_region_stats, compute_stats

logger = logging.getLogger(__name__)


class OrderSyncSession:
    """Client-resident order table plus its filtered, sorted view."""

    def __init__(
        self,
        source: OrderDataSource,
        config: Optional[Settings] = None,
        *,
        region_scope: Optional[str] = None,
    ) -> None:
        self.config = config or default_settings
        self.session_id = uuid.uuid4().hex[:12]
        self.source = source
        self.repository = OrderRepository()
        self.notifications = NotificationCenter(
            default_duration_ms=self.config.notification_duration_ms,
            max_items=self.config.max_notifications,
        )
        self.default_sort = SortSpec(
            field=self.config.default_sort_field,
            direction=self.config.default_sort_direction,
        )
        self.index = ProjectionIndex(FilterSpec(), self.default_sort)
        self.pipeline = UpdateIngestionPipeline(
            self.repository,
            source,
            self.notifications,
            fetch_retries=self.config.fetch_retries,
            region_scope=region_scope if region_scope is not None else self.config.region_scope,
        )
        self.selected_order_id: Optional[str] = None
        self.agents = AgentRegistry()
        self.exceptions = ExceptionQueue(source, self.notifications)
        self._agent_unsubscribe: Optional[Unsubscribe] = None

        self.repository.add_merge_listener(self.index.apply_merge)
        self.repository.add_replace_listener(self._rebuild)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, realtime: Optional[bool] = None) -> int:
        """Initial bulk load, then (optionally) subscribe to push updates."""
        session_id_var.set(self.session_id)
        count = await self.pipeline.load()
        try:
            await self.refresh_agents()
        except TransientError as exc:
            # Orders are usable without agents; POST /api/agents/refresh retries
            logger.warning("Agent list unavailable at startup: %s", exc)
        if self.config.realtime_enabled if realtime is None else realtime:
            self.pipeline.start_realtime()
            self._start_agent_updates()
        logger.info("Session %s started with %d orders, %d agents", self.session_id, count, len(self.agents))
        return count

    async def resync(self) -> int:
        """Discard local state and reload everything from the source."""
        return await self.pipeline.load()

    def reset(self) -> None:
        """Session end: stop pushes and return to the uninitialized state."""
        self.pipeline.stop_realtime()
        self._stop_agent_updates()
        self.repository.reset()
        self.index.rebuild({}, filters=FilterSpec(), sort=self.default_sort)
        self.selected_order_id = None
        self.agents.reset()
        self.exceptions.reset()
        self.notifications.clear()
        logger.info("Session %s reset", self.session_id)

    def _start_agent_updates(self) -> None:
        if self._agent_unsubscribe is None:
            self._agent_unsubscribe = self.source.subscribe_agent_updates(self.agents.handle_location)

    def _stop_agent_updates(self) -> None:
        if self._agent_unsubscribe is not None:
            self._agent_unsubscribe()
            self._agent_unsubscribe = None

    @property
    def agent_updates_active(self) -> bool:
        return self._agent_unsubscribe is not None

    def _rebuild(self) -> None:
        if not self.repository.initialized:
            self.index.clear()
            return
        self.index.rebuild(self.repository.snapshot())

    @property
    def initialized(self) -> bool:
        return self.repository.initialized

    @property
    def loading(self) -> bool:
        return self.pipeline.loading

    def require_ready(self) -> None:
        if not self.repository.initialized:
            raise SessionNotReadyError(detail="Initial order load has not completed")

    # ------------------------------------------------------------------
    # Filter & sort
    # ------------------------------------------------------------------

    @property
    def filters(self) -> FilterSpec:
        return self.index.filters

    @property
    def sort(self) -> SortSpec:
        return self.index.sort

    def set_filters(self, **partial: Any) -> List[str]:
        """Merge ``partial`` into the current filters and re-project."""
        filters = self.index.filters.merged(partial)
        return self.index.rebuild(self.repository.snapshot(), filters=filters)

    def clear_filters(self) -> List[str]:
        return self.index.rebuild(self.repository.snapshot(), filters=FilterSpec())

    def set_sort(self, spec: Any = None, **kwargs: Any) -> List[str]:
        """Replace the sort. Unknown fields or directions fall back to the default sort."""
        sort = SortSpec.normalize(spec if spec is not None else kwargs, default=self.default_sort)
        return self.index.rebuild(self.repository.snapshot(), sort=sort)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def ordered_ids(self) -> List[str]:
        return self.index.ordered_ids()

    def get(self, order_id: str) -> Optional[Order]:
        return self.repository.get(order_id)

    async def lookup(self, order_id: str) -> Optional[Order]:
        """Local record if held, else ask the data source (result is not inserted)."""
        order = self.repository.get(order_id)
        if order is not None:
            return order
        return await self.source.fetch_by_id(order_id)

    def filtered_orders(self) -> List[Order]:
        orders = []
        for order_id in self.index.ordered_ids():
            order = self.repository.get(order_id)
            if order is not None:
                orders.append(order)
        return orders

    def orders_by_status(self, status: OrderStatus) -> List[Order]:
        """Every held order in ``status``, ignoring the current filters."""
        return [o for o in self.repository.get_all() if o.status is status]

    def window(self, offset: int = 0, limit: int = 50) -> Dict[str, Any]:
        """One slice of the ordered view for a windowed renderer."""
        ids = self.index.ordered_ids()
        offset = max(0, offset)
        limit = max(0, limit)
        page = ids[offset:offset + limit]
        return {
            "total": len(ids),
            "offset": offset,
            "ids": page,
            "orders": [self.repository.get(order_id) for order_id in page],
        }

    def select(self, order_id: Optional[str]) -> Optional[Order]:
        self.selected_order_id = order_id
        return self.repository.get(order_id) if order_id else None

    @property
    def selected_order(self) -> Optional[Order]:
        if self.selected_order_id is None:
            return None
        return self.repository.get(self.selected_order_id)

    def stats(self) -> OrderStats:
        return compute_stats(self.repository.get_all())

    def dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        return compute_dashboard_stats(self.repository.get_all(), now=now)

    def region_stats(self) -> RegionStatsResponse:
        return compute_region_stats(self.repository.get_all())

    @property
    def last_update_time(self) -> Optional[datetime]:
        return self.pipeline.last_update_time

    # ------------------------------------------------------------------
    # Delivery agents
    # ------------------------------------------------------------------

    async def refresh_agents(self) -> int:
        """Replace the agent registry from the source. TransientError propagates."""
        agents = await self.source.fetch_agents()
        self.agents.set_agents(agents)
        return len(agents)

    def list_agents(self, status: Optional[AgentStatus] = None, region: Optional[str] = None) -> List[DeliveryAgent]:
        agents = self.agents.by_status(status) if status is not None else self.agents.get_all()
        if region is not None:
            agents = [a for a in agents if a.region == region]
        return sorted(agents, key=lambda a: a.id)

    async def lookup_agent(self, agent_id: str) -> Optional[DeliveryAgent]:
        """Registry first, then the data source (result is not inserted)."""
        agent = self.agents.get(agent_id)
        if agent is not None:
            return agent
        return await self.source.fetch_agent_by_id(agent_id)

    def orders_for_agent(self, agent_id: str) -> List[Order]:
        """Held orders whose assigned_driver is ``agent_id``, newest first."""
        return sorted(
            (o for o in self.repository.get_all() if o.assigned_driver == agent_id),
            key=lambda o: o.created_at,
            reverse=True,
        )

    def driver_for(self, order_id: str) -> Optional[DeliveryAgent]:
        order = self.repository.get(order_id)
        if order is None or order.assigned_driver is None:
            return None
        return self.agents.get(order.assigned_driver)

    # ------------------------------------------------------------------
    # Exceptions
    # ------------------------------------------------------------------

    async def list_exceptions(self, include_resolved: bool = False, refresh: bool = False) -> List[OrderException]:
        """Exceptions newest first. Fetched from the source on first use or when ``refresh``."""
        if refresh or not self.exceptions.loaded:
            await self.exceptions.refresh()
        return self.exceptions.view(include_resolved=include_resolved)

    async def resolve_exception(
        self,
        exception_id: str,
        resolution: str,
        resolved_by: Optional[str] = None,
    ) -> OrderException:
        return await self.exceptions.resolve(exception_id, resolution, resolved_by)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_order(self, order_id: str, changes: Mapping[str, Any]) -> PendingMutation:
        return await self.pipeline.update_order(order_id, changes)

    async def set_status(self, order_id: str, status: OrderStatus, **kwargs: Any) -> PendingMutation:
        return await self.pipeline.set_status(order_id, status, **kwargs)


_session: Optional[OrderSyncSession] = None


def get_order_session() -> OrderSyncSession:
    """FastAPI dependency: the process-wide session created at startup."""
    if _session is None:
        raise SessionNotReadyError(detail="Order session has not been created")
    return _session


def set_order_session(session: Optional[OrderSyncSession]) -> None:
    global _session
    _session = session


def current_session_id() -> Optional[str]:
    return _session.session_id if _session is not None else None

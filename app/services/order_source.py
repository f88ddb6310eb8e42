"""
Order Data Sources
==================

The engine never talks to the network itself. It consumes an
OrderDataSource:

    fetch_all()                    -> list[Order]   (TransientError on network failure)
    fetch_by_id(order_id)          -> Order | None
    update_status(order_id, changes) -> Order       (NotFoundError if absent remotely)
    subscribe_updates(callback)    -> unsubscribe function

    fetch_agents()                 -> list[DeliveryAgent]
    fetch_agent_by_id(agent_id)    -> DeliveryAgent | None
    subscribe_agent_updates(cb)    -> unsubscribe function
    fetch_exceptions()             -> list[OrderException]
    resolve_exception(id, resolution, resolved_by) -> OrderException

InMemoryOrderSource simulates the remote order service: random latency,
a configurable failure rate, and a push channel that advances a random
active order every few seconds (10% of advances fail the delivery instead).
A second channel moves up to five on-delivery agents every second or two.
Exceptions are opened for failed orders the first time they are listed.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import random
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import TypeAdapter
from pydantic.alias_generators import to_camel

from app.config import settings
from app.core.errors import NotFoundError, TransientError
from app.models.agent import AgentLocationUpdate, AgentStatus, DeliveryAgent
from app.models.order import Coordinates, Order, OrderStatus, to_field_names
from app.models.order_exception import OrderException
from app.models.updates import UpdateEnvelope, UpdateType, utcnow
from app.services.order_generator import generate_agents, generate_exception, generate_orders
from app.services.status_machine import next_status, status_changes

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[UpdateEnvelope], None]
AgentUpdateCallback = Callable[[AgentLocationUpdate], None]
Unsubscribe = Callable[[], None]

_wire_adapter = TypeAdapter(Dict[str, Any])


def to_wire_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Serialize a partial order the way it travels on the push channel."""
    dumped = _wire_adapter.dump_python(dict(changes), mode="json", by_alias=True)
    return {to_camel(key): value for key, value in dumped.items()}


class OrderDataSource(abc.ABC):
    @abc.abstractmethod
    async def fetch_all(self) -> List[Order]: ...

    @abc.abstractmethod
    async def fetch_by_id(self, order_id: str) -> Optional[Order]: ...

    @abc.abstractmethod
    async def update_status(self, order_id: str, changes: Mapping[str, Any]) -> Order: ...

    @abc.abstractmethod
    def subscribe_updates(self, callback: UpdateCallback) -> Unsubscribe: ...

    @abc.abstractmethod
    async def fetch_agents(self) -> List[DeliveryAgent]: ...

    @abc.abstractmethod
    async def fetch_agent_by_id(self, agent_id: str) -> Optional[DeliveryAgent]: ...

    @abc.abstractmethod
    def subscribe_agent_updates(self, callback: AgentUpdateCallback) -> Unsubscribe: ...

    @abc.abstractmethod
    async def fetch_exceptions(self) -> List[OrderException]: ...

    @abc.abstractmethod
    async def resolve_exception(
        self,
        exception_id: str,
        resolution: str,
        resolved_by: Optional[str] = None,
    ) -> OrderException: ...


class InMemoryOrderSource(OrderDataSource):
    """Simulated remote order service backed by a dict."""

    def __init__(
        self,
        orders: Optional[Sequence[Order]] = None,
        *,
        min_latency_ms: Optional[int] = None,
        max_latency_ms: Optional[int] = None,
        failure_rate: Optional[float] = None,
        push_interval_s: Optional[tuple[float, float]] = None,
        push_failure_chance: Optional[float] = None,
        agents: Optional[Sequence[DeliveryAgent]] = None,
        agent_push_interval_s: Optional[tuple[float, float]] = None,
        seed: Optional[int] = None,
    ) -> None:
        if orders is None:
            orders = generate_orders(settings.seed_order_count, seed=seed)
        if agents is None:
            agents = generate_agents(settings.agent_count, seed=seed)
        self._orders: Dict[str, Order] = {o.id: o for o in orders}
        self._agents: Dict[str, DeliveryAgent] = {a.id: a for a in agents}
        self._exceptions: Dict[str, OrderException] = {}
        self._agent_push_interval_s = agent_push_interval_s or (
            settings.agent_push_min_interval_s,
            settings.agent_push_max_interval_s,
        )
        self._agent_subscribers: List[AgentUpdateCallback] = []
        self._agent_push_task: Optional[asyncio.Task] = None
        self._min_latency_ms = settings.source_min_latency_ms if min_latency_ms is None else min_latency_ms
        self._max_latency_ms = settings.source_max_latency_ms if max_latency_ms is None else max_latency_ms
        self._failure_rate = settings.source_failure_rate if failure_rate is None else failure_rate
        self._push_interval_s = push_interval_s or (settings.push_min_interval_s, settings.push_max_interval_s)
        self._push_failure_chance = (
            settings.push_failure_chance if push_failure_chance is None else push_failure_chance
        )
        self._rng = random.Random(seed)
        self._subscribers: List[UpdateCallback] = []
        self._push_task: Optional[asyncio.Task] = None
        self._forced_failures = 0
        self.calls: Dict[str, int] = {
            "fetch_all": 0,
            "fetch_by_id": 0,
            "update_status": 0,
            "fetch_agents": 0,
            "fetch_exceptions": 0,
            "resolve_exception": 0,
        }

    # ------------------------------------------------------------------
    # Simulation helpers
    # ------------------------------------------------------------------

    async def _simulate_latency(self) -> None:
        if self._max_latency_ms <= 0:
            await asyncio.sleep(0)
            return
        delay_ms = self._rng.uniform(self._min_latency_ms, self._max_latency_ms)
        await asyncio.sleep(delay_ms / 1000)

    def _maybe_fail(self, operation: str) -> None:
        if self._forced_failures > 0:
            self._forced_failures -= 1
            raise TransientError(detail=f"Simulated network error in {operation}", context={"operation": operation})
        if self._failure_rate > 0 and self._rng.random() < self._failure_rate:
            raise TransientError(detail=f"Simulated network error in {operation}", context={"operation": operation})

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` calls raise TransientError."""
        self._forced_failures += count

    def records(self) -> List[Order]:
        """Server-side copy of every record, for inspection."""
        return list(self._orders.values())

    # ------------------------------------------------------------------
    # OrderDataSource
    # ------------------------------------------------------------------

    async def fetch_all(self) -> List[Order]:
        self.calls["fetch_all"] += 1
        await self._simulate_latency()
        self._maybe_fail("fetch_all")
        return list(self._orders.values())

    async def fetch_by_id(self, order_id: str) -> Optional[Order]:
        self.calls["fetch_by_id"] += 1
        await self._simulate_latency()
        self._maybe_fail("fetch_by_id")
        return self._orders.get(order_id)

    async def update_status(self, order_id: str, changes: Mapping[str, Any]) -> Order:
        self.calls["update_status"] += 1
        await self._simulate_latency()
        self._maybe_fail("update_status")
        current = self._orders.get(order_id)
        if current is None:
            raise NotFoundError(detail=f"Order {order_id} not found", context={"order_id": order_id})
        return self._store(current, changes)

    def _store(self, current: Order, changes: Mapping[str, Any]) -> Order:
        data = current.model_dump()
        data.update(to_field_names(Order, changes))
        data["id"] = current.id
        data["updated_at"] = utcnow()
        updated = Order.model_validate(data)
        self._orders[current.id] = updated
        return updated

    def subscribe_updates(self, callback: UpdateCallback) -> Unsubscribe:
        self._subscribers.append(callback)
        if self._push_task is None or self._push_task.done():
            try:
                self._push_task = asyncio.get_running_loop().create_task(self._push_loop())
            except RuntimeError:
                # No running loop: only emit() delivers updates
                self._push_task = None

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
            if not self._subscribers and self._push_task is not None:
                self._push_task.cancel()
                self._push_task = None

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    def emit(self, order_id: str, changes: Mapping[str, Any], type: Optional[UpdateType] = None) -> UpdateEnvelope:
        """Apply ``changes`` remotely and deliver them to every subscriber, in order."""
        current = self._orders.get(order_id)
        if current is not None:
            self._store(current, changes)
        envelope = UpdateEnvelope(order_id=order_id, changes=to_wire_changes(changes), type=type)
        for callback in list(self._subscribers):
            callback(envelope)
        return envelope

    def _random_advance(self) -> Optional[UpdateEnvelope]:
        active = [o for o in self._orders.values() if not o.status.is_terminal]
        if not active:
            return None
        order = self._rng.choice(active)
        target = next_status(order.status)
        if target is None:
            return None
        should_fail = self._rng.random() < self._push_failure_chance
        if should_fail:
            target = OrderStatus.FAILED
        changes = status_changes(order, target)
        return self.emit(
            order.id,
            changes,
            type=UpdateType.FAILURE if should_fail else UpdateType.STATUS_CHANGE,
        )

    async def _push_loop(self) -> None:
        low, high = self._push_interval_s
        logger.info("Push simulation started (interval %.1f-%.1fs)", low, high)
        try:
            while self._subscribers:
                await asyncio.sleep(self._rng.uniform(low, high))
                try:
                    self._random_advance()
                except Exception:
                    logger.exception("Push delivery failed")
        except asyncio.CancelledError:
            logger.info("Push simulation stopped")
            raise

    # ------------------------------------------------------------------
    # Delivery agents
    # ------------------------------------------------------------------

    async def fetch_agents(self) -> List[DeliveryAgent]:
        self.calls["fetch_agents"] += 1
        await self._simulate_latency()
        self._maybe_fail("fetch_agents")
        return list(self._agents.values())

    async def fetch_agent_by_id(self, agent_id: str) -> Optional[DeliveryAgent]:
        await self._simulate_latency()
        return self._agents.get(agent_id)

    def subscribe_agent_updates(self, callback: AgentUpdateCallback) -> Unsubscribe:
        self._agent_subscribers.append(callback)
        if self._agent_push_task is None or self._agent_push_task.done():
            try:
                self._agent_push_task = asyncio.get_running_loop().create_task(self._agent_push_loop())
            except RuntimeError:
                self._agent_push_task = None

        def unsubscribe() -> None:
            if callback in self._agent_subscribers:
                self._agent_subscribers.remove(callback)
            if not self._agent_subscribers and self._agent_push_task is not None:
                self._agent_push_task.cancel()
                self._agent_push_task = None

        return unsubscribe

    @property
    def agent_subscriber_count(self) -> int:
        return len(self._agent_subscribers)

    def emit_agent_location(self, agent_id: str, lat: float, lng: float) -> AgentLocationUpdate:
        """Move an agent remotely and deliver the position to every subscriber."""
        current = self._agents.get(agent_id)
        if current is not None:
            self._agents[agent_id] = current.model_copy(update={"current_location": Coordinates(lat=lat, lng=lng)})
        update = AgentLocationUpdate(agent_id=agent_id, lat=lat, lng=lng)
        for callback in list(self._agent_subscribers):
            callback(update)
        return update

    def _random_agent_moves(self) -> List[AgentLocationUpdate]:
        moving = [a for a in self._agents.values() if a.status is AgentStatus.ON_DELIVERY]
        picked = self._rng.sample(moving, min(5, len(moving)))
        return [
            self.emit_agent_location(
                agent.id,
                agent.current_location.lat + (self._rng.random() - 0.5) * 0.01,
                agent.current_location.lng + (self._rng.random() - 0.5) * 0.01,
            )
            for agent in picked
        ]

    async def _agent_push_loop(self) -> None:
        low, high = self._agent_push_interval_s
        try:
            while self._agent_subscribers:
                await asyncio.sleep(self._rng.uniform(low, high))
                try:
                    self._random_agent_moves()
                except Exception:
                    logger.exception("Agent location delivery failed")
        except asyncio.CancelledError:
            logger.info("Agent simulation stopped")
            raise

    # ------------------------------------------------------------------
    # Exceptions
    # ------------------------------------------------------------------

    def _open_exceptions(self) -> None:
        covered = {e.order_id for e in self._exceptions.values()}
        budget = settings.max_generated_exceptions - len(covered)
        for order in self._orders.values():
            if budget <= 0:
                break
            if order.status is OrderStatus.FAILED and order.id not in covered:
                exception = generate_exception(order.id, self._rng)
                self._exceptions[exception.id] = exception
                budget -= 1

    def add_exception(self, exception: OrderException) -> OrderException:
        self._exceptions[exception.id] = exception
        return exception

    async def fetch_exceptions(self) -> List[OrderException]:
        self.calls["fetch_exceptions"] += 1
        await self._simulate_latency()
        self._maybe_fail("fetch_exceptions")
        self._open_exceptions()
        return list(self._exceptions.values())

    async def resolve_exception(
        self,
        exception_id: str,
        resolution: str,
        resolved_by: Optional[str] = None,
    ) -> OrderException:
        self.calls["resolve_exception"] += 1
        await self._simulate_latency()
        self._maybe_fail("resolve_exception")
        current = self._exceptions.get(exception_id)
        if current is None:
            raise NotFoundError(
                detail=f"Exception {exception_id} not found",
                context={"exception_id": exception_id},
            )
        resolved = current.model_copy(
            update={"resolved_at": utcnow(), "resolved_by": resolved_by, "resolution": resolution}
        )
        self._exceptions[exception_id] = resolved
        logger.info("Exception %s resolved", exception_id)
        return resolved

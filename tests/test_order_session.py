"""
Tests for OrderSyncSession: lifecycle, view configuration, windowed reads
and the wiring between pipeline, repository and projection.
"""

from unittest.mock import AsyncMock

import pytest

from app.core.errors import SessionNotReadyError, TransientError
from app.models.agent import AgentStatus
from app.models.order import OrderStatus
from app.models.query import SortDirection, SortField
from app.models.updates import NotificationType, UpdateEnvelope
from app.services.order_session import OrderSyncSession, get_order_session, set_order_session
from app.services.order_source import InMemoryOrderSource
from app.services.projection import project


@pytest.fixture
def session(sample_orders, sample_agents, fast_source_kwargs):
    return OrderSyncSession(InMemoryOrderSource(sample_orders, agents=sample_agents, **fast_source_kwargs))


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_loads_and_projects(self, session):
        assert not session.initialized
        with pytest.raises(SessionNotReadyError):
            session.require_ready()
        assert await session.start(realtime=False) == 6
        session.require_ready()
        assert session.ordered_ids == [f"order-{i}" for i in range(5, -1, -1)]
        assert not session.pipeline.realtime_active

    @pytest.mark.asyncio
    async def test_start_with_realtime_subscribes(self, session):
        await session.start(realtime=True)
        assert session.pipeline.realtime_active
        assert session.source.subscriber_count == 1
        session.reset()
        assert session.source.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, session):
        await session.start(realtime=False)
        session.set_filters(status=["shipped"])
        session.set_sort({"field": "status", "direction": "asc"})
        session.select("order-2")
        session.notifications.add(NotificationType.INFO, "hello")

        session.reset()

        assert not session.initialized
        assert session.ordered_ids == []
        assert session.filters.is_empty
        assert session.sort == session.default_sort
        assert session.selected_order_id is None
        assert len(session.notifications) == 0

    @pytest.mark.asyncio
    async def test_resync_replaces_local_changes(self, session):
        await session.start(realtime=False)
        session.pipeline.handle_push(UpdateEnvelope(order_id="order-0", changes={"notes": "local only"}))
        assert session.get("order-0").notes == "local only"
        await session.resync()
        assert session.get("order-0").notes is None

    def test_session_dependency(self, session):
        set_order_session(None)
        with pytest.raises(SessionNotReadyError):
            get_order_session()
        set_order_session(session)
        try:
            assert get_order_session() is session
        finally:
            set_order_session(None)


class TestView:

    @pytest.mark.asyncio
    async def test_set_filters_merges_partial_updates(self, session):
        await session.start(realtime=False)
        session.set_filters(region=["West", "Northeast"])
        assert set(session.ordered_ids) == {"order-0", "order-2", "order-3", "order-5"}
        session.set_filters(status=["shipped", "failed"])
        assert set(session.ordered_ids) == {"order-2", "order-5"}
        assert session.filters.region == frozenset({"West", "Northeast"})

    @pytest.mark.asyncio
    async def test_set_filters_with_none_clears_one_dimension(self, session):
        await session.start(realtime=False)
        session.set_filters(region=["West"], status=["shipped"])
        session.set_filters(status=None)
        assert set(session.ordered_ids) == {"order-2", "order-3"}

    @pytest.mark.asyncio
    async def test_clear_filters(self, session):
        await session.start(realtime=False)
        session.set_filters(search="customer 1")
        assert session.ordered_ids == ["order-1"]
        session.clear_filters()
        assert len(session.ordered_ids) == 6

    @pytest.mark.asyncio
    async def test_set_sort(self, session):
        await session.start(realtime=False)
        ids = session.set_sort({"field": "totalAmount", "direction": "asc"})
        assert ids == [f"order-{i}" for i in range(6)]
        assert session.sort.field is SortField.TOTAL_AMOUNT
        session.set_sort(field="bogus", direction="up")
        assert session.sort.field is SortField.CREATED_AT
        assert session.sort.direction is SortDirection.DESC

    @pytest.mark.asyncio
    async def test_push_updates_flow_into_view(self, session):
        await session.start(realtime=True)
        session.set_filters(status=["shipped"])
        assert session.ordered_ids == ["order-2"]
        session.source.emit("order-1", {"status": "shipped"})
        assert set(session.ordered_ids) == {"order-1", "order-2"}
        session.source.emit("order-2", {"status": "out_for_delivery"})
        assert session.ordered_ids == ["order-1"]
        assert session.ordered_ids == project(session.repository.snapshot(), session.filters, session.sort)
        session.reset()

    @pytest.mark.asyncio
    async def test_optimistic_update_moves_record_in_view(self, session):
        await session.start(realtime=False)
        session.set_filters(status=["created"])
        await session.set_status("order-0", OrderStatus.PACKED)
        assert session.ordered_ids == []


class TestReads:

    @pytest.mark.asyncio
    async def test_window(self, session):
        await session.start(realtime=False)
        page = session.window(offset=2, limit=3)
        assert page["total"] == 6
        assert page["offset"] == 2
        assert page["ids"] == ["order-3", "order-2", "order-1"]
        assert [o.id for o in page["orders"]] == page["ids"]

    @pytest.mark.asyncio
    async def test_window_past_the_end(self, session):
        await session.start(realtime=False)
        page = session.window(offset=10, limit=5)
        assert page["ids"] == []
        assert page["total"] == 6

    @pytest.mark.asyncio
    async def test_lookup_prefers_local_record(self, session):
        await session.start(realtime=False)
        session.source.fetch_by_id = AsyncMock()
        assert (await session.lookup("order-1")).id == "order-1"
        session.source.fetch_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lookup_falls_back_to_source(self, session, order_factory):
        await session.start(realtime=False)
        remote = order_factory(77)
        session.source.fetch_by_id = AsyncMock(return_value=remote)
        assert await session.lookup("order-77") is remote
        assert "order-77" not in session.repository

    @pytest.mark.asyncio
    async def test_filtered_orders_and_by_status(self, session):
        await session.start(realtime=False)
        session.set_filters(region=["Central"])
        assert [o.id for o in session.filtered_orders()] == ["order-4", "order-1"]
        # by-status ignores the active filters
        assert [o.id for o in session.orders_by_status(OrderStatus.FAILED)] == ["order-5"]

    @pytest.mark.asyncio
    async def test_select(self, session):
        await session.start(realtime=False)
        assert session.select("order-3").id == "order-3"
        assert session.selected_order.id == "order-3"
        assert session.select(None) is None
        assert session.selected_order is None

    @pytest.mark.asyncio
    async def test_stats_ignore_filters(self, session):
        await session.start(realtime=False)
        session.set_filters(status=["shipped"])
        stats = session.stats()
        assert stats.total == 6
        assert stats.by_status[OrderStatus.SHIPPED] == 1
        assert session.dashboard_stats().total_orders == 6
        assert len(session.region_stats().regions) == 3


class TestAgents:

    @pytest.mark.asyncio
    async def test_start_loads_agents(self, session):
        await session.start(realtime=False)
        assert len(session.agents) == 3
        assert [a.id for a in session.list_agents()] == ["driver-3", "driver-7", "driver-9"]
        assert [a.id for a in session.list_agents(status=AgentStatus.ON_DELIVERY)] == ["driver-7"]
        assert [a.id for a in session.list_agents(region="Central")] == ["driver-9"]
        assert not session.agent_updates_active

    @pytest.mark.asyncio
    async def test_agent_failure_does_not_block_orders(self, session):
        original = session.source.fetch_agents
        session.source.fetch_agents = AsyncMock(side_effect=TransientError(detail="down"))
        assert await session.start(realtime=False) == 6
        assert session.initialized
        assert len(session.agents) == 0
        session.source.fetch_agents = original
        assert await session.refresh_agents() == 3

    @pytest.mark.asyncio
    async def test_realtime_agent_positions(self, session):
        await session.start(realtime=True)
        assert session.agent_updates_active
        assert session.source.agent_subscriber_count == 1

        session.source.emit_agent_location("driver-7", 34.05, -118.24)
        assert session.agents.get("driver-7").current_location.lat == 34.05
        # unknown agents never enter the registry
        session.source.emit_agent_location("driver-99", 1.0, 1.0)
        assert "driver-99" not in session.agents

        session.reset()
        assert not session.agent_updates_active
        assert session.source.agent_subscriber_count == 0
        assert len(session.agents) == 0

    @pytest.mark.asyncio
    async def test_orders_for_agent_and_driver_for(self, session):
        await session.start(realtime=False)
        assert [o.id for o in session.orders_for_agent("driver-7")] == ["order-4", "order-3"]
        assert session.orders_for_agent("driver-3") == []
        assert session.driver_for("order-3").id == "driver-7"
        assert session.driver_for("order-0") is None
        assert session.driver_for("ghost") is None

    @pytest.mark.asyncio
    async def test_lookup_agent_falls_back_to_source(self, session, agent_factory):
        await session.start(realtime=False)
        session.source._agents["driver-42"] = agent_factory(42)
        assert (await session.lookup_agent("driver-42")).id == "driver-42"
        assert "driver-42" not in session.agents
        assert await session.lookup_agent("driver-99") is None


class TestExceptions:

    @pytest.mark.asyncio
    async def test_list_fetches_once(self, session):
        await session.start(realtime=False)
        assert session.source.calls["fetch_exceptions"] == 0
        [item] = await session.list_exceptions()
        assert item.order_id == "order-5"
        await session.list_exceptions()
        assert session.source.calls["fetch_exceptions"] == 1
        await session.list_exceptions(refresh=True)
        assert session.source.calls["fetch_exceptions"] == 2

    @pytest.mark.asyncio
    async def test_resolve_posts_notification(self, session):
        await session.start(realtime=False)
        [item] = await session.list_exceptions()
        resolved = await session.resolve_exception(item.id, "Reshipped")
        assert resolved.resolved
        assert await session.list_exceptions() == []
        assert [n.title for n in session.notifications.active()] == ["Exception resolved"]

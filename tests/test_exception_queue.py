"""
Tests for the exception queue: refresh from the source and resolve with
success / error notifications.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ExceptionNotLoadedError, TransientError
from app.models.order_exception import ExceptionType, OrderException
from app.models.updates import NotificationType
from app.services.exception_queue import ExceptionQueue
from app.services.notifications import NotificationCenter
from app.services.order_source import InMemoryOrderSource

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def source(sample_orders, sample_agents, fast_source_kwargs):
    return InMemoryOrderSource(sample_orders, agents=sample_agents, **fast_source_kwargs)


@pytest.fixture
def notifications():
    return NotificationCenter()


@pytest.fixture
def queue(source, notifications):
    return ExceptionQueue(source, notifications)


def _exception(exception_id: str, order_id: str, hours: int) -> OrderException:
    return OrderException(
        id=exception_id,
        order_id=order_id,
        type=ExceptionType.ADDRESS_ISSUE,
        description="Address not found",
        created_at=BASE_TIME + timedelta(hours=hours),
    )


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_opens_one_per_failed_order(self, queue):
        assert not queue.loaded
        assert await queue.refresh() == 1
        assert queue.loaded
        [item] = queue.view()
        assert item.order_id == "order-5"
        assert not item.resolved
        assert queue.for_order("order-5") == [item]
        assert queue.for_order("order-0") == []

    @pytest.mark.asyncio
    async def test_refresh_keeps_ids_stable(self, queue):
        await queue.refresh()
        first = [e.id for e in queue.view()]
        await queue.refresh()
        assert [e.id for e in queue.view()] == first

    @pytest.mark.asyncio
    async def test_view_newest_first(self, queue, source):
        source.add_exception(_exception("exc-old", "order-3", 1))
        source.add_exception(_exception("exc-new", "order-3", 2))
        await queue.refresh()
        ids = [e.id for e in queue.view()]
        assert ids.index("exc-new") < ids.index("exc-old")

    @pytest.mark.asyncio
    async def test_refresh_failure_propagates(self, queue, source):
        source.fail_next(1)
        with pytest.raises(TransientError):
            await queue.refresh()
        assert not queue.loaded

    @pytest.mark.asyncio
    async def test_reset(self, queue):
        await queue.refresh()
        queue.reset()
        assert not queue.loaded
        assert len(queue) == 0


class TestResolve:

    @pytest.mark.asyncio
    async def test_resolve_success_notifies(self, queue, source, notifications):
        source.add_exception(_exception("exc-1", "order-3", 1))
        await queue.refresh()

        resolved = await queue.resolve("exc-1", "Customer confirmed address", resolved_by="ops")

        assert resolved.resolved
        assert resolved.resolution == "Customer confirmed address"
        assert resolved.resolved_by == "ops"
        assert queue.get("exc-1") is resolved
        assert "exc-1" not in [e.id for e in queue.view()]
        assert "exc-1" in [e.id for e in queue.view(include_resolved=True)]

        [note] = notifications.active()
        assert note.type is NotificationType.SUCCESS
        assert note.title == "Exception resolved"
        assert note.order_id == "order-3"

    @pytest.mark.asyncio
    async def test_resolve_failure_notifies_and_raises(self, queue, source, notifications):
        source.add_exception(_exception("exc-1", "order-3", 1))
        await queue.refresh()
        source.fail_next(1)

        with pytest.raises(TransientError):
            await queue.resolve("exc-1", "retry later")

        assert not queue.get("exc-1").resolved
        [note] = notifications.active()
        assert note.type is NotificationType.ERROR
        assert note.title == "Failed to resolve"

    @pytest.mark.asyncio
    async def test_resolve_unknown_exception(self, queue, notifications):
        await queue.refresh()
        with pytest.raises(ExceptionNotLoadedError) as info:
            await queue.resolve("exc-missing", "n/a")
        assert info.value.context["exception_id"] == "exc-missing"
        assert len(notifications) == 0

"""
Tests for the EventAggregator fan-in.
"""

import asyncio

import pytest

from iscsi_bridge.core.events.domain_event import DomainEvent
from iscsi_bridge.core.events.event_aggregator import (
    EventAggregator,
    LabeledEvent,
    open_event_streams,
)
from iscsi_bridge.core.events.iscsi_events import ISCSINodeRemoved
from iscsi_bridge.core.exceptions import ServiceError, SubscriptionError

pytestmark = pytest.mark.asyncio


class QueueSource:
    """Async iterator fed by the test; ``finish()`` ends it, ``fail()`` raises."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, event: DomainEvent) -> None:
        self.queue.put_nowait(event)

    def finish(self) -> None:
        self.queue.put_nowait(StopAsyncIteration)

    def fail(self, error: Exception) -> None:
        self.queue.put_nowait(error)

    def __aiter__(self):
        return self

    async def __anext__(self) -> DomainEvent:
        item = await self.queue.get()
        if item is StopAsyncIteration:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


def event(node_id: int) -> DomainEvent:
    return ISCSINodeRemoved(node_id=node_id)


async def next_event(aggregator, timeout=1.0) -> LabeledEvent:
    return await asyncio.wait_for(aggregator.__anext__(), timeout)


async def test_idle_source_does_not_block_ready_source():
    busy, idle = QueueSource(), QueueSource()
    aggregator = EventAggregator([("idle", idle), ("busy", busy)])

    busy.push(event(1))
    labeled = await next_event(aggregator)

    assert labeled.source == "busy"
    assert labeled.event.node_id == 1
    await aggregator.aclose()


async def test_events_forwarded_as_they_arrive_across_sources():
    a, b = QueueSource(), QueueSource()
    aggregator = EventAggregator([("a", a), ("b", b)])

    a.push(event(1))
    first = await next_event(aggregator)
    b.push(event(2))
    second = await next_event(aggregator)
    a.push(event(3))
    third = await next_event(aggregator)

    assert [(e.source, e.event.node_id) for e in (first, second, third)] == [
        ("a", 1),
        ("b", 2),
        ("a", 3),
    ]
    await aggregator.aclose()


async def test_order_within_a_source_is_kept():
    a, b = QueueSource(), QueueSource()
    for node_id in range(5):
        a.push(event(node_id))
        b.push(event(100 + node_id))
    a.finish()
    b.finish()

    received = [labeled async for labeled in EventAggregator([("a", a), ("b", b)])]

    assert [e.event.node_id for e in received if e.source == "a"] == [0, 1, 2, 3, 4]
    assert [e.event.node_id for e in received if e.source == "b"] == [100, 101, 102, 103, 104]


async def test_ends_only_when_every_source_ended():
    a, b = QueueSource(), QueueSource()
    aggregator = EventAggregator([("a", a), ("b", b)])

    a.push(event(1))
    a.finish()
    assert (await next_event(aggregator)).source == "a"

    pending = asyncio.ensure_future(aggregator.__anext__())
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(asyncio.shield(pending), 0.1)

    b.push(event(2))
    b.finish()
    assert (await asyncio.wait_for(pending, 1.0)).source == "b"
    with pytest.raises(StopAsyncIteration):
        await next_event(aggregator)
    assert a.closed and b.closed


async def test_no_sources_ends_immediately():
    with pytest.raises(StopAsyncIteration):
        await next_event(EventAggregator([]))


async def test_source_error_closes_others_and_propagates():
    a, b = QueueSource(), QueueSource()
    aggregator = EventAggregator([("a", a), ("b", b)])

    a.push(event(1))
    assert (await next_event(aggregator)).source == "a"
    a.fail(ServiceError("bus went away"))

    with pytest.raises(ServiceError, match="bus went away"):
        await next_event(aggregator)
    assert a.closed and b.closed
    assert aggregator.closed


async def test_aclose_wakes_consumer_and_closes_sources():
    a, b = QueueSource(), QueueSource()
    aggregator = EventAggregator([("a", a), ("b", b)])
    consumer = asyncio.create_task(aggregator.__anext__())
    await asyncio.sleep(0.01)

    await aggregator.aclose()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(consumer, 1.0)
    assert a.closed and b.closed
    await aggregator.aclose()


async def test_aclose_before_iteration_closes_sources():
    a, b = QueueSource(), QueueSource()
    aggregator = EventAggregator([("a", a), ("b", b)])

    await aggregator.aclose()

    assert a.closed and b.closed
    with pytest.raises(StopAsyncIteration):
        await next_event(aggregator)


async def test_cancelling_consumer_then_closing_releases_sources():
    a = QueueSource()
    aggregator = EventAggregator([("a", a)])

    async def consume():
        try:
            async for _ in aggregator:
                pass
        finally:
            await aggregator.aclose()

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert a.closed


class TestOpenEventStreams:
    async def test_opens_all_sources(self):
        a, b = QueueSource(), QueueSource()

        async def open_a():
            return a

        async def open_b():
            return b

        aggregator = await open_event_streams([("a", open_a), ("b", open_b)])

        assert aggregator.labels == ["a", "b"]
        await aggregator.aclose()

    async def test_setup_failure_closes_opened_sources(self):
        a = QueueSource()
        a.push(event(1))

        async def open_a():
            return a

        async def open_b():
            raise SubscriptionError("cannot subscribe")

        with pytest.raises(SubscriptionError):
            await open_event_streams([("a", open_a), ("b", open_b)])

        assert a.closed
        # Nothing was consumed from the opened source
        assert a.queue.qsize() == 1

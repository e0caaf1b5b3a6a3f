"""Tests for the research event bus."""

from __future__ import annotations

import asyncio

import pytest

from deep_research.application.research import EventBus, EventType


@pytest.fixture
def bus():
    return EventBus()


class TestPublish:
    def test_emit_records_history(self, bus):
        event = bus.emit(EventType.STATUS, "s1", status="planning")

        assert bus.history("s1") == [event]
        assert event.to_dict()["data"] == {"status": "planning"}
        assert bus.history("other") == []

    def test_history_is_bounded(self):
        bus = EventBus(max_history=3)
        for i in range(5):
            bus.emit(EventType.SOURCE_FOUND, "s1", n=i)

        assert [e.data["n"] for e in bus.history()] == [2, 3, 4]

    def test_failing_callback_does_not_stop_others(self, bus):
        received = []

        def broken(event):
            raise RuntimeError("consumer bug")

        bus.add_callback(broken)
        bus.add_callback(received.append)
        bus.emit(EventType.STATUS, "s1")

        assert len(received) == 1

    def test_remove_callback(self, bus):
        received = []
        remove = bus.add_callback(received.append)

        remove()
        remove()
        bus.emit(EventType.STATUS, "s1")

        assert received == []

    def test_final_types(self):
        assert {t for t in EventType if t.is_final} == {EventType.COMPLETE, EventType.ERROR, EventType.CANCELLED}


class TestSubscriptions:
    async def test_queue_receives_events(self, bus):
        queue = bus.subscribe()
        bus.emit(EventType.NODE_STARTED, "s1", node_id="node-1")

        event = queue.get_nowait()

        assert event.type is EventType.NODE_STARTED
        bus.unsubscribe(queue)
        bus.emit(EventType.NODE_STARTED, "s1")
        assert queue.empty()

    async def test_slow_subscriber_drops_oldest(self, bus):
        queue = bus.subscribe(max_queue=1)
        bus.emit(EventType.SOURCE_FOUND, "s1", n=1)
        bus.emit(EventType.SOURCE_FOUND, "s1", n=2)

        assert queue.get_nowait().data["n"] == 2

    async def test_subscription_context_unsubscribes(self, bus):
        async with bus.subscription() as queue:
            bus.emit(EventType.STATUS, "s1")
            assert queue.qsize() == 1
        bus.emit(EventType.STATUS, "s1")

        assert queue.qsize() == 1

    async def test_stream_replays_and_stops_at_final_event(self, bus):
        bus.emit(EventType.STATUS, "s1", status="planning")

        async def publish_later():
            await asyncio.sleep(0.01)
            bus.emit(EventType.SOURCE_FOUND, "other")
            bus.emit(EventType.SOURCE_FOUND, "s1")
            bus.emit(EventType.COMPLETE, "s1")
            bus.emit(EventType.STATUS, "s1", status="late")

        task = asyncio.create_task(publish_later())
        types = [event.type async for event in bus.stream("s1")]
        await task

        assert types == [EventType.STATUS, EventType.SOURCE_FOUND, EventType.COMPLETE]

    async def test_stream_of_finished_session_ends_immediately(self, bus):
        bus.emit(EventType.CANCELLED, "s1")

        events = [event async for event in bus.stream("s1")]

        assert [e.type for e in events] == [EventType.CANCELLED]

    def test_clear(self, bus):
        bus.subscribe()
        bus.emit(EventType.STATUS, "s1")

        bus.clear()

        assert bus.history() == []

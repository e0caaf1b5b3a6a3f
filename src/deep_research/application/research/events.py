"""
In-process event bus for research progress.

The engine publishes one ``EngineEvent`` per state transition, node start/finish,
new source and final synthesis. Consumers either register a callback or
take an ``asyncio.Queue`` subscription; the transport to any UI is theirs.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_event_ids = itertools.count(1)


class EventType(Enum):
    """Categories of events published by the research engine."""

    STATUS = "status"
    PERSPECTIVE_ADDED = "perspective_added"
    NODE_STARTED = "node_started"
    NODE_COMPLETE = "node_complete"
    SOURCE_FOUND = "source_found"
    SYNTHESIS_READY = "synthesis_ready"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in (EventType.COMPLETE, EventType.ERROR, EventType.CANCELLED)


@dataclass
class EngineEvent:
    """A single event published on the bus."""

    type: EventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    id: int = field(default_factory=lambda: next(_event_ids))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


EventCallback = Callable[[EngineEvent], None]


class EventBus:
    """
    Async pub/sub bus with bounded history.

    Subscribers receive an ``asyncio.Queue`` that yields events as they
    are published; callbacks are invoked synchronously on publish.
    """

    def __init__(self, max_history: int = 1000):
        self._queues: list[asyncio.Queue[EngineEvent]] = []
        self._callbacks: list[EventCallback] = []
        self._history: list[EngineEvent] = []
        self._max_history = max_history

    def publish(self, event: EngineEvent) -> None:
        """Deliver *event* to every subscriber and record it."""
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]

        for queue in self._queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Drop oldest if subscriber is slow
                with contextlib.suppress(asyncio.QueueEmpty):
                    queue.get_nowait()
                queue.put_nowait(event)

        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                # A broken consumer must not stop the research run
                logger.exception(f"Event callback failed for {event.type.value}")

    def emit(self, event_type: EventType, session_id: str, **data: Any) -> EngineEvent:
        event = EngineEvent(type=event_type, session_id=session_id, data=data)
        self.publish(event)
        return event

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def add_callback(self, callback: EventCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that removes it again."""
        self._callbacks.append(callback)

        def remove() -> None:
            with contextlib.suppress(ValueError):
                self._callbacks.remove(callback)

        return remove

    def subscribe(self, max_queue: int = 500) -> asyncio.Queue[EngineEvent]:
        """Return a new queue that will receive future events."""
        queue: asyncio.Queue[EngineEvent] = asyncio.Queue(maxsize=max_queue)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[EngineEvent]) -> None:
        with contextlib.suppress(ValueError):
            self._queues.remove(queue)

    @contextlib.asynccontextmanager
    async def subscription(self, max_queue: int = 500) -> AsyncIterator[asyncio.Queue[EngineEvent]]:
        """Async context manager that auto-unsubscribes on exit."""
        queue = self.subscribe(max_queue)
        try:
            yield queue
        finally:
            self.unsubscribe(queue)

    async def stream(self, session_id: str) -> AsyncIterator[EngineEvent]:
        """
        Yield the events of one session until its final event.

        Events already published for the session are replayed first.
        """
        async with self.subscription() as queue:
            for event in self.history(session_id):
                yield event
                if event.type.is_final:
                    return
            while True:
                event = await queue.get()
                if event.session_id != session_id:
                    continue
                yield event
                if event.type.is_final:
                    return

    def history(self, session_id: str | None = None) -> list[EngineEvent]:
        if session_id is None:
            return list(self._history)
        return [e for e in self._history if e.session_id == session_id]

    def clear(self) -> None:
        self._history.clear()
        self._queues.clear()
        self._callbacks.clear()

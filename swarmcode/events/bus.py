"""In-process fan-out event bus backed by asyncio queues."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from swarmcode.events.types import AgentEvent

logger = logging.getLogger(__name__)

# Marks the end of the stream for every subscriber.
_CLOSED = None


class AsyncEventBus:
    """Broadcasts `AgentEvent`s to every subscriber queue.

    Publishing never blocks: when a subscriber's queue is full the event is
    dropped for that subscriber only.
    """

    def __init__(self, maxsize: int = 1000) -> None:
        self._maxsize = maxsize
        self._subscribers: list[asyncio.Queue[AgentEvent | None]] = []
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def subscribe(self) -> asyncio.Queue[AgentEvent | None]:
        """Register a new subscriber and return its queue."""
        q: asyncio.Queue[AgentEvent | None] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue[AgentEvent | None]) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    async def publish(self, event: AgentEvent) -> None:
        self.publish_nowait(event)

    def publish_nowait(self, event: AgentEvent) -> None:
        """Deliver *event* to every subscriber without waiting."""
        if self._closed:
            return
        for q in self._subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.debug("Dropped %s event for a slow subscriber", event.kind)

    async def iter_events(
        self, q: asyncio.Queue[AgentEvent | None]
    ) -> AsyncIterator[AgentEvent]:
        """Yield events from *q* until the bus is closed."""
        while True:
            event = await q.get()
            if event is _CLOSED:
                return
            yield event

    async def close(self) -> None:
        """Signal end-of-stream to every subscriber."""
        if self._closed:
            return
        self._closed = True
        for q in self._subscribers:
            # make room for the sentinel so readers always terminate
            while q.full():
                q.get_nowait()
            q.put_nowait(_CLOSED)

"""Async event bus bridging Coordinator notifications to UI consumers.

The Coordinator publishes synchronously from inside channel and timer
callbacks; the EventBus queues the notifications for the TUI's consumer
loop (or the headless --watch loop).
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from ccui.adapters.events import CoordinatorEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue of coordinator notifications."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._queue: asyncio.Queue[CoordinatorEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: CoordinatorEvent) -> None:
        """Queue *event* without blocking the caller.

        When the queue is full the oldest notification is discarded; UI
        notifications describe current state, so the newest one wins.
        """
        if self._closed:
            return
        if self._queue.full():
            try:
                stale = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                stale = None
            self.dropped += 1
            logger.warning(
                "EventBus full, dropping oldest notification: %s (queue size: %d)",
                stale.event_type if stale else "?",
                self._queue.qsize(),
            )
        self._queue.put_nowait(event)

    async def consume(self) -> AsyncIterator[CoordinatorEvent]:
        """Yield notifications as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def drain(self) -> list[CoordinatorEvent]:
        """Return and remove everything currently queued."""
        events: list[CoordinatorEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

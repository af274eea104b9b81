"""Fan-out publish/subscribe channel for job events.

Emission is synchronous and direct: each current subscriber whose filter
matches gets the event pushed onto its own bounded queue. A subscriber that
falls behind loses events (best-effort, at-most-once); late subscribers get
no replay and should reconcile by polling job status.

Usage:
    async with broadcaster.subscribe("job_status", "job_completed", job_id=job_id) as events:
        async for event in events:
            ...
"""

import asyncio
import logging
import uuid
from typing import AsyncIterator, Optional

from contentfactory.config import settings
from contentfactory.schemas.events import EVENT_NAMES, JobEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Handle for one subscriber; iterate it to receive events.

    Unsubscribes on ``close()`` or when used as an async context manager.
    """

    def __init__(
        self,
        broadcaster: "EventBroadcaster",
        event_names: frozenset[str],
        job_id: Optional[uuid.UUID],
        max_queued: int,
    ) -> None:
        self._broadcaster = broadcaster
        self.event_names = event_names
        self.job_id = job_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queued)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: JobEvent) -> bool:
        if self.event_names and event.event not in self.event_names:
            return False
        return self.job_id is None or event.job_id == self.job_id

    def offer(self, event: JobEvent) -> bool:
        """Queue an event without waiting; False if it was dropped."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Subscriber queue full, dropped {event.event} for job {event.job_id} "
                f"({self.dropped} dropped so far)"
            )
            return False
        return True

    def pending(self) -> list[JobEvent]:
        """Drain and return the events queued so far without waiting."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                events.append(item)
        return events

    async def get(self) -> JobEvent:
        """Wait for the next event.

        Raises:
            StopAsyncIteration: If the subscription is closed and drained.
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broadcaster.unsubscribe(self)
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Reader drains the backlog and then sees the closed flag
            pass

    def __aiter__(self) -> AsyncIterator[JobEvent]:
        return self

    async def __anext__(self) -> JobEvent:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class EventBroadcaster:
    """Direct fan-out of job events to the current subscribers."""

    def __init__(self, max_queued: Optional[int] = None) -> None:
        self._max_queued = max_queued or settings.pipeline.subscriber_queue_size
        self._subscribers: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        *event_names: str,
        job_id: Optional[uuid.UUID] = None,
        max_queued: Optional[int] = None,
    ) -> Subscription:
        """Register a subscriber.

        Args:
            *event_names: Event names to receive; none means all events.
            job_id: Only receive events for this job.
            max_queued: Queue bound for this subscriber.

        Raises:
            ValueError: If an event name is unknown.
        """
        unknown = set(event_names) - EVENT_NAMES
        if unknown:
            raise ValueError(f"Unknown event names: {sorted(unknown)}")
        subscription = Subscription(
            self,
            frozenset(event_names),
            job_id,
            max_queued or self._max_queued,
        )
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def emit(self, event: JobEvent) -> int:
        """Push an event to every matching subscriber; returns deliveries."""
        delivered = 0
        for subscription in list(self._subscribers):
            if subscription.matches(event) and subscription.offer(event):
                delivered += 1
        logger.debug(f"Emitted {event.event} for job {event.job_id} to {delivered} subscriber(s)")
        return delivered

    def close_all(self) -> None:
        for subscription in list(self._subscribers):
            subscription.close()

"""Fan-out of job progress events to live subscribers.

Each subscriber owns a bounded queue. Publishing never blocks the
producer: when a subscriber's queue is full, its oldest undelivered event
is discarded to make room. Consumers block on `receive()`.
"""

from __future__ import annotations

import asyncio
import collections
import itertools
import logging
import os
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 64

_CLOSED = object()


class Subscriber:
    """One consumer (e.g. a WebSocket connection) and its event queue."""

    def __init__(self, subscriber_id: int, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.id = subscriber_id
        self.job_ids: set[int] = set()
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))
        self._held: dict[int, collections.deque] = {}
        self._hold_size = max(1, queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, message: Any) -> None:
        """Enqueue without blocking, discarding the oldest event if full."""
        if self._closed:
            return
        self._put(message)

    def deliver(self, job_id: int, message: Any) -> None:
        """Enqueue a live event, buffering it while `job_id` is held."""
        if self._closed:
            return
        held = self._held.get(job_id)
        if held is None:
            self._put(message)
            return
        if len(held) == held.maxlen:
            self.dropped += 1
        held.append(message)

    def hold(self, job_id: int) -> None:
        """Buffer live events for `job_id` until `release()`."""
        self._held.setdefault(job_id, collections.deque(maxlen=self._hold_size))

    def release(self, job_id: int, head: Any = None) -> None:
        """Enqueue `head` (if any), then every event buffered while held."""
        held = self._held.pop(job_id, None)
        if head is not None:
            self.offer(head)
        for message in held or ():
            self.offer(message)

    def discard_held(self, job_id: int) -> None:
        self._held.pop(job_id, None)

    def _put(self, item: Any) -> None:
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(item)

    async def receive(self, timeout: Optional[float] = None) -> Optional[Any]:
        """Wait for the next event.

        Returns:
            The event, or None once the subscriber is closed.

        Raises:
            asyncio.TimeoutError: No event arrived within `timeout`.
        """
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        """Wake any pending `receive()` with None; later offers are ignored."""
        if not self._closed:
            self._closed = True
            self._put(_CLOSED)


class BroadcastHub:
    """Registry of subscribers per job.

    Configuration (env vars):
    - BROADCAST_QUEUE_SIZE: Per-subscriber queue bound (default: 64)
    """

    def __init__(self, queue_size: Optional[int] = None):
        self._queue_size = (
            queue_size
            if queue_size is not None
            else int(os.environ.get("BROADCAST_QUEUE_SIZE", DEFAULT_QUEUE_SIZE))
        )
        self._subscribers: dict[int, Subscriber] = {}
        self._by_job: dict[int, set[int]] = {}
        self._ids = itertools.count(1)
        self._published = 0

    def connect(self) -> Subscriber:
        """Register a new subscriber with no job subscriptions."""
        subscriber = Subscriber(next(self._ids), self._queue_size)
        self._subscribers[subscriber.id] = subscriber
        logger.debug(f"Subscriber {subscriber.id} connected")
        return subscriber

    def disconnect(self, subscriber: Subscriber) -> None:
        """Remove a subscriber from every job and close its queue."""
        for job_id in list(subscriber.job_ids):
            self.unsubscribe(subscriber, job_id)
        self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        logger.debug(f"Subscriber {subscriber.id} disconnected")

    def subscribe(self, subscriber: Subscriber, job_id: int, hold: bool = False) -> None:
        """Add `subscriber` to `job_id`.

        With `hold`, live events are buffered until `subscriber.release(job_id)`
        so a catch-up message can be queued ahead of them.
        """
        if hold:
            subscriber.hold(job_id)
        self._by_job.setdefault(job_id, set()).add(subscriber.id)
        subscriber.job_ids.add(job_id)

    def unsubscribe(self, subscriber: Subscriber, job_id: int) -> None:
        subscriber.job_ids.discard(job_id)
        subscriber.discard_held(job_id)
        ids = self._by_job.get(job_id)
        if ids is None:
            return
        ids.discard(subscriber.id)
        if not ids:
            del self._by_job[job_id]

    def subscriber_count(self, job_id: int) -> int:
        return len(self._by_job.get(job_id, ()))

    def publish(self, job_id: int, message: dict[str, Any]) -> int:
        """Deliver `message` to every subscriber of `job_id`.

        Returns:
            Number of subscribers the message was queued for.
        """
        self._published += 1
        delivered = 0
        for subscriber_id in list(self._by_job.get(job_id, ())):
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is None or subscriber.closed:
                continue
            subscriber.deliver(job_id, message)
            delivered += 1
        return delivered

    def stats(self) -> dict[str, int]:
        return {
            "subscribers": len(self._subscribers),
            "jobsWatched": len(self._by_job),
            "published": self._published,
            "dropped": sum(s.dropped for s in self._subscribers.values()),
        }

    def close(self) -> None:
        """Disconnect every subscriber."""
        for subscriber in list(self._subscribers.values()):
            self.disconnect(subscriber)

"""
hub.py

Fan-out of snapshots to connected viewers.

- Each subscriber owns a small bounded outbox; publish only ever does a
  non-blocking put, so one stalled viewer cannot hold up the rest.
- A subscriber whose outbox is full or whose channel failed is unregistered
  at once and closed in a background task, so a channel that is slow to
  close does not hold up the next publish.
- Registration and removal take the write side of a reader/writer lock,
  publishing takes the read side.
"""

import asyncio
import contextlib
import logging
from typing import List, Optional, Set

from pod_visualizer.errors import SubscriberUnresponsive
from pod_visualizer.models import ClusterSnapshot
from pod_visualizer.snapshot import filter_namespace

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """asyncio reader/writer lock; waiting writers block new readers."""

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.asynccontextmanager
    async def reading(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and not self._writers_waiting)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.asynccontextmanager
    async def writing(self):
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and not self._readers)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class Subscriber:
    """
    A viewer receiving pushed snapshots.

    `deliver` is called by the hub and never blocks. Whatever transports the
    snapshots to the viewer reads them back with `next_snapshot`. Subclasses
    override `_on_close` to release their channel.
    """

    def __init__(self, namespace: str = "", buffer_size: int = 16, name: str = "subscriber"):
        self.namespace = namespace
        self.name = name
        self.closed = False
        self.failed = False
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} namespace={self.namespace or '*'}>"

    def deliver(self, snapshot: ClusterSnapshot) -> None:
        if self.closed or self.failed:
            raise SubscriberUnresponsive(f"{self.name} channel is closed")
        try:
            self._outbox.put_nowait(filter_namespace(snapshot, self.namespace))
        except asyncio.QueueFull:
            raise SubscriberUnresponsive(
                f"{self.name} outbox full ({self._outbox.maxsize} pending)"
            ) from None

    async def next_snapshot(self) -> ClusterSnapshot:
        return await self._outbox.get()

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._on_close()

    async def _on_close(self) -> None:
        pass


class LatestSubscriber(Subscriber):
    """Keeps only the newest snapshots; a full outbox sheds its oldest entry."""

    def deliver(self, snapshot: ClusterSnapshot) -> None:
        if self.closed or self.failed:
            raise SubscriberUnresponsive(f"{self.name} channel is closed")
        if self._outbox.full():
            self._outbox.get_nowait()
        self._outbox.put_nowait(filter_namespace(snapshot, self.namespace))


class BroadcastHub:
    def __init__(self):
        self._subscribers: Set[Subscriber] = set()
        self._lock = ReadWriteLock()
        self._latest: Optional[ClusterSnapshot] = None
        self._closing: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return subscriber in self._subscribers

    @property
    def latest(self) -> Optional[ClusterSnapshot]:
        """The most recently published snapshot, if any."""
        return self._latest

    async def register(self, subscriber: Subscriber) -> None:
        async with self._lock.writing():
            self._subscribers.add(subscriber)
        logger.info(f"Registered {subscriber!r}. Total subscribers: {len(self)}")

    async def unregister(self, subscriber: Subscriber) -> bool:
        """Remove and close a subscriber. Returns False if it was not registered."""
        async with self._lock.writing():
            if subscriber not in self._subscribers:
                return False
            self._subscribers.discard(subscriber)
        await self._close_quietly(subscriber)
        logger.info(f"Unregistered {subscriber!r}. Total subscribers: {len(self)}")
        return True

    @property
    def closing(self) -> int:
        """Dropped subscribers whose channel is still being closed."""
        return len(self._closing)

    async def _close_quietly(self, subscriber: Subscriber) -> None:
        try:
            await subscriber.close()
        except Exception:
            logger.exception(f"Error closing {subscriber!r}")

    async def _retire(self, dropped: List[Subscriber]) -> None:
        # Closing a stalled channel can block; it must not hold up publishing.
        async with self._lock.writing():
            for subscriber in dropped:
                self._subscribers.discard(subscriber)
        for subscriber in dropped:
            task = asyncio.create_task(self._close_quietly(subscriber), name=f"close-{subscriber.name}")
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)
        logger.info(f"Dropped {len(dropped)} subscriber(s). Total subscribers: {len(self)}")

    async def publish(self, snapshot: ClusterSnapshot) -> int:
        """Hand `snapshot` to every subscriber; returns how many accepted it."""
        self._latest = snapshot
        delivered = 0
        dropped: List[Subscriber] = []
        async with self._lock.reading():
            for subscriber in self._subscribers:
                try:
                    subscriber.deliver(snapshot)
                except SubscriberUnresponsive as exc:
                    logger.warning(f"Dropping {subscriber!r}: {exc}")
                    dropped.append(subscriber)
                else:
                    delivered += 1
        if dropped:
            await self._retire(dropped)
        return delivered

    async def close_all(self) -> None:
        async with self._lock.reading():
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            await self.unregister(subscriber)
        await self.wait_closed()

    async def wait_closed(self) -> None:
        """Wait for dropped subscribers to finish closing."""
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

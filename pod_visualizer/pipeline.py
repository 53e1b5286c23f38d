"""
pipeline.py

The rebuild-and-publish path and the workers that drive it.

    watcher/ticker -> refresh(): list pods + deployments -> build -> offer
    offer -> bounded queue (drop-newest when full) -> run() -> hub.publish

A single consumer drains the queue, so every subscriber sees snapshots in
the order they were published.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List

from pod_visualizer.hub import BroadcastHub
from pod_visualizer.models import ClusterSnapshot
from pod_visualizer.reader import WATCHED_KINDS
from pod_visualizer.settings import VisualizerSettings
from pod_visualizer.snapshot import build
from pod_visualizer.ticker import FallbackTicker
from pod_visualizer.watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class SnapshotPipeline:
    def __init__(self, reader, hub: BroadcastHub, queue_size: int = 256):
        self._reader = reader
        self._hub = hub
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self.published = 0

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    async def fetch(self, namespace: str = "") -> ClusterSnapshot:
        """Read and build a snapshot on demand. Raises SourceUnavailable."""
        pods = await asyncio.to_thread(self._reader.list_pods, namespace)
        deployments = await asyncio.to_thread(self._reader.list_deployments, namespace)
        return build(pods, deployments)

    async def refresh(self) -> ClusterSnapshot:
        """Rebuild the all-namespaces snapshot and queue it for broadcast."""
        snapshot = await self.fetch("")
        self.offer(snapshot)
        return snapshot

    def offer(self, snapshot: ClusterSnapshot) -> bool:
        try:
            self._queue.put_nowait(snapshot)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug(f"Broadcast queue full; dropped snapshot ({self.dropped} so far)")
            return False
        return True

    async def run(self) -> None:
        while True:
            snapshot = await self._queue.get()
            try:
                delivered = await self._hub.publish(snapshot)
                self.published += 1
                logger.debug(f"Published snapshot to {delivered} subscriber(s)")
            finally:
                self._queue.task_done()


class LiveFeed:
    """
    Owns the background workers that keep a hub supplied with snapshots:
    one watcher per resource kind, the fallback ticker and the queue
    consumer. A worker that dies unexpectedly is logged and restarted.
    """

    def __init__(self, reader, hub: BroadcastHub, settings: VisualizerSettings):
        self.hub = hub
        self.pipeline = SnapshotPipeline(reader, hub, queue_size=settings.queue_size)
        self.watchers = [
            ChangeWatcher(
                kind,
                reader,
                self.pipeline.refresh,
                retry_delay=settings.watch_retry_delay,
                restart_delay=settings.watch_restart_delay,
                watch_timeout=settings.watch_timeout_seconds,
            )
            for kind in WATCHED_KINDS
        ]
        self.ticker = FallbackTicker(self.pipeline.refresh, interval=settings.fallback_interval)
        self._restart_delay = settings.watch_restart_delay
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            logger.warning("Live feed already running")
            return
        workers = [("broadcast", self.pipeline.run), ("ticker", self.ticker.run)]
        workers += [(f"watch-{w.kind}", w.run) for w in self.watchers]
        self._tasks = [
            asyncio.create_task(self._supervise(name, run), name=name)
            for name, run in workers
        ]
        logger.info(f"Live feed started with {len(self._tasks)} workers")

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Live feed stopped")

    async def _supervise(self, name: str, run: Callable[[], Awaitable[None]]) -> None:
        while True:
            try:
                await run()
            except asyncio.CancelledError:
                # Only our own cancellation means shutdown.
                if asyncio.current_task().cancelling():
                    raise
                logger.exception(f"Worker {name} hit a stray cancellation; restarting in {self._restart_delay}s")
                await asyncio.sleep(self._restart_delay)
            except Exception:
                logger.exception(f"Worker {name} crashed; restarting in {self._restart_delay}s")
                await asyncio.sleep(self._restart_delay)
            else:
                return

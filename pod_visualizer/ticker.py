"""Periodic rebuild that keeps the feed alive when watches are quiet or stuck."""

import asyncio
import logging

from pod_visualizer.errors import SourceUnavailable
from pod_visualizer.watcher import Rebuild

logger = logging.getLogger(__name__)


class FallbackTicker:
    def __init__(self, rebuild: Rebuild, interval: float = 10.0):
        self._rebuild = rebuild
        self._interval = interval
        self.ticks = 0

    async def run(self) -> None:
        # First tick fires immediately so viewers get data before any watch event.
        logger.info(f"Starting fallback ticker every {self._interval}s")
        while True:
            self.ticks += 1
            try:
                await self._rebuild()
            except SourceUnavailable as exc:
                logger.warning(f"Error getting cluster data on tick {self.ticks}: {exc}")
            await asyncio.sleep(self._interval)

"""
watcher.py

Keeps one watch stream per resource kind open forever and turns every change
into a full snapshot rebuild.

State machine per kind:
- connecting: open a cluster-wide watch. On failure wait `retry_delay`
  (5s) and try again.
- streaming: for each ADDED/MODIFIED/DELETED event call `rebuild()`; other
  event types are ignored. When the stream ends or fails wait
  `restart_delay` (1s) and go back to connecting.

Event payloads are never merged; the rebuild re-reads everything.
"""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable

from pod_visualizer.errors import SourceUnavailable, WatchStreamClosed
from pod_visualizer.reader import CHANGE_EVENTS

logger = logging.getLogger(__name__)

TRIGGER_EVENTS = CHANGE_EVENTS

Rebuild = Callable[[], Awaitable[Any]]


class WatchState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"


class ChangeWatcher:
    def __init__(
        self,
        kind: str,
        reader,
        rebuild: Rebuild,
        retry_delay: float = 5.0,
        restart_delay: float = 1.0,
        watch_timeout: int = 300,
    ):
        self.kind = kind
        self._reader = reader
        self._rebuild = rebuild
        self._retry_delay = retry_delay
        self._restart_delay = restart_delay
        self._watch_timeout = watch_timeout
        self.state = WatchState.IDLE
        self.attempts = 0
        self.events = 0

    def __repr__(self) -> str:
        return f"<ChangeWatcher {self.kind} state={self.state.value} attempts={self.attempts}>"

    async def run(self) -> None:
        logger.info(f"Starting {self.kind} watcher")
        while True:
            self.state = WatchState.CONNECTING
            self.attempts += 1
            try:
                session = await asyncio.to_thread(self._reader.open_watch, self.kind, self._watch_timeout)
            except SourceUnavailable as exc:
                logger.warning(
                    f"Error creating {self.kind} watcher: {exc}; retrying in {self._retry_delay}s"
                )
                await asyncio.sleep(self._retry_delay)
                continue

            self.state = WatchState.STREAMING
            try:
                await self._stream(session)
                logger.debug(f"{self.kind} watch ended; reopening")
            except WatchStreamClosed as exc:
                logger.info(f"{exc}; reopening in {self._restart_delay}s")
            finally:
                session.close()
            await asyncio.sleep(self._restart_delay)

    async def _stream(self, session) -> None:
        async for event_type, _ in session:
            if event_type not in TRIGGER_EVENTS:
                continue
            self.events += 1
            try:
                await self._rebuild()
            except SourceUnavailable as exc:
                logger.warning(f"Error getting cluster data after {self.kind} event: {exc}")

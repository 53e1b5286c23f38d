"""
web.py

HTTP/WebSocket surface of the live feed.

Routes:
- GET /api/cluster?namespace=<ns>  on-demand snapshot as JSON
- GET /ws?namespace=<ns>           WebSocket; current snapshot on connect, then
                                   every published snapshot
- GET /health                      200 while the process is up
- GET /ready                       200 if the Kubernetes API answers within
                                   the readiness timeout, else 503
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from aiohttp import WSMsgType, web

from pod_visualizer.errors import SourceUnavailable
from pod_visualizer.hub import BroadcastHub, Subscriber
from pod_visualizer.log import configure_logging
from pod_visualizer.pipeline import LiveFeed
from pod_visualizer.reader import ResourceReader
from pod_visualizer.settings import VisualizerSettings

logger = logging.getLogger(__name__)

READER_KEY = web.AppKey("reader", object)
HUB_KEY = web.AppKey("hub", BroadcastHub)
FEED_KEY = web.AppKey("feed", LiveFeed)
SETTINGS_KEY = web.AppKey("settings", VisualizerSettings)

WS_HEARTBEAT_SECONDS = 30.0


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WebSocketSubscriber(Subscriber):
    """
    Forwards snapshots from the outbox to one WebSocket connection.

    A client that stops reading leaves the writer parked in a send. Such a
    connection is aborted rather than closed with a handshake, since the
    close frame would queue behind the same unsent data.
    """

    def __init__(
        self,
        ws: web.WebSocketResponse,
        transport: Optional[asyncio.BaseTransport] = None,
        namespace: str = "",
        buffer_size: int = 16,
        name: str = "ws",
    ):
        super().__init__(namespace=namespace, buffer_size=buffer_size, name=name)
        self._ws = ws
        self._transport = transport
        self._writer: Optional[asyncio.Task] = None
        self._sending = False

    def start(self) -> None:
        self._writer = asyncio.create_task(self._write_loop(), name=f"{self.name}-writer")

    async def _write_loop(self) -> None:
        while True:
            snapshot = await self.next_snapshot()
            self._sending = True
            try:
                await self._ws.send_str(snapshot.to_json())
            except Exception as exc:
                logger.warning(f"Error sending data to WebSocket client {self.name}: {exc!r}")
                self.failed = True
                self._abort()
                return
            finally:
                self._sending = False

    def _abort(self) -> None:
        if self._transport is not None and not self._transport.is_closing():
            self._transport.abort()

    async def _on_close(self) -> None:
        stalled = self._sending or self.failed
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
        if stalled:
            self._abort()
        else:
            await self._ws.close()


# =========================
# Handlers
# =========================

async def handle_cluster(request: web.Request) -> web.Response:
    namespace = request.query.get("namespace", "")
    feed = request.app[FEED_KEY]
    try:
        snapshot = await feed.pipeline.fetch(namespace)
    except SourceUnavailable as exc:
        logger.warning(f"On-demand snapshot failed: {exc}")
        return web.json_response({"error": str(exc), "timestamp": _now()}, status=500)
    return web.Response(text=snapshot.to_json(), content_type="application/json")


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy", "timestamp": _now()})


async def handle_ready(request: web.Request) -> web.Response:
    reader = request.app[READER_KEY]
    timeout = request.app[SETTINGS_KEY].readiness_timeout
    try:
        await asyncio.wait_for(asyncio.to_thread(reader.probe, timeout), timeout)
    except asyncio.TimeoutError:
        error = f"Kubernetes API did not answer within {timeout}s"
    except SourceUnavailable as exc:
        error = str(exc)
    else:
        return web.json_response({"status": "ready", "timestamp": _now()})
    return web.json_response(
        {"status": "not ready", "error": error, "timestamp": _now()},
        status=503,
    )


async def handle_websocket(request: web.Request) -> web.WebSocketResponse:
    app = request.app
    hub = app[HUB_KEY]
    namespace = request.query.get("namespace", "")

    ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT_SECONDS)
    await ws.prepare(request)

    subscriber = WebSocketSubscriber(
        ws,
        transport=request.transport,
        namespace=namespace,
        buffer_size=app[SETTINGS_KEY].subscriber_buffer,
        name=f"ws-{request.remote or 'unknown'}-{id(ws):x}",
    )

    greeting = hub.latest
    if greeting is None:
        try:
            greeting = await app[FEED_KEY].pipeline.fetch("")
        except SourceUnavailable as exc:
            logger.warning(f"No initial snapshot for {subscriber.name}: {exc}")
    if greeting is not None:
        subscriber.deliver(greeting)

    await hub.register(subscriber)
    subscriber.start()

    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.info(f"WebSocket client {subscriber.name} error: {ws.exception()}")
                break
    finally:
        await hub.unregister(subscriber)
    return ws


# =========================
# Application
# =========================

async def _run_feed(app: web.Application):
    feed = app[FEED_KEY]
    feed.start()
    yield
    await feed.stop()


async def _close_subscribers(app: web.Application) -> None:
    await app[HUB_KEY].close_all()


def create_app(reader, settings: VisualizerSettings, start_feed: bool = True) -> web.Application:
    """Build the application; `start_feed=False` leaves the workers stopped."""
    app = web.Application()
    hub = BroadcastHub()
    app[READER_KEY] = reader
    app[HUB_KEY] = hub
    app[FEED_KEY] = LiveFeed(reader, hub, settings)
    app[SETTINGS_KEY] = settings

    app.router.add_get("/api/cluster", handle_cluster)
    app.router.add_get("/ws", handle_websocket)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/ready", handle_ready)

    if start_feed:
        app.cleanup_ctx.append(_run_feed)
    app.on_shutdown.append(_close_subscribers)
    return app


def main(argv=None) -> None:
    """Entry point for pod-visualizer-web."""
    settings = VisualizerSettings()
    parser = argparse.ArgumentParser(description="Serve live pod and deployment readiness over HTTP")
    parser.add_argument("--host", default=settings.host, help="Address to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="Port for the web server")
    parser.add_argument(
        "--kubeconfig",
        default=settings.kubeconfig,
        help="Path to a kubeconfig file (not needed when running in cluster)",
    )
    args = parser.parse_args(argv)
    settings = settings.model_copy(update={"host": args.host, "port": args.port, "kubeconfig": args.kubeconfig})

    configure_logging(settings.log_level, settings.json_logs)
    logger.info("Connecting to Kubernetes cluster...")
    try:
        reader = ResourceReader.connect(settings.kubeconfig, request_timeout=settings.request_timeout)
        reader.probe(settings.readiness_timeout)
    except SourceUnavailable as exc:
        logger.error(f"Failed to connect to Kubernetes cluster: {exc}")
        sys.exit(1)

    logger.info("Connected to Kubernetes cluster successfully")
    logger.info(f"Starting web server on {settings.host}:{settings.port}")
    logger.info(f"WebSocket endpoint available at ws://{settings.host}:{settings.port}/ws")
    web.run_app(create_app(reader, settings), host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()

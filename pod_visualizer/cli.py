#!/usr/bin/env python3
"""
Pod Visualizer CLI - container and replica readiness as block bars.

One-shot by default: lists pods and deployments, prints a line per resource
and two summary progress bars, then exits. With --watch the same view is kept
live, fed by the watch streams and the fallback ticker.
"""

import argparse
import asyncio
import sys
from typing import List

from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from pod_visualizer.errors import SourceUnavailable
from pod_visualizer.hub import BroadcastHub, LatestSubscriber
from pod_visualizer.log import configure_logging
from pod_visualizer.models import ClusterSnapshot, DeploymentRecord, PodRecord
from pod_visualizer.pipeline import LiveFeed
from pod_visualizer.reader import ResourceReader
from pod_visualizer.settings import VisualizerSettings
from pod_visualizer.snapshot import build

BLOCK_CHAR = "█"
EMPTY_CHAR = "░"
BAR_WIDTH = 50
RULE_WIDTH = 40


def block_bar(ready: int, total: int) -> Text:
    """One block per unit: filled for ready, hollow for not ready."""
    bar = Text()
    bar.append(BLOCK_CHAR * max(ready, 0), style="green")
    bar.append(EMPTY_CHAR * max(total - ready, 0), style="dim")
    return bar


def progress_bar(percentage: float, width: int = BAR_WIDTH) -> Text:
    filled = int(width * percentage / 100)
    bar = Text()
    bar.append(BLOCK_CHAR * filled, style="green")
    bar.append(EMPTY_CHAR * (width - filled), style="dim")
    return bar


def pod_line(pod: PodRecord) -> Text:
    line = Text(f"{pod.status_symbol} {pod.namespace}/{pod.name}: ")
    line.append_text(block_bar(pod.ready_containers, pod.container_count))
    line.append(f" ({pod.ready_containers}/{pod.container_count} containers ready)")
    return line


def deployment_line(deployment: DeploymentRecord) -> Text:
    line = Text(f"📦 {deployment.namespace}/{deployment.name}: ")
    line.append_text(block_bar(deployment.ready_replicas, deployment.replicas))
    line.append(f" ({deployment.ready_replicas}/{deployment.replicas} replicas ready)")
    return line


def summary_line(label: str, ready: int, total: int, percentage: float) -> Text:
    line = Text(f"{label}: {ready}/{total} ({percentage:.1f}%) [")
    line.append_text(progress_bar(percentage))
    line.append("]")
    return line


def render_snapshot(snapshot: ClusterSnapshot) -> Group:
    """Render pods, deployments and both summaries as one rich renderable."""
    parts: List = [
        Text("Pod Visualizer - Kubernetes Container Overview", style="bold"),
        Text("=" * 44),
    ]

    if snapshot.pods:
        parts.append(Text(f"Pods Overview ({len(snapshot.pods)} total)", style="bold cyan"))
        parts.append(Text("-" * RULE_WIDTH))
        parts.extend(pod_line(p) for p in snapshot.pods)
        parts.append(Text(""))
        parts.append(Text("Container Summary:", style="bold"))
        parts.append(summary_line(
            "Running",
            snapshot.ready_containers,
            snapshot.total_containers,
            snapshot.container_percentage,
        ))
    else:
        parts.append(Text("No pods found."))

    parts.append(Text(""))

    if snapshot.deployments:
        parts.append(Text(f"Deployments Overview ({len(snapshot.deployments)} total)", style="bold cyan"))
        parts.append(Text("-" * RULE_WIDTH))
        parts.extend(deployment_line(d) for d in snapshot.deployments)
        parts.append(Text(""))
        parts.append(Text("Replica Summary:", style="bold"))
        parts.append(summary_line(
            "Ready",
            snapshot.ready_replicas,
            snapshot.total_replicas,
            snapshot.replica_percentage,
        ))
    else:
        parts.append(Text("No deployments found."))

    parts.append(Text(""))
    parts.append(Text(f"Last updated: {snapshot.last_updated:%Y-%m-%d %H:%M:%S} UTC", style="dim"))
    return Group(*parts)


async def watch_dashboard(reader, settings: VisualizerSettings, namespace: str, console: Console) -> None:
    """Keep the rendered view live until cancelled."""
    hub = BroadcastHub()
    feed = LiveFeed(reader, hub, settings)
    # The screen only ever needs the newest snapshot.
    viewer = LatestSubscriber(namespace=namespace, buffer_size=1, name="terminal")
    await hub.register(viewer)
    feed.start()
    try:
        with Live(console=console, refresh_per_second=4, screen=True) as live:
            live.update(Text("Waiting for cluster data...", style="dim"))
            while True:
                snapshot = await viewer.next_snapshot()
                live.update(render_snapshot(snapshot))
    finally:
        await feed.stop()
        await hub.close_all()


def main(argv=None) -> None:
    """Main entry point."""
    settings = VisualizerSettings()
    parser = argparse.ArgumentParser(description="Show pod and deployment readiness as block bars")
    parser.add_argument(
        "-n",
        "--namespace",
        default="",
        help="Namespace to show (default: all namespaces)",
    )
    parser.add_argument(
        "--kubeconfig",
        default=settings.kubeconfig,
        help="Path to a kubeconfig file (not needed when running in cluster)",
    )
    parser.add_argument("--watch", action="store_true", help="Keep the view live")
    args = parser.parse_args(argv)

    configure_logging("WARNING", settings.json_logs)
    console = Console()

    try:
        reader = ResourceReader.connect(args.kubeconfig, request_timeout=settings.request_timeout)
        if args.watch:
            reader.probe(settings.readiness_timeout)
        else:
            snapshot = build(reader.list_pods(args.namespace), reader.list_deployments(args.namespace))
    except SourceUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not args.watch:
        console.print(render_snapshot(snapshot))
        return

    try:
        asyncio.run(watch_dashboard(reader, settings, args.namespace, console))
    except KeyboardInterrupt:
        console.print("\n[yellow]Exiting...[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()

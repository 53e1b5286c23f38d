"""
snapshot.py

Builds ClusterSnapshot values from pod and deployment records.

- Container readiness is summed across pods, replica readiness across
  deployments.
- A percentage is ready/total*100, or 0 when total is 0, clamped to [0, 100].
- Record order is kept exactly as the reader returned it.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from pod_visualizer.models import ClusterSnapshot, DeploymentRecord, PodRecord


def percentage(ready: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, ready / total * 100))


def build(
    pods: Iterable[PodRecord],
    deployments: Iterable[DeploymentRecord],
    now: Optional[datetime] = None,
) -> ClusterSnapshot:
    """Aggregate records into a new snapshot stamped with `now` (UTC by default)."""
    pods = tuple(pods)
    deployments = tuple(deployments)

    total_containers = sum(p.container_count for p in pods)
    ready_containers = sum(p.ready_containers for p in pods)
    total_replicas = sum(d.replicas for d in deployments)
    ready_replicas = sum(d.ready_replicas for d in deployments)

    return ClusterSnapshot(
        pods=pods,
        deployments=deployments,
        total_containers=total_containers,
        ready_containers=ready_containers,
        container_percentage=percentage(ready_containers, total_containers),
        total_replicas=total_replicas,
        ready_replicas=ready_replicas,
        replica_percentage=percentage(ready_replicas, total_replicas),
        last_updated=now or datetime.now(timezone.utc),
    )


def filter_namespace(snapshot: ClusterSnapshot, namespace: str) -> ClusterSnapshot:
    """
    Restrict a snapshot to one namespace and recompute its totals.

    The shared feed always carries every namespace; viewers that asked for a
    single namespace get this narrowed copy. The capture time is kept.
    """
    if not namespace:
        return snapshot
    return build(
        [p for p in snapshot.pods if p.namespace == namespace],
        [d for d in snapshot.deployments if d.namespace == namespace],
        now=snapshot.last_updated,
    )

"""
models.py

Immutable value types flowing from the reader through the hub to viewers.

Records are replaced wholesale on every refresh; a ClusterSnapshot is never
edited after it is built. JSON keys are camelCase to match the dashboard
frontend.
"""

from datetime import datetime
from typing import ClassVar, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

STATUS_SYMBOLS = {
    "running": "✅",
    "succeeded": "✅",
    "pending": "⏳",
    "failed": "❌",
}
UNKNOWN_SYMBOL = "❓"


def symbol_for_status(status: str) -> str:
    """Map a pod phase to the symbol shown next to it."""
    return STATUS_SYMBOLS.get((status or "").lower(), UNKNOWN_SYMBOL)


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class PodRecord(_Record):
    kind: ClassVar[str] = "Pod"

    name: str
    namespace: str
    status: str
    container_count: int = Field(ge=0)
    ready_containers: int = Field(ge=0)
    status_symbol: str = UNKNOWN_SYMBOL

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.kind, self.namespace, self.name)


class DeploymentRecord(_Record):
    kind: ClassVar[str] = "Deployment"

    name: str
    namespace: str
    replicas: int = Field(ge=0)
    ready_replicas: int = Field(ge=0)
    available_replicas: int = Field(default=0, ge=0)

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.kind, self.namespace, self.name)


class ClusterSnapshot(_Record):
    """Readiness of every pod and deployment at one instant."""

    pods: Tuple[PodRecord, ...] = ()
    deployments: Tuple[DeploymentRecord, ...] = ()
    total_containers: int = Field(default=0, ge=0)
    ready_containers: int = Field(default=0, ge=0)
    container_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    total_replicas: int = Field(default=0, ge=0)
    ready_replicas: int = Field(default=0, ge=0)
    replica_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    last_updated: datetime

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data) -> "ClusterSnapshot":
        return cls.model_validate_json(data)

    @property
    def namespaces(self) -> Tuple[str, ...]:
        seen = {p.namespace for p in self.pods} | {d.namespace for d in self.deployments}
        return tuple(sorted(seen))

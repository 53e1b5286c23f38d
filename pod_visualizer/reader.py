"""
reader.py

Reads pods and deployments from the Kubernetes API and opens watch streams.

- Every read is a one-shot list call; nothing is cached.
- Namespace "" means all namespaces.
- Any API or transport failure surfaces as SourceUnavailable. The reader never
  retries; callers decide.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import kubernetes
from kubernetes import watch
from kubernetes.client import AppsV1Api, CoreV1Api, V1Deployment, V1Pod
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from pod_visualizer.errors import SourceUnavailable, WatchStreamClosed
from pod_visualizer.models import DeploymentRecord, PodRecord, symbol_for_status

logger = logging.getLogger(__name__)

KIND_PODS = "pods"
KIND_DEPLOYMENTS = "deployments"
WATCHED_KINDS = (KIND_PODS, KIND_DEPLOYMENTS)
CHANGE_EVENTS = frozenset({"ADDED", "MODIFIED", "DELETED"})

SOURCE_ERRORS = (ApiException, HTTPError, OSError)

_STREAM_END = object()


# =========================
# Record conversion
# =========================

def pod_record(pod: V1Pod) -> PodRecord:
    """Count ready container statuses against the declared containers."""
    statuses: List[Any] = (pod.status.container_statuses if pod.status else None) or []
    containers: List[Any] = (pod.spec.containers if pod.spec else None) or []
    phase = (pod.status.phase if pod.status else None) or "Unknown"
    return PodRecord(
        name=pod.metadata.name if pod.metadata else "",
        namespace=pod.metadata.namespace if pod.metadata else "",
        status=phase,
        container_count=len(containers),
        ready_containers=sum(1 for s in statuses if s.ready),
        status_symbol=symbol_for_status(phase),
    )


def deployment_record(deployment: V1Deployment) -> DeploymentRecord:
    status = deployment.status
    return DeploymentRecord(
        name=deployment.metadata.name if deployment.metadata else "",
        namespace=deployment.metadata.namespace if deployment.metadata else "",
        replicas=(deployment.spec.replicas if deployment.spec else None) or 0,
        ready_replicas=(status.ready_replicas if status else None) or 0,
        available_replicas=(status.available_replicas if status else None) or 0,
    )


# =========================
# Watch sessions
# =========================

class WatchSession:
    """
    One open watch stream, consumed with `async for event_type, obj in session`.

    The kubernetes client's stream blocks on socket reads, so a daemon thread
    pulls events off it and hands them to the event loop. A stream that ends
    normally stops the iteration; one that fails raises WatchStreamClosed.

    At most one event waits for the consumer. A change event arriving while
    one is pending replaces it (`coalesced` counts these); any other event
    arriving then is discarded. Consumers learn that something changed since
    their last read, which is all a full rebuild needs.
    """

    def __init__(self, kind: str, watcher: watch.Watch, stream):
        self.kind = kind
        self._watch = watcher
        self._stream = stream
        self._lock = threading.Lock()
        self._pending: Optional[Tuple[str, Any]] = None
        self._final: Any = None
        self._ready: Optional[asyncio.Event] = None
        self._thread: Optional[threading.Thread] = None
        self.coalesced = 0

    def __aiter__(self):
        if self._thread is None:
            loop = asyncio.get_running_loop()
            self._ready = asyncio.Event()
            self._thread = threading.Thread(
                target=self._pump,
                args=(loop,),
                name=f"watch-{self.kind}",
                daemon=True,
            )
            self._thread.start()
        return self

    async def __anext__(self) -> Tuple[str, Any]:
        while True:
            with self._lock:
                item, self._pending = self._pending, None
                if item is None:
                    item = self._final
                if item is None:
                    self._ready.clear()
            if item is not None:
                break
            await self._ready.wait()
        if item is _STREAM_END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise WatchStreamClosed(f"{self.kind} watch failed: {item}") from item
        return item

    def _pump(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            for event in self._stream:
                self._hand_over(loop, (event.get("type", ""), event.get("object")))
        except Exception as exc:
            self._hand_over(loop, exc)
        else:
            self._hand_over(loop, _STREAM_END)

    def _hand_over(self, loop: asyncio.AbstractEventLoop, item) -> None:
        with self._lock:
            if not isinstance(item, tuple):
                self._final = item
            elif self._pending is None:
                self._pending = item
            elif item[0] in CHANGE_EVENTS:
                self._pending = item
                self.coalesced += 1
                return
            else:
                return
        # Only an empty-to-filled transition needs a wakeup.
        if not loop.is_closed():
            loop.call_soon_threadsafe(self._ready.set)

    def close(self) -> None:
        self._watch.stop()


# =========================
# Reader
# =========================

class ResourceReader:
    def __init__(self, core: CoreV1Api, apps: AppsV1Api, request_timeout: Optional[float] = None):
        self._core = core
        self._apps = apps
        self._request_timeout = request_timeout

    @classmethod
    def connect(cls, kubeconfig: Optional[str] = None, request_timeout: Optional[float] = None) -> "ResourceReader":
        """Load in-cluster config when running in a pod, else the kubeconfig file."""
        try:
            kubernetes.config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        except kubernetes.config.ConfigException:
            try:
                kubernetes.config.load_kube_config(config_file=kubeconfig)
                logger.info(f"Loaded kubeconfig {kubeconfig or '(default)'}")
            except (kubernetes.config.ConfigException, OSError) as exc:
                raise SourceUnavailable(
                    f"Not running in cluster and no usable kubeconfig: {exc}"
                ) from exc
        return cls(CoreV1Api(), AppsV1Api(), request_timeout=request_timeout)

    def _lister(self, kind: str, namespace: str) -> Tuple[Callable, Dict[str, Any]]:
        if kind == KIND_PODS:
            if namespace:
                return self._core.list_namespaced_pod, {"namespace": namespace}
            return self._core.list_pod_for_all_namespaces, {}
        if kind == KIND_DEPLOYMENTS:
            if namespace:
                return self._apps.list_namespaced_deployment, {"namespace": namespace}
            return self._apps.list_deployment_for_all_namespaces, {}
        raise ValueError(f"unsupported resource kind {kind!r}")

    def _list_raw(self, kind: str, namespace: str, timeout: Optional[float] = None, **params):
        func, kwargs = self._lister(kind, namespace)
        try:
            return func(_request_timeout=timeout or self._request_timeout, **kwargs, **params)
        except SOURCE_ERRORS as exc:
            raise SourceUnavailable(f"Failed to list {kind}: {exc}") from exc

    def list_pods(self, namespace: str = "") -> List[PodRecord]:
        return [pod_record(p) for p in self._list_raw(KIND_PODS, namespace).items]

    def list_deployments(self, namespace: str = "") -> List[DeploymentRecord]:
        return [deployment_record(d) for d in self._list_raw(KIND_DEPLOYMENTS, namespace).items]

    def probe(self, timeout: float) -> None:
        """Cheapest possible round trip; raises SourceUnavailable on failure."""
        self._list_raw(KIND_PODS, "", timeout=timeout, limit=1)

    def open_watch(self, kind: str, timeout_seconds: int = 300) -> WatchSession:
        """
        Open a cluster-wide watch for `kind`.

        A one-item list first checks connectivity and yields the resource
        version the stream starts from, so reconnecting does not replay an
        ADDED event for every existing object.
        """
        initial = self._list_raw(kind, "", limit=1)
        resource_version = initial.metadata.resource_version if initial.metadata else None

        func, _ = self._lister(kind, "")
        watcher = watch.Watch()
        params: Dict[str, Any] = {"timeout_seconds": timeout_seconds}
        if resource_version:
            params["resource_version"] = resource_version
        stream = watcher.stream(func, **params)
        return WatchSession(kind, watcher, stream)

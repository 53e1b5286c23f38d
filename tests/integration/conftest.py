"""Integration test fixtures using pytest-kubernetes for cluster management."""
import os
import time

import pytest
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from pytest_kubernetes.providers import AClusterManager

DEMO_NAMESPACE = "pv-demo"
DEMO_DEPLOYMENT = "pv-demo"
DEMO_IMAGE = "registry.k8s.io/pause:3.9"


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Expose test outcome on the test item so fixtures can react in teardown.

    Pattern:
      if request.node.rep_call.failed: ...
    """
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)


def _debug_dump(k8s: AClusterManager, namespace: str = DEMO_NAMESPACE) -> None:
    """Best-effort dump of the demo namespace (workloads + events). Never raises."""

    def safe_kubectl(args: list[str]) -> str:
        try:
            return k8s.kubectl(args, as_dict=False)
        except Exception as e:  # noqa: BLE001 - best-effort debug helper
            return f"[debug-dump] failed: kubectl {' '.join(args)}: {e}"

    print("\n==================== DEBUG DUMP (pod-visualizer) ====================")
    print(safe_kubectl(["get", "deploy,pods", "-n", namespace, "-o", "wide"]))
    print("\n--- events (newest last) ---")
    print(safe_kubectl(["get", "events", "-n", namespace, "--sort-by=.lastTimestamp"]))


def wait_for_ready_replicas(apps_v1, name: str, namespace: str, expected: int, timeout: float = 180) -> None:
    deadline = time.time() + timeout
    ready = 0
    while time.time() < deadline:
        try:
            deployment = apps_v1.read_namespaced_deployment(name, namespace)
            ready = (deployment.status.ready_replicas if deployment.status else None) or 0
            if ready == expected:
                return
        except ApiException as e:
            print(f"Error checking Deployment: {e}")
        time.sleep(2)
    raise RuntimeError(f"Deployment {namespace}/{name} has {ready}/{expected} ready replicas after {timeout}s")


@pytest.fixture
def cluster(k8s: AClusterManager, request):
    """
    Kubernetes cluster managed by pytest-kubernetes, with the demo namespace.

    pytest-kubernetes picks the first available provider (k3d, kind, minikube).
    Override with e.g. `pytest --k8s-provider=kind`.
    """
    always = os.environ.get("PV_TEST_DEBUG") == "1"

    try:
        if not k8s.ready(timeout=5):
            print(f"[cluster] Creating cluster '{k8s.cluster_name}'...")
            k8s.create()
            print(f"[cluster] Cluster '{k8s.cluster_name}' is ready")
        else:
            print(f"[cluster] Cluster '{k8s.cluster_name}' already exists and is ready")

        os.environ["KUBECONFIG"] = str(k8s.kubeconfig)
        config.load_kube_config(config_file=str(k8s.kubeconfig))
        core_v1 = client.CoreV1Api()
        apps_v1 = client.AppsV1Api()

        try:
            core_v1.create_namespace(client.V1Namespace(metadata=client.V1ObjectMeta(name=DEMO_NAMESPACE)))
        except ApiException as e:
            if e.status != 409:  # Already exists
                raise

        k8s.core_v1 = core_v1
        k8s.apps_v1 = apps_v1

        yield k8s

    except Exception:
        if always:
            _debug_dump(k8s)
        raise

    finally:
        rep_call = getattr(request.node, "rep_call", None)
        failed = bool(rep_call and rep_call.failed)
        if always or failed:
            _debug_dump(k8s)


@pytest.fixture
def demo_deployment(cluster: AClusterManager):
    """Deploy a two-replica pause Deployment, cleanup after test."""
    apps_v1 = cluster.apps_v1
    labels = {"app": DEMO_DEPLOYMENT}

    try:
        apps_v1.create_namespaced_deployment(
            namespace=DEMO_NAMESPACE,
            body=client.V1Deployment(
                metadata=client.V1ObjectMeta(name=DEMO_DEPLOYMENT),
                spec=client.V1DeploymentSpec(
                    replicas=2,
                    selector=client.V1LabelSelector(match_labels=labels),
                    template=client.V1PodTemplateSpec(
                        metadata=client.V1ObjectMeta(labels=labels),
                        spec=client.V1PodSpec(
                            termination_grace_period_seconds=1,
                            containers=[client.V1Container(name="pause", image=DEMO_IMAGE)],
                        ),
                    ),
                ),
            ),
        )
    except ApiException as e:
        if e.status != 409:
            raise

    wait_for_ready_replicas(apps_v1, DEMO_DEPLOYMENT, DEMO_NAMESPACE, 2)

    yield DEMO_DEPLOYMENT

    try:
        apps_v1.delete_namespaced_deployment(DEMO_DEPLOYMENT, DEMO_NAMESPACE, propagation_policy="Background")
    except ApiException:
        pass

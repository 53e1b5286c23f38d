"""Shared pytest fixtures and configuration."""
import os

import pytest

from pod_visualizer.settings import VisualizerSettings
from tests.factories import FakeReader, make_deployment_record, make_pod_record

# Keep the developer's PV_* environment out of the tests
for _key in [k for k in os.environ if k.startswith("PV_")]:
    del os.environ[_key]

# Pytest markers are defined in pytest.ini


@pytest.fixture
def settings():
    return VisualizerSettings(
        fallback_interval=0.05,
        watch_retry_delay=0.01,
        watch_restart_delay=0.01,
        readiness_timeout=0.2,
        subscriber_buffer=4,
        queue_size=8,
    )


@pytest.fixture
def sample_pods():
    return [
        make_pod_record("pod-a", 2, 2, "Running"),
        make_pod_record("pod-b", 1, 2, "Pending", namespace="payments"),
    ]


@pytest.fixture
def sample_deployments():
    return [make_deployment_record("web", 1, 3)]


@pytest.fixture
def fake_reader(sample_pods, sample_deployments):
    return FakeReader(sample_pods, sample_deployments)

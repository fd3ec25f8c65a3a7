"""
Pytest configuration and fixtures for rollout-pilot tests.
"""

from typing import Dict, List, Optional

import pytest

from rollout_pilot.deployment.models import (
    DeploymentRecord,
    DeploymentStatus,
    InstanceHealth,
    LifecycleEvent,
    RevisionEntry,
)
from rollout_pilot.platforms.base import ClusterPlatform, DeploymentService, ObjectStore, WorkloadRuntime
from rollout_pilot.utils.errors import ExternalCommandError


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeDeploymentService(DeploymentService):
    """Deployment service replaying a scripted sequence of statuses."""

    def __init__(self, statuses: Optional[List[str]] = None, error_message: Optional[str] = None):
        self.statuses = list(statuses or ['Succeeded'])
        self.error_message = error_message
        self.calls: List[tuple] = []
        self.created: List[tuple] = []
        self.stop_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.targets: List[str] = []
        self.events: Dict[str, List[LifecycleEvent]] = {}
        self.creator = 'user'

    def create_deployment(self, application, group, revision):
        self.calls.append(('create_deployment', application, group))
        self.created.append((application, group, revision))
        return 'd-TEST123'

    def get_deployment(self, deployment_id):
        self.calls.append(('get_deployment', deployment_id))
        if self.status_error is not None:
            raise self.status_error
        raw = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        status = DeploymentStatus.parse(raw)
        return DeploymentRecord(
            id=deployment_id,
            status=status,
            error_message=self.error_message if status == DeploymentStatus.FAILED else None,
            creator=self.creator,
            raw_status=raw
        )

    def stop_deployment(self, deployment_id, auto_rollback):
        self.calls.append(('stop_deployment', deployment_id, auto_rollback))
        if self.stop_error is not None:
            raise self.stop_error

    def list_instances(self, deployment_id):
        self.calls.append(('list_instances', deployment_id))
        return list(self.targets)

    def get_lifecycle_events(self, deployment_id, instance_id):
        self.calls.append(('get_lifecycle_events', deployment_id, instance_id))
        return list(self.events.get(instance_id, []))

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakeWorkloadRuntime(WorkloadRuntime):
    """Workload runtime recording redeploys."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.update_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None

    def update_workload(self, cluster, service, task_definition):
        self.calls.append(('update_workload', cluster, service, task_definition))
        if self.update_error is not None:
            raise self.update_error

    def wait_stable(self, cluster, service):
        self.calls.append(('wait_stable', cluster, service))
        if self.wait_error is not None:
            raise self.wait_error


class FakeObjectStore(ObjectStore):
    """Object store recording uploads; can fail a number of times first."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.uploads: List[tuple] = []

    def put(self, local_path, bucket, key):
        if self.failures > 0:
            self.failures -= 1
            raise ExternalCommandError("upload failed", command='s3:upload_file')
        self.uploads.append((local_path, bucket, key))


class FakeClusterPlatform(ClusterPlatform):
    """Cluster platform with in-memory history and pods."""

    def __init__(self, history: Optional[List[RevisionEntry]] = None,
                 pods: Optional[List[InstanceHealth]] = None):
        self.history = list(history or [])
        self.pods = list(pods or [])
        self.calls: List[tuple] = []
        self.rollback_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None

    def get_release_history(self, release, namespace, max_entries=20):
        self.calls.append(('get_release_history', release, namespace, max_entries))
        return list(self.history)

    def rollback_release(self, release, revision, namespace, timeout_minutes):
        self.calls.append(('rollback_release', release, revision, namespace, timeout_minutes))
        if self.rollback_error is not None:
            raise self.rollback_error

    def undo_rollout(self, kind, name, namespace, to_revision=None):
        self.calls.append(('undo_rollout', kind, name, namespace, to_revision))

    def wait_rollout(self, kind, name, namespace, timeout_minutes):
        self.calls.append(('wait_rollout', kind, name, namespace, timeout_minutes))
        if self.wait_error is not None:
            raise self.wait_error

    def list_instances(self, namespace, selector=None):
        self.calls.append(('list_instances', namespace, selector))
        if self.list_error is not None:
            raise self.list_error
        return list(self.pods)

    def describe_instance(self, name, namespace):
        self.calls.append(('describe_instance', name, namespace))
        return f"Name: {name}"

    def get_logs(self, name, namespace, container=None, tail=200, previous=False):
        self.calls.append(('get_logs', name, namespace, container, tail, previous))
        return f"logs of {name}{' (previous)' if previous else ''}"

    def get_overview(self, namespace, selector=None):
        self.calls.append(('get_overview', namespace, selector))
        return "---- pods ----"

    def get_events(self, namespace, limit):
        self.calls.append(('get_events', namespace, limit))
        return "Warning BackOff pod/api-1"

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def clock():
    """Fake monotonic clock driven by its own sleep."""
    return FakeClock()


@pytest.fixture
def deployment_service():
    return FakeDeploymentService()


@pytest.fixture
def workload_runtime():
    return FakeWorkloadRuntime()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def cluster_platform():
    return FakeClusterPlatform()


@pytest.fixture
def workspace_dir(tmp_path):
    """Workspace directory with a minimal appspec/taskdef pair."""
    (tmp_path / 'appspec.yaml').write_text(
        "version: 0.0\nResources:\n  - TargetService:\n      Type: AWS::ECS::Service\n",
        encoding='utf-8'
    )
    (tmp_path / 'taskdef.json').write_text(
        '{"family": "web", "containerDefinitions": ['
        '{"name": "sidecar", "image": "envoy:1"}, {"name": "app", "image": "web:1"}]}',
        encoding='utf-8'
    )
    return tmp_path

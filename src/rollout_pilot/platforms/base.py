"""Interfaces to the external platforms the engine observes and instructs."""

from abc import ABC, abstractmethod
from typing import List, Optional

from rollout_pilot.deployment.models import (
    DeploymentRecord,
    InstanceHealth,
    LifecycleEvent,
    RevisionEntry,
    RevisionLocation,
)


class DeploymentService(ABC):
    """Blue/green deployment service: submit a revision, poll, stop."""

    @abstractmethod
    def create_deployment(self, application: str, group: str, revision: RevisionLocation) -> str:
        """Submit a revision.

        Args:
            application: Application name
            group: Deployment group name
            revision: Where the revision lives (object store or inline)

        Returns:
            Platform-assigned deployment id
        """
        pass

    @abstractmethod
    def get_deployment(self, deployment_id: str) -> DeploymentRecord:
        """Fetch the current status, creator and error message."""
        pass

    @abstractmethod
    def stop_deployment(self, deployment_id: str, auto_rollback: bool) -> None:
        """Request a stop, optionally asking the platform to roll back."""
        pass

    @abstractmethod
    def list_instances(self, deployment_id: str) -> List[str]:
        """Ids of the targets/instances the deployment touched."""
        pass

    @abstractmethod
    def get_lifecycle_events(self, deployment_id: str, instance_id: str) -> List[LifecycleEvent]:
        """Lifecycle hook executions for one target."""
        pass


class WorkloadRuntime(ABC):
    """Container runtime that can redeploy a service to a given task definition."""

    @abstractmethod
    def update_workload(self, cluster: str, service: str, task_definition: str) -> None:
        """Point the service at ``task_definition`` and force a new deployment."""
        pass

    @abstractmethod
    def wait_stable(self, cluster: str, service: str) -> None:
        """Block until the service reports steady state; raise if it never does."""
        pass


class ObjectStore(ABC):
    """Upload target for reference-based revisions."""

    @abstractmethod
    def put(self, local_path: str, bucket: str, key: str) -> None:
        pass


class ClusterPlatform(ABC):
    """Rolling-deployment platform with revision-history rollback."""

    @abstractmethod
    def get_release_history(self, release: str, namespace: str, max_entries: int = 20) -> List[RevisionEntry]:
        pass

    @abstractmethod
    def rollback_release(self, release: str, revision: int, namespace: str, timeout_minutes: int) -> None:
        """Roll the release back and wait until its workloads are ready."""
        pass

    @abstractmethod
    def undo_rollout(self, kind: str, name: str, namespace: str, to_revision: Optional[str] = None) -> None:
        pass

    @abstractmethod
    def wait_rollout(self, kind: str, name: str, namespace: str, timeout_minutes: int) -> None:
        pass

    @abstractmethod
    def list_instances(self, namespace: str, selector: Optional[str] = None) -> List[InstanceHealth]:
        pass

    @abstractmethod
    def describe_instance(self, name: str, namespace: str) -> str:
        pass

    @abstractmethod
    def get_logs(
        self,
        name: str,
        namespace: str,
        container: Optional[str] = None,
        tail: int = 200,
        previous: bool = False
    ) -> str:
        pass

    @abstractmethod
    def get_overview(self, namespace: str, selector: Optional[str] = None) -> str:
        """Nodes, pods and workload objects as human-readable text."""
        pass

    @abstractmethod
    def get_events(self, namespace: str, limit: int) -> str:
        """Most recent ``limit`` events as human-readable text."""
        pass

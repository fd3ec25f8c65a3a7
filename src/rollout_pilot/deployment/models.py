"""Domain types shared by the deployment driver and the rollback coordinators."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from rollout_pilot.utils.errors import UnsupportedModeError


class DeploymentStatus(Enum):
    """Status reported by the blue/green deployment service."""
    CREATED = "Created"
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    BAKING = "Baking"
    READY = "Ready"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    STOPPED = "Stopped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['DeploymentStatus']:
        """Map a platform status string to a member, or None if unrecognised."""
        for member in cls:
            if member.value == value:
                return member
        return None


TERMINAL_STATUSES = frozenset({
    DeploymentStatus.SUCCEEDED,
    DeploymentStatus.FAILED,
    DeploymentStatus.STOPPED,
})


@dataclass(frozen=True)
class DeploymentRecord:
    """Read-only snapshot of a deployment as the platform reports it."""
    id: str
    status: Optional[DeploymentStatus]
    error_message: Optional[str] = None
    creator: Optional[str] = None
    raw_status: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not None and self.status.is_terminal

    @property
    def status_name(self) -> str:
        if self.status is not None:
            return self.status.value
        return self.raw_status or 'Unknown'

    def summary(self) -> str:
        text = f"status={self.status_name} creator={self.creator or 'unknown'}"
        if self.error_message:
            text += f" error={self.error_message}"
        return text


@dataclass(frozen=True)
class LifecycleEvent:
    """One lifecycle hook execution on a deployment target."""
    name: str
    status: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_code: Optional[str] = None
    diagnostic_message: Optional[str] = None


@dataclass(frozen=True)
class DeploymentRequest:
    """Everything submitted for one blue/green deployment; built once per invocation."""
    platform: str
    appspec: str
    task_definition: Dict[str, Any]
    image: Optional[str] = None
    container_name: Optional[str] = None


class RevisionType(Enum):
    """How a revision reaches the deployment service."""
    S3 = "s3"
    INLINE = "inline"

    @classmethod
    def parse(cls, value: str) -> 'RevisionType':
        for member in cls:
            if member.value == value:
                return member
        raise UnsupportedModeError(value, [m.value for m in cls], field='revision.type')


@dataclass(frozen=True)
class RevisionBundle:
    """Packaged manifest pair ready for upload."""
    path: str
    name: str
    sha256: str


@dataclass(frozen=True)
class RevisionLocation:
    """Revision reference handed to ``DeploymentService.create_deployment``."""
    revision_type: RevisionType
    bucket: Optional[str] = None
    key: Optional[str] = None
    content: Optional[str] = None
    sha256: Optional[str] = None

    @classmethod
    def s3(cls, bucket: str, key: str) -> 'RevisionLocation':
        return cls(revision_type=RevisionType.S3, bucket=bucket, key=key)

    @classmethod
    def inline(cls, content: str, sha256: str) -> 'RevisionLocation':
        return cls(revision_type=RevisionType.INLINE, content=content, sha256=sha256)

    def describe(self) -> str:
        if self.revision_type == RevisionType.S3:
            return f"s3://{self.bucket}/{self.key}"
        return f"inline appspec sha256={self.sha256}"


class RevisionStatus(Enum):
    """Status of one entry in a release's revision history."""
    DEPLOYED = "deployed"
    SUPERSEDED = "superseded"
    FAILED = "failed"
    PENDING = "pending"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'RevisionStatus':
        normalized = (value or '').strip().lower()
        if normalized.startswith('pending'):
            return cls.PENDING
        for member in cls:
            if member.value == normalized:
                return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class RevisionEntry:
    """One row of a release's revision history."""
    sequence_number: int
    status: RevisionStatus
    timestamp: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class InstanceHealth:
    """Observed state of one workload instance (pod)."""
    name: str
    phase: str
    ready: bool = False


class RollbackMode(Enum):
    """Rollback actions available on the blue/green platform."""
    STOP_ONLY = "stopOnly"
    STOP_AND_AUTO_ROLLBACK = "stopAndAutoRollback"
    AUTO_ROLLBACK_ONLY = "autoRollbackOnly"
    MANUAL_REDEPLOY = "manualRedeploy"

    @property
    def is_best_effort(self) -> bool:
        return self is not RollbackMode.MANUAL_REDEPLOY

    @property
    def requests_auto_rollback(self) -> bool:
        return self is not RollbackMode.STOP_ONLY

    @classmethod
    def parse(cls, value: str) -> 'RollbackMode':
        if value == 'manualEcsRollback':
            return cls.MANUAL_REDEPLOY
        for member in cls:
            if member.value == value:
                return member
        raise UnsupportedModeError(value, [m.value for m in cls])


class K8sRollbackMode(Enum):
    """Rollback actions available on the rolling-deployment platform."""
    HELM_ROLLBACK = "helmRollback"
    KUBECTL_UNDO = "kubectlUndo"

    @classmethod
    def parse(cls, value: str) -> 'K8sRollbackMode':
        for member in cls:
            if member.value == value:
                return member
        raise UnsupportedModeError(value, [m.value for m in cls])


@dataclass
class ActionResult:
    """Outcome of a rollback action; best-effort callers inspect ``ok``."""
    action: str
    ok: bool
    error: Optional[Exception] = None

    @property
    def error_text(self) -> str:
        return str(self.error) if self.error else ''


@dataclass
class DeploymentOutcome:
    """Successful result of a blue/green deployment."""
    deployment_id: str
    status: DeploymentStatus
    revision_type: RevisionType
    revision: RevisionLocation
    bundle: Optional[RevisionBundle] = None
    elapsed: float = 0.0

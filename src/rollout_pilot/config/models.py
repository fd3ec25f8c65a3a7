"""Pydantic models for per-component configuration."""

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..deployment.models import K8sRollbackMode, RevisionType, RollbackMode
from ..utils.errors import ValidationError
from ..utils.waiter import WaitPolicy


def require_keys(section: str, values: Dict[str, object], required: List[str]) -> List[str]:
    """Return ``section.key`` for every required key that is missing or blank."""
    missing = []
    for key in required:
        value = values.get(key)
        if value is None or str(value).strip() == "":
            missing.append(f"{section}.{key}" if section else key)
    return missing


def raise_if_missing(missing: List[str], provided: List[str]) -> None:
    if missing:
        raise ValidationError(
            f"Missing required config key(s): {missing}. Provided keys: {sorted(provided)}"
        )


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def provided(self, prefix: str = "") -> List[str]:
        keys = []
        for name, value in self.model_dump().items():
            if value not in (None, "", {}, []):
                keys.append(f"{prefix}{name}")
        return keys


class AwsConfig(_Section):
    """AWS region and optional cross-account role."""

    region: str = ""
    role_arn: str = ""

    @field_validator("role_arn")
    @classmethod
    def validate_role_arn(cls, v: str) -> str:
        if v and not v.startswith("arn:"):
            raise ValueError(f"role_arn must be an IAM role ARN: {v}")
        return v


class CodeDeployConfig(_Section):
    """CodeDeploy application and deployment group."""

    application_name: str = ""
    deployment_group: str = ""


class ArtifactPaths(_Section):
    """Workspace-relative paths of the manifest pair."""

    appspec_path: str = "appspec.yaml"
    taskdef_path: str = "taskdef.json"


class SampleResources(_Section):
    """Bundled template paths, relative to the package resources directory."""

    appspec: str = "sample/appspec.yaml"
    taskdef: str = "sample/taskdef.json"


class RevisionConfig(_Section):
    """Revision transport; type is inferred from ``bucket`` when empty."""

    type: str = ""
    bucket: str = ""
    key_prefix: str = ""

    def resolve_type(self) -> RevisionType:
        if self.type:
            return RevisionType.parse(self.type)
        return RevisionType.S3 if self.bucket.strip() else RevisionType.INLINE

    @property
    def normalized_prefix(self) -> str:
        return self.key_prefix.strip().strip("/")


class WaitConfig(_Section):
    """Overall wait and poll spacing."""

    timeout_minutes: float = Field(30, gt=0)
    poll_seconds: float = Field(20, gt=0)

    @model_validator(mode="after")
    def check_poll_within_timeout(self) -> "WaitConfig":
        if self.poll_seconds > self.timeout_minutes * 60:
            raise ValueError(
                f"poll_seconds ({self.poll_seconds}) must not exceed the timeout "
                f"({self.timeout_minutes} min = {self.timeout_minutes * 60:g}s)"
            )
        return self

    def policy(self, label: str) -> WaitPolicy:
        """Build the waiter policy; raises ValidationError for an unusable pair."""
        return WaitPolicy.minutes(self.timeout_minutes, self.poll_seconds, label)


class BuildInfo(_Section):
    """Identifies the pipeline run; used to name revision bundles."""

    job_name: str = "local"
    build_number: str = "0"

    def bundle_name(self) -> str:
        name = f"codedeploy-revision-{self.job_name}-{self.build_number}.zip"
        return re.sub(r"[^A-Za-z0-9_.-]", "-", name)

    def session_name(self) -> str:
        return f"rollout-{self.job_name}-{self.build_number}"


class BlueGreenDeployConfig(_Section):
    """Configuration for one blue/green deployment."""

    use_sample_resources: bool = False
    sample_resources: SampleResources = Field(default_factory=SampleResources)
    artifacts: ArtifactPaths = Field(default_factory=ArtifactPaths)
    template_replacements: Dict[str, str] = Field(default_factory=dict)
    container_name: str = "app"
    image: str = ""
    aws: AwsConfig = Field(default_factory=AwsConfig)
    codedeploy: CodeDeployConfig = Field(default_factory=CodeDeployConfig)
    revision: RevisionConfig = Field(default_factory=RevisionConfig)
    wait: WaitConfig = Field(default_factory=WaitConfig)
    build: BuildInfo = Field(default_factory=BuildInfo)

    @field_validator("template_replacements", mode="before")
    @classmethod
    def stringify_replacements(cls, v):
        if v is None:
            return {}
        return {str(key): str(value) for key, value in dict(v).items()}

    def validate_for_run(self) -> RevisionType:
        """Check every required key in one pass; nothing external is touched.

        Returns:
            The resolved revision transport

        Raises:
            ValidationError: Listing all missing keys, or a poll interval longer
                than the wait timeout
            UnsupportedModeError: If ``revision.type`` is not s3/inline
        """
        missing = require_keys("aws", self.aws.model_dump(), ["region"])
        missing += require_keys(
            "codedeploy", self.codedeploy.model_dump(), ["application_name", "deployment_group"]
        )
        missing += require_keys("artifacts", self.artifacts.model_dump(), ["appspec_path", "taskdef_path"])

        revision_type = self.revision.resolve_type()
        if revision_type == RevisionType.S3:
            missing += require_keys("revision", self.revision.model_dump(), ["bucket", "key_prefix"])

        raise_if_missing(missing, self.provided())
        self.wait.policy("deploy.wait")
        return revision_type


class EventsConfig(_Section):
    """Lifecycle-event dump settings."""

    print_events: bool = True
    max: int = Field(20, ge=1)


class ManualRedeployConfig(_Section):
    """Previous known-good task definition for a manual redeploy."""

    cluster: str = ""
    service: str = ""
    task_definition: str = ""


class RollbackConfig(_Section):
    """Configuration for the blue/green rollback coordinator."""

    aws: AwsConfig = Field(default_factory=AwsConfig)
    deployment_id: str = ""
    mode: str = "stopOnly"
    events: EventsConfig = Field(default_factory=EventsConfig)
    manual_redeploy: ManualRedeployConfig = Field(default_factory=ManualRedeployConfig)
    settle: WaitConfig = Field(default_factory=lambda: WaitConfig(timeout_minutes=5, poll_seconds=10))
    build: BuildInfo = Field(default_factory=BuildInfo)

    def validate_for_run(self) -> RollbackMode:
        """Check required keys, including the manual-redeploy target, before any action.

        Returns:
            The parsed rollback mode
        """
        missing = require_keys("aws", self.aws.model_dump(), ["region"])
        missing += require_keys("", self.model_dump(), ["deployment_id", "mode"])
        raise_if_missing(missing, self.provided())
        self.settle.policy("rollback.settle")

        mode = RollbackMode.parse(self.mode)
        if mode == RollbackMode.MANUAL_REDEPLOY:
            raise_if_missing(
                require_keys(
                    "manual_redeploy",
                    self.manual_redeploy.model_dump(),
                    ["cluster", "service", "task_definition"]
                ),
                self.provided()
            )
        return mode


class EksConfig(_Section):
    """Optional kubeconfig bootstrap for an EKS cluster."""

    enabled: bool = False
    region: str = ""
    cluster_name: str = ""
    role_arn: str = ""
    kubeconfig_path: str = ".kubeconfig"


class HelmConfig(_Section):
    """helm rollback settings; an empty revision means auto-detect."""

    release: str = ""
    revision: str = ""
    timeout_minutes: int = Field(10, ge=1)
    history_max: int = Field(20, ge=1)

    @field_validator("revision", mode="before")
    @classmethod
    def stringify_revision(cls, v):
        text = "" if v is None else str(v).strip()
        if text and (not text.isdigit() or int(text) == 0):
            raise ValueError(f"helm revision must be a positive integer: {text}")
        return text


class KubectlConfig(_Section):
    """kubectl rollout undo settings; an empty to_revision means one step back."""

    kind: str = "deployment"
    name: str = ""
    to_revision: str = ""
    timeout_minutes: int = Field(10, ge=1)

    @field_validator("to_revision", mode="before")
    @classmethod
    def stringify_to_revision(cls, v):
        text = "" if v is None else str(v).strip()
        if text and (not text.isdigit() or int(text) == 0):
            raise ValueError(f"kubectl to_revision must be a positive integer: {text}")
        return text


class DiagnosticsConfig(_Section):
    """What to capture around a Kubernetes rollback."""

    enabled: bool = True
    label_selector: str = ""
    container: str = ""
    max_pods: int = Field(5, ge=0)
    max_events: int = Field(30, ge=1)
    log_lines: int = Field(200, ge=1)
    include_previous_logs: bool = True


class K8sRollbackConfig(_Section):
    """Configuration for the Kubernetes rollback coordinator."""

    mode: str = ""
    namespace: str = "default"
    eks: EksConfig = Field(default_factory=EksConfig)
    helm: HelmConfig = Field(default_factory=HelmConfig)
    kubectl: KubectlConfig = Field(default_factory=KubectlConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)

    def validate_for_run(self) -> K8sRollbackMode:
        """Check required keys for the selected mode before any command runs.

        Returns:
            The parsed rollback mode
        """
        raise_if_missing(require_keys("", self.model_dump(), ["mode", "namespace"]), self.provided())
        mode = K8sRollbackMode.parse(self.mode)

        missing = []
        if self.eks.enabled:
            missing += require_keys("eks", self.eks.model_dump(), ["region", "cluster_name", "kubeconfig_path"])
        if mode == K8sRollbackMode.HELM_ROLLBACK:
            missing += require_keys("helm", self.helm.model_dump(), ["release"])
        else:
            missing += require_keys("kubectl", self.kubectl.model_dump(), ["kind", "name"])
        raise_if_missing(missing, self.provided())
        return mode

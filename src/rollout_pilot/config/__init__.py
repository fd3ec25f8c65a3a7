"""Configuration management for rollout-pilot."""

from .models import (
    AwsConfig,
    CodeDeployConfig,
    ArtifactPaths,
    SampleResources,
    RevisionConfig,
    WaitConfig,
    BuildInfo,
    BlueGreenDeployConfig,
    EventsConfig,
    ManualRedeployConfig,
    RollbackConfig,
    EksConfig,
    HelmConfig,
    KubectlConfig,
    DiagnosticsConfig,
    K8sRollbackConfig,
)
from .parser import Config, ConfigValidationError, merge_overrides

__all__ = [
    "AwsConfig",
    "CodeDeployConfig",
    "ArtifactPaths",
    "SampleResources",
    "RevisionConfig",
    "WaitConfig",
    "BuildInfo",
    "BlueGreenDeployConfig",
    "EventsConfig",
    "ManualRedeployConfig",
    "RollbackConfig",
    "EksConfig",
    "HelmConfig",
    "KubectlConfig",
    "DiagnosticsConfig",
    "K8sRollbackConfig",
    "Config",
    "ConfigValidationError",
    "merge_overrides",
]

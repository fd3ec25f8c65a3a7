"""Platform interfaces and their AWS / Kubernetes adapters."""

from .base import ClusterPlatform, DeploymentService, ObjectStore, WorkloadRuntime
from .codedeploy import CodeDeployService
from .ecs import EcsRuntime
from .s3 import S3ObjectStore
from .kubernetes import KubectlHelmPlatform, update_kubeconfig

__all__ = [
    'ClusterPlatform',
    'DeploymentService',
    'ObjectStore',
    'WorkloadRuntime',
    'CodeDeployService',
    'EcsRuntime',
    'S3ObjectStore',
    'KubectlHelmPlatform',
    'update_kubeconfig',
]

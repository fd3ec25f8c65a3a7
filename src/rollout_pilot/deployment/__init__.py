"""Deployment domain types and manifest handling.

The driver itself lives in ``rollout_pilot.deployment.bluegreen``; it is not
re-exported here because it depends on ``rollout_pilot.config``, which in turn
depends on these models.
"""

from rollout_pilot.deployment.models import (
    ActionResult,
    DeploymentOutcome,
    DeploymentRecord,
    DeploymentRequest,
    DeploymentStatus,
    InstanceHealth,
    K8sRollbackMode,
    LifecycleEvent,
    RevisionBundle,
    RevisionEntry,
    RevisionLocation,
    RevisionStatus,
    RevisionType,
    RollbackMode,
    TERMINAL_STATUSES,
)
from rollout_pilot.deployment.manifests import (
    TemplateLoader,
    Workspace,
    apply_replacements,
    build_bundle,
    content_sha256,
    inject_image,
    materialize_templates,
)

__all__ = [
    'ActionResult',
    'DeploymentOutcome',
    'DeploymentRecord',
    'DeploymentRequest',
    'DeploymentStatus',
    'InstanceHealth',
    'K8sRollbackMode',
    'LifecycleEvent',
    'RevisionBundle',
    'RevisionEntry',
    'RevisionLocation',
    'RevisionStatus',
    'RevisionType',
    'RollbackMode',
    'TERMINAL_STATUSES',
    'TemplateLoader',
    'Workspace',
    'apply_replacements',
    'build_bundle',
    'content_sha256',
    'inject_image',
    'materialize_templates',
]

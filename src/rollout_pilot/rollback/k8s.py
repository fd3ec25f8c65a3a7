"""Rollback coordinator for rolling deployments on Kubernetes."""

from dataclasses import dataclass
from typing import Callable, Optional

from rollout_pilot.config.models import EksConfig, K8sRollbackConfig
from rollout_pilot.deployment.models import K8sRollbackMode, RevisionEntry
from rollout_pilot.platforms.base import ClusterPlatform
from rollout_pilot.platforms.kubernetes import update_kubeconfig
from rollout_pilot.rollback.diagnostics import ClusterDiagnostics, DiagnosticsReport
from rollout_pilot.rollback.selector import current_deployed, select_rollback_target
from rollout_pilot.utils.aws_client import scoped_session
from rollout_pilot.utils.errors import DeploymentError, ValidationError
from rollout_pilot.utils.logging import LogContext, get_logger
from rollout_pilot.utils.shell import CommandRunner

logger = get_logger(__name__)

EksBootstrap = Callable[[EksConfig], None]


@dataclass
class K8sRollbackReport:
    """Outcome of a Kubernetes rollback."""
    mode: K8sRollbackMode
    namespace: str
    target_revision: Optional[str] = None
    selected: Optional[RevisionEntry] = None
    before: Optional[DiagnosticsReport] = None
    after: Optional[DiagnosticsReport] = None


class K8sRollbackCoordinator:
    """Rolls a release or workload back and captures diagnostics around it.

    Diagnostics are best-effort and bracket the rollback; the AFTER pass runs
    whether or not the rollback succeeded. Rollback and stabilization failures
    propagate with the AFTER summary attached.
    """

    def __init__(
        self,
        config: K8sRollbackConfig,
        platform: ClusterPlatform,
        diagnostics: Optional[ClusterDiagnostics] = None,
        eks_bootstrap: Optional[EksBootstrap] = None
    ):
        """Initialize coordinator.

        Args:
            config: Kubernetes rollback configuration
            platform: helm/kubectl platform
            diagnostics: Diagnostics capture; built from the config when omitted
            eks_bootstrap: Called with the EKS section before any cluster command
                when ``eks.enabled`` is set
        """
        self.config = config
        self.platform = platform
        self.diagnostics = diagnostics or ClusterDiagnostics(platform, config.diagnostics)
        self.eks_bootstrap = eks_bootstrap

    def run(self) -> K8sRollbackReport:
        """Validate, capture BEFORE, roll back, capture AFTER.

        Raises:
            ValidationError: Bad configuration, or EKS enabled without a
                bootstrap; raised before any command runs
            UnsupportedModeError: Unknown mode
            NoRollbackTargetError: helm history has no usable revision
            ExternalCommandError: Rollback or stabilization failed
        """
        mode = self.config.validate_for_run()
        if self.config.eks.enabled and self.eks_bootstrap is None:
            raise ValidationError("eks.enabled is set but no kubeconfig bootstrap was provided")
        namespace = self.config.namespace
        report = K8sRollbackReport(mode=mode, namespace=namespace)

        with LogContext(logger, mode=mode.value, phase='k8s-rollback'):
            logger.info(f"=== Kubernetes Rollback === mode={mode.value} namespace={namespace}")

            if self.config.eks.enabled:
                self.eks_bootstrap(self.config.eks)

            report.before = self._capture('BEFORE_ROLLBACK')

            failure: Optional[DeploymentError] = None
            try:
                if mode == K8sRollbackMode.HELM_ROLLBACK:
                    self.helm_rollback(report)
                else:
                    self.kubectl_undo(report)
            except DeploymentError as e:
                failure = e
                logger.error(f"Rollback failed: {e}")
                raise
            finally:
                report.after = self._capture('AFTER_ROLLBACK')
                if failure is not None and report.after is not None:
                    failure.attach_snapshot(report.after.summary())

            logger.info("✅ Kubernetes rollback completed.")
        return report

    def _capture(self, phase: str) -> Optional[DiagnosticsReport]:
        if not self.config.diagnostics.enabled:
            return None
        return self.diagnostics.capture(self.config.namespace, phase)

    def resolve_helm_revision(self, report: K8sRollbackReport) -> str:
        """Explicit revision if configured, otherwise the previous good one from history."""
        helm = self.config.helm
        if helm.revision:
            logger.info(f"Using explicit helm revision: {helm.revision}")
            return helm.revision

        logger.info(f"No helm revision specified → auto-detect previous revision from helm history (max {helm.history_max})")
        entries = self.platform.get_release_history(helm.release, self.config.namespace, helm.history_max)
        current = current_deployed(entries)
        target = select_rollback_target(entries)
        report.selected = target
        logger.info(
            f"Auto-detected rollback target: current={current.sequence_number if current else 'none'} "
            f"target={target.sequence_number} ({target.status.value})"
        )
        return str(target.sequence_number)

    def helm_rollback(self, report: K8sRollbackReport) -> None:
        helm = self.config.helm
        revision = self.resolve_helm_revision(report)
        report.target_revision = revision

        logger.info(f"Helm rollback: release={helm.release} → revision={revision}")
        self.platform.rollback_release(helm.release, int(revision), self.config.namespace, helm.timeout_minutes)
        logger.info("Helm rollback completed.")

    def kubectl_undo(self, report: K8sRollbackReport) -> None:
        kubectl = self.config.kubectl
        namespace = self.config.namespace
        report.target_revision = kubectl.to_revision or None

        logger.info(
            f"kubectl rollout undo: {kubectl.kind}/{kubectl.name} "
            f"to_revision={kubectl.to_revision or 'previous'}"
        )
        self.platform.undo_rollout(kubectl.kind, kubectl.name, namespace, kubectl.to_revision or None)

        logger.info(f"Waiting for rollout to stabilize (timeout {kubectl.timeout_minutes}m)...")
        self.platform.wait_rollout(kubectl.kind, kubectl.name, namespace, kubectl.timeout_minutes)
        logger.info("kubectl rollback completed.")


def eks_kubeconfig_bootstrap(runner: CommandRunner, session_factory=scoped_session) -> EksBootstrap:
    """Build a bootstrap that writes a kubeconfig for the configured EKS cluster.

    The aws CLI runs with the scoped (optionally assumed-role) credentials in
    its environment; the credentials are released once the kubeconfig exists.

    Args:
        runner: Command runner for the aws CLI
        session_factory: Context manager yielding an ``AWSClientManager``

    Returns:
        Callable taking the EKS configuration section
    """
    def bootstrap(eks: EksConfig) -> None:
        with session_factory(eks.region, role_arn=eks.role_arn or None, session_name='rollout-eks') as aws:
            update_kubeconfig(runner.with_env(**aws.environment()), eks.cluster_name, eks.region, eks.kubeconfig_path)

    return bootstrap

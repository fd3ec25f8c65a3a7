"""Cluster diagnostics captured around a Kubernetes rollback."""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, TypeVar

from rollout_pilot.config.models import DiagnosticsConfig
from rollout_pilot.deployment.models import InstanceHealth
from rollout_pilot.platforms.base import ClusterPlatform
from rollout_pilot.rollback.health import select_unhealthy
from rollout_pilot.utils.errors import DeploymentError
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass
class PodDiagnostics:
    """Describe output and logs of one unhealthy pod."""
    instance: InstanceHealth
    describe: str = ''
    logs: str = ''
    previous_logs: Optional[str] = None


@dataclass
class DiagnosticsReport:
    """Everything captured in one diagnostics pass.

    ``errors`` lists the reads that failed; a failed read never aborts the
    pass or the rollback around it.
    """
    phase: str
    namespace: str
    overview: str = ''
    events: str = ''
    unhealthy: List[InstanceHealth] = field(default_factory=list)
    pods: List[PodDiagnostics] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def summary(self) -> str:
        if not self.unhealthy:
            return f"{self.phase}: no unhealthy pods in namespace={self.namespace}"
        pods = ', '.join(
            f"{p.name}({p.phase}{'' if p.ready else '/not-ready'})" for p in self.unhealthy
        )
        return f"{self.phase}: unhealthy pods in namespace={self.namespace}: {pods}"


class ClusterDiagnostics:
    """Best-effort snapshot of a namespace for post-mortem analysis."""

    def __init__(self, platform: ClusterPlatform, config: DiagnosticsConfig):
        self.platform = platform
        self.config = config

    def _read(self, report: DiagnosticsReport, what: str, func: Callable[[], T], default: T) -> T:
        try:
            return func()
        except DeploymentError as e:
            logger.warning(f"[{report.phase}] Could not read {what}: {e}")
            report.errors.append(f"{what}: {e}")
            return default

    def capture(self, namespace: str, phase: str) -> DiagnosticsReport:
        """Capture overview, recent events and details of unhealthy pods.

        Args:
            namespace: Namespace to inspect
            phase: Label such as BEFORE_ROLLBACK or AFTER_ROLLBACK

        Returns:
            DiagnosticsReport for the namespace
        """
        cfg = self.config
        selector = cfg.label_selector or None
        report = DiagnosticsReport(phase=phase, namespace=namespace)

        logger.info(f"===== Kubernetes Diagnostics ({phase}) namespace={namespace} =====")

        report.overview = self._read(
            report, 'cluster overview', lambda: self.platform.get_overview(namespace, selector), ''
        )
        logger.info(report.overview)

        report.events = self._read(
            report, 'events', lambda: self.platform.get_events(namespace, cfg.max_events), ''
        )
        logger.info(f"---- events (last {cfg.max_events}) ----\n{report.events}")

        instances = self._read(
            report, 'pod list', lambda: self.platform.list_instances(namespace, selector), []
        )
        report.unhealthy = select_unhealthy(instances, cfg.max_pods)
        if not report.unhealthy:
            logger.info("No unhealthy pods detected (or selection returned none).")
            return report

        logger.info(f"Unhealthy pods (top {cfg.max_pods}): {[p.name for p in report.unhealthy]}")
        container = cfg.container or None
        for instance in report.unhealthy:
            pod = PodDiagnostics(instance=instance)
            pod.describe = self._read(
                report, f"describe {instance.name}",
                lambda: self.platform.describe_instance(instance.name, namespace), ''
            )
            pod.logs = self._read(
                report, f"logs {instance.name}",
                lambda: self.platform.get_logs(instance.name, namespace, container, cfg.log_lines), ''
            )
            if cfg.include_previous_logs:
                pod.previous_logs = self._read(
                    report, f"previous logs {instance.name}",
                    lambda: self.platform.get_logs(
                        instance.name, namespace, container, cfg.log_lines, previous=True
                    ),
                    ''
                )

            logger.info(f"---- describe pod {instance.name} ----\n{pod.describe}")
            logger.info(f"---- logs {instance.name} (tail {cfg.log_lines}) ----\n{pod.logs}")
            if pod.previous_logs is not None:
                logger.info(f"---- previous logs {instance.name} ----\n{pod.previous_logs}")
            report.pods.append(pod)

        return report

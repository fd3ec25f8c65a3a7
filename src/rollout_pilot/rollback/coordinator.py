"""Rollback coordinator for the blue/green deployment platform."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from rollout_pilot.config.models import RollbackConfig
from rollout_pilot.deployment.models import (
    ActionResult,
    DeploymentRecord,
    DeploymentStatus,
    LifecycleEvent,
    RollbackMode,
)
from rollout_pilot.platforms.base import DeploymentService, WorkloadRuntime
from rollout_pilot.utils.errors import DeploymentError, ValidationError, WaitTimeoutError
from rollout_pilot.utils.logging import LogContext, get_logger
from rollout_pilot.utils.retry import RetryPolicy, run_with_retry
from rollout_pilot.utils.waiter import wait_until

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _event_sort_key(event: LifecycleEvent) -> datetime:
    start = event.start_time
    if start is None:
        return _EPOCH
    if start.tzinfo is None:
        return start.replace(tzinfo=timezone.utc)
    return start


@dataclass
class RollbackReport:
    """What the coordinator did and what the platform reported afterwards."""
    deployment_id: str
    mode: RollbackMode
    before: DeploymentRecord
    after: DeploymentRecord
    final: DeploymentRecord
    actions: List[ActionResult] = field(default_factory=list)
    settled: bool = True
    events: List[LifecycleEvent] = field(default_factory=list)

    @property
    def final_status(self) -> str:
        return self.final.status_name

    @property
    def deployment_succeeded(self) -> bool:
        return self.final.status == DeploymentStatus.SUCCEEDED

    @property
    def swallowed_errors(self) -> List[ActionResult]:
        return [a for a in self.actions if not a.ok]


class RollbackCoordinator:
    """Stops, auto-rolls-back or manually redeploys a failed deployment.

    The stop-based modes are best-effort: their failures are recorded in the
    report and logged, never raised, so they cannot mask the original
    deployment failure. ``manualRedeploy`` has no fallback; its failures are
    raised with a final status snapshot attached.
    """

    def __init__(
        self,
        config: RollbackConfig,
        deployment_service: DeploymentService,
        workload_runtime: Optional[WorkloadRuntime] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize coordinator.

        Args:
            config: Rollback configuration
            deployment_service: Platform holding the deployment
            workload_runtime: Runtime used by manualRedeploy
            retry_policy: Retry for status reads
            clock: Monotonic clock for the settle wait
            sleep: Blocking sleep for waits and retries
        """
        self.config = config
        self.deployment_service = deployment_service
        self.workload_runtime = workload_runtime
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock
        self.sleep = sleep

    @property
    def deployment_id(self) -> str:
        return self.config.deployment_id

    def run(self) -> RollbackReport:
        """Snapshot, act according to the mode, settle, and report.

        Returns:
            RollbackReport; returned even when the final status is not Succeeded

        Raises:
            ValidationError: Bad configuration, before any platform call
            UnsupportedModeError: Unknown mode
            DeploymentError: manualRedeploy failures only
        """
        mode = self.config.validate_for_run()
        if mode == RollbackMode.MANUAL_REDEPLOY and self.workload_runtime is None:
            raise ValidationError("manualRedeploy requires a workload runtime")

        with LogContext(logger, deployment_id=self.deployment_id, mode=mode.value):
            logger.info("=== Rollback/Stop handler ===")
            logger.info(f"deploymentId={self.deployment_id} mode={mode.value} region={self.config.aws.region}")

            logger.info("=== Deployment Summary (before) ===")
            before = self.snapshot()
            self.print_events()

            actions = self.dispatch(mode)

            logger.info("=== Deployment Summary (after action) ===")
            after = self.snapshot()
            settled = after.is_terminal or self.settle()

            logger.info("=== Final Deployment Summary ===")
            final = self.snapshot()
            events = self.print_events()

            if final.status == DeploymentStatus.SUCCEEDED:
                logger.info("Deployment succeeded — no rollback required.")
            else:
                logger.info(f"Rollback/stop path executed. Final CodeDeploy status={final.status_name}")

        return RollbackReport(
            deployment_id=self.deployment_id,
            mode=mode,
            before=before,
            after=after,
            final=final,
            actions=actions,
            settled=settled,
            events=events
        )

    def dispatch(self, mode: RollbackMode) -> List[ActionResult]:
        if mode == RollbackMode.STOP_ONLY:
            logger.info("Action: stop deployment (no manual redeploy).")
            return [self.stop(auto_rollback=False)]

        if mode == RollbackMode.STOP_AND_AUTO_ROLLBACK:
            logger.info("Action: stop deployment with auto-rollback enabled (if supported).")
            return [self.stop(auto_rollback=True)]

        if mode == RollbackMode.AUTO_ROLLBACK_ONLY:
            logger.info("Action: request platform auto-rollback via stop with auto-rollback enabled.")
            return [self.stop(auto_rollback=True)]

        return self.manual_redeploy()

    def stop(self, auto_rollback: bool) -> ActionResult:
        """Request a stop; failures are returned, not raised."""
        action = 'stop+autoRollback' if auto_rollback else 'stop'
        try:
            self.deployment_service.stop_deployment(self.deployment_id, auto_rollback=auto_rollback)
        except DeploymentError as e:
            logger.warning(f"Best-effort {action} failed and was ignored: {e}")
            return ActionResult(action=action, ok=False, error=e)
        return ActionResult(action=action, ok=True)

    def manual_redeploy(self) -> List[ActionResult]:
        """Stop with auto-rollback, then redeploy the previous task definition.

        The task definition is trusted as supplied; it is not checked against
        any history.
        """
        target = self.config.manual_redeploy
        logger.info("Action: manual redeploy (and also stop CodeDeploy).")
        actions = [self.stop(auto_rollback=True)]

        try:
            logger.info(f"Updating service to previous taskDefinition={target.task_definition}")
            self.workload_runtime.update_workload(target.cluster, target.service, target.task_definition)
            actions.append(ActionResult(action='update_workload', ok=True))

            logger.info("Waiting for service to stabilize...")
            self.workload_runtime.wait_stable(target.cluster, target.service)
            actions.append(ActionResult(action='wait_stable', ok=True))
        except DeploymentError as e:
            logger.error(f"Manual redeploy failed: {e}")
            raise e.attach_snapshot(self.snapshot().summary())

        logger.info("✅ Manual redeploy completed and service stabilized.")
        return actions

    def snapshot(self) -> DeploymentRecord:
        """Read and log status, creator and error; an unreadable status is Unknown."""
        try:
            record = run_with_retry(
                self.retry_policy,
                lambda: self.deployment_service.get_deployment(self.deployment_id),
                sleep=self.sleep
            )
        except DeploymentError as e:
            logger.warning(f"Could not read deployment status: {e}")
            record = DeploymentRecord(id=self.deployment_id, status=None, raw_status='Unknown')

        logger.info(f"CodeDeploy status={record.status_name} creator={record.creator or 'unknown'}")
        if record.error_message:
            logger.info(f"CodeDeploy error={record.error_message}")
        return record

    def settle(self) -> bool:
        """Wait briefly for a terminal state; a timeout is logged, not raised."""
        logger.info("Waiting briefly for CodeDeploy status to settle...")
        policy = self.config.settle.policy('CodeDeploy to reach terminal state')
        try:
            wait_until(policy, lambda: self.snapshot().is_terminal, clock=self.clock, sleep=self.sleep)
        except WaitTimeoutError as e:
            logger.warning(f"Status did not settle: {e}")
            return False
        return True

    def print_events(self) -> List[LifecycleEvent]:
        """Log the most recent lifecycle events of the first deployment target."""
        events_cfg = self.config.events
        if not events_cfg.print_events:
            return []

        logger.info(f"=== Last {events_cfg.max} CodeDeploy lifecycle events (most recent first) ===")
        try:
            targets = self.deployment_service.list_instances(self.deployment_id)
            logger.info(f"Instances: {targets if targets else 'None'}")
            if not targets:
                logger.info("No deployment instances returned (may be expected depending on deployment type).")
                return []

            logger.info(f"Using instance id: {targets[0]}")
            events = self.deployment_service.get_lifecycle_events(self.deployment_id, targets[0])
        except DeploymentError as e:
            logger.warning(f"Could not read lifecycle events: {e}")
            return []

        recent = sorted(events, key=_event_sort_key, reverse=True)[:events_cfg.max]
        for event in recent:
            logger.info(f"- {event.name}: {event.status}  start={event.start_time or ''}  end={event.end_time or ''}")
            if event.error_code or event.diagnostic_message:
                logger.info(f"  diagnostics: errorCode={event.error_code or ''} "
                            f"message={event.diagnostic_message or ''}")
        return recent

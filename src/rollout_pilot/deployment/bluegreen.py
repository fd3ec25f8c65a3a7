"""Blue/green deployment driver: prepare, package, submit and wait."""

import time
from typing import Callable, Optional, Tuple

from rollout_pilot.config.models import BlueGreenDeployConfig
from rollout_pilot.deployment.manifests import (
    TemplateLoader,
    Workspace,
    build_bundle,
    content_sha256,
    inject_image,
    materialize_templates,
    parse_task_definition,
    render_task_definition,
)
from rollout_pilot.deployment.models import (
    DeploymentOutcome,
    DeploymentRecord,
    DeploymentRequest,
    DeploymentStatus,
    RevisionBundle,
    RevisionLocation,
    RevisionType,
)
from rollout_pilot.platforms.base import DeploymentService, ObjectStore
from rollout_pilot.utils.errors import DeploymentError, DeploymentFailedError, ValidationError, WaitTimeoutError
from rollout_pilot.utils.logging import get_logger
from rollout_pilot.utils.retry import RetryPolicy, run_with_retry
from rollout_pilot.utils.waiter import wait_until

logger = get_logger(__name__)

PLATFORM = 'ecs-bluegreen'


class BlueGreenDriver:
    """Drives one blue/green deployment from submission to a terminal state.

    Collaborators are injected; the driver never creates AWS clients or reads
    ambient configuration itself.
    """

    def __init__(
        self,
        config: BlueGreenDeployConfig,
        deployment_service: DeploymentService,
        object_store: Optional[ObjectStore] = None,
        workspace: Optional[Workspace] = None,
        template_loader: Optional[TemplateLoader] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize driver.

        Args:
            config: Deployment configuration
            deployment_service: Platform the revision is submitted to
            object_store: Upload target, required for s3 revisions
            workspace: Working directory holding the manifests
            template_loader: Source of bundled sample templates
            retry_policy: Retry for status reads and uploads
            clock: Monotonic clock for the waiter
            sleep: Blocking sleep for waiter and retries
        """
        self.config = config
        self.deployment_service = deployment_service
        self.object_store = object_store
        self.workspace = workspace or Workspace()
        self.template_loader = template_loader or TemplateLoader()
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock
        self.sleep = sleep
        self.deployment_id: Optional[str] = None
        self.last_record: Optional[DeploymentRecord] = None

    def prepare(self) -> DeploymentRequest:
        """Materialize the manifest pair and promote the image, if one is given."""
        cfg = self.config
        appspec, taskdef_text = materialize_templates(
            self.workspace,
            self.template_loader,
            appspec_path=cfg.artifacts.appspec_path,
            taskdef_path=cfg.artifacts.taskdef_path,
            use_sample_resources=cfg.use_sample_resources,
            sample_appspec=cfg.sample_resources.appspec,
            sample_taskdef=cfg.sample_resources.taskdef,
            replacements=cfg.template_replacements
        )
        task_definition = parse_task_definition(taskdef_text, cfg.artifacts.taskdef_path)

        image = cfg.image.strip()
        if image:
            logger.info(f"Injecting image into task definition: {image}")
            task_definition = inject_image(task_definition, image, cfg.container_name)
            self.workspace.write_text(cfg.artifacts.taskdef_path, render_task_definition(task_definition))
        else:
            logger.info("No image provided → leaving task definition image as-is.")

        return DeploymentRequest(
            platform=PLATFORM,
            appspec=appspec,
            task_definition=task_definition,
            image=image or None,
            container_name=cfg.container_name
        )

    def package(self) -> RevisionBundle:
        cfg = self.config
        return build_bundle(
            self.workspace,
            cfg.build.bundle_name(),
            cfg.artifacts.appspec_path,
            cfg.artifacts.taskdef_path
        )

    def submit(self, revision_type: RevisionType, request: DeploymentRequest,
               bundle: RevisionBundle) -> Tuple[str, RevisionLocation]:
        """Hand the revision to the deployment service.

        Returns:
            Deployment id and the revision location that was submitted
        """
        cfg = self.config
        if revision_type == RevisionType.S3:
            key = f"{cfg.revision.normalized_prefix}/{bundle.name}"
            revision = RevisionLocation.s3(cfg.revision.bucket, key)
            run_with_retry(
                self.retry_policy,
                lambda: self.object_store.put(bundle.path, cfg.revision.bucket, key),
                sleep=self.sleep
            )
            logger.info("Creating CodeDeploy deployment using S3 revision...")
        else:
            revision = RevisionLocation.inline(request.appspec, content_sha256(request.appspec))
            logger.info("Creating CodeDeploy deployment using inline AppSpec content...")

        deployment_id = self.deployment_service.create_deployment(
            cfg.codedeploy.application_name,
            cfg.codedeploy.deployment_group,
            revision
        )
        logger.info(f"Deployment started. deploymentId={deployment_id} revision={revision.describe()}")
        return deployment_id, revision

    def read_status(self, deployment_id: str) -> DeploymentRecord:
        record = run_with_retry(
            self.retry_policy,
            lambda: self.deployment_service.get_deployment(deployment_id),
            sleep=self.sleep
        )
        self.last_record = record
        return record

    def wait_for_terminal(self, deployment_id: str) -> DeploymentRecord:
        """Poll until the deployment is Succeeded, Failed or Stopped.

        Raises:
            WaitTimeoutError: With the last observed status attached
        """
        policy = self.config.wait.policy('CodeDeploy deployment to finish')

        def finished() -> bool:
            record = self.read_status(deployment_id)
            logger.info(f"CodeDeploy status={record.status_name}")
            return record.is_terminal

        try:
            wait_until(policy, finished, clock=self.clock, sleep=self.sleep)
        except WaitTimeoutError as e:
            e.context.deployment_id = deployment_id
            raise e.attach_snapshot(self._snapshot_text(deployment_id))

        return self.last_record

    def _snapshot_text(self, deployment_id: str) -> str:
        try:
            return self.read_status(deployment_id).summary()
        except DeploymentError as e:
            logger.warning(f"Could not read final status of {deployment_id}: {e}")
            if self.last_record is not None:
                return self.last_record.summary()
            return 'status=Unknown'

    def deploy(self) -> DeploymentOutcome:
        """Run the full protocol.

        Returns:
            DeploymentOutcome for a Succeeded deployment

        Raises:
            ValidationError: Before any external call, for bad configuration
            DeploymentFailedError: Terminal state other than Succeeded
            WaitTimeoutError: Deployment still running at the deadline
        """
        revision_type = self.config.validate_for_run()
        if revision_type == RevisionType.S3 and self.object_store is None:
            raise ValidationError("An object store is required for s3 revisions")

        started = self.clock()
        request = self.prepare()
        bundle = self.package()

        deployment_id, revision = self.submit(revision_type, request, bundle)
        self.deployment_id = deployment_id

        record = self.wait_for_terminal(deployment_id)
        if record.status != DeploymentStatus.SUCCEEDED:
            logger.error(f"Deployment {deployment_id} ended {record.summary()}")
            raise DeploymentFailedError(deployment_id, record.status_name, record.error_message)

        logger.info("✅ ECS Blue/Green deployment succeeded.")
        return DeploymentOutcome(
            deployment_id=deployment_id,
            status=record.status,
            revision_type=revision_type,
            revision=revision,
            bundle=bundle,
            elapsed=self.clock() - started
        )

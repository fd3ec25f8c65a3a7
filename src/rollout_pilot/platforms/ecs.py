"""ECS-backed workload runtime for manual redeploys."""

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from rollout_pilot.platforms.base import WorkloadRuntime
from rollout_pilot.utils.errors import ErrorContext, ExternalCommandError, error_handler
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)


class EcsRuntime(WorkloadRuntime):
    """Redeploys an ECS service to a previous task definition."""

    def __init__(self, client, wait_delay: int = 15, wait_max_attempts: int = 40):
        """Initialize ECS runtime.

        Args:
            client: boto3 ``ecs`` client
            wait_delay: Seconds between ``services_stable`` checks
            wait_max_attempts: Checks before the waiter gives up
        """
        self.client = client
        self.wait_delay = wait_delay
        self.wait_max_attempts = wait_max_attempts

    def update_workload(self, cluster: str, service: str, task_definition: str) -> None:
        logger.info(f"Updating ECS service {cluster}/{service} to taskDefinition={task_definition}")
        try:
            self.client.update_service(
                cluster=cluster,
                service=service,
                taskDefinition=task_definition,
                forceNewDeployment=True
            )
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(
                e, ErrorContext(aws_service='ecs', aws_operation='update_service')
            ) from e

    def wait_stable(self, cluster: str, service: str) -> None:
        logger.info(f"Waiting for ECS service {cluster}/{service} to stabilize...")
        waiter = self.client.get_waiter('services_stable')
        try:
            waiter.wait(
                cluster=cluster,
                services=[service],
                WaiterConfig={'Delay': self.wait_delay, 'MaxAttempts': self.wait_max_attempts}
            )
        except WaiterError as e:
            raise ExternalCommandError(
                f"ECS did not stabilize after rollback: {(e.last_response or {}).get('failures') or e}",
                command='ecs:services_stable',
                cause=e
            ) from e
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(
                e, ErrorContext(aws_service='ecs', aws_operation='describe_services')
            ) from e

"""CodeDeploy-backed blue/green deployment service."""

from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from rollout_pilot.deployment.models import (
    DeploymentRecord,
    DeploymentStatus,
    LifecycleEvent,
    RevisionLocation,
    RevisionType,
)
from rollout_pilot.platforms.base import DeploymentService
from rollout_pilot.utils.errors import ErrorContext, error_handler
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)

# deploymentTarget keys by target type
TARGET_KEYS = ('ecsTarget', 'instanceTarget', 'lambdaTarget', 'cloudFormationTarget')


class CodeDeployService(DeploymentService):
    """Deployment service backed by the AWS CodeDeploy API."""

    def __init__(self, client):
        """Initialize CodeDeploy service.

        Args:
            client: boto3 ``codedeploy`` client
        """
        self.client = client

    def _call(self, operation: str, **params) -> Dict[str, Any]:
        try:
            return getattr(self.client, operation)(**params)
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(
                e,
                ErrorContext(
                    deployment_id=params.get('deploymentId'),
                    aws_service='codedeploy',
                    aws_operation=operation
                )
            ) from e

    @staticmethod
    def revision_payload(revision: RevisionLocation) -> Dict[str, Any]:
        """Build the ``revision`` argument of CreateDeployment."""
        if revision.revision_type == RevisionType.S3:
            return {
                'revisionType': 'S3',
                's3Location': {
                    'bucket': revision.bucket,
                    'key': revision.key,
                    'bundleType': 'zip'
                }
            }
        return {
            'revisionType': 'AppSpecContent',
            'appSpecContent': {
                'content': revision.content,
                'sha256': revision.sha256
            }
        }

    def create_deployment(self, application: str, group: str, revision: RevisionLocation) -> str:
        response = self._call(
            'create_deployment',
            applicationName=application,
            deploymentGroupName=group,
            revision=self.revision_payload(revision)
        )
        return response['deploymentId']

    def get_deployment(self, deployment_id: str) -> DeploymentRecord:
        info = self._call('get_deployment', deploymentId=deployment_id).get('deploymentInfo', {})
        raw_status = info.get('status')
        error_info = info.get('errorInformation') or {}
        return DeploymentRecord(
            id=deployment_id,
            status=DeploymentStatus.parse(raw_status),
            error_message=error_info.get('message') or None,
            creator=info.get('creator'),
            raw_status=raw_status
        )

    def stop_deployment(self, deployment_id: str, auto_rollback: bool) -> None:
        response = self._call(
            'stop_deployment',
            deploymentId=deployment_id,
            autoRollbackEnabled=auto_rollback
        )
        logger.info(f"Stop requested: status={response.get('status')} "
                    f"message={response.get('statusMessage', '')}")

    def list_instances(self, deployment_id: str) -> List[str]:
        target_ids: List[str] = []
        params = {'deploymentId': deployment_id}
        while True:
            response = self._call('list_deployment_targets', **params)
            target_ids.extend(response.get('targetIds', []))
            token = response.get('nextToken')
            if not token:
                return target_ids
            params['nextToken'] = token

    def get_lifecycle_events(self, deployment_id: str, instance_id: str) -> List[LifecycleEvent]:
        target = self._call(
            'get_deployment_target',
            deploymentId=deployment_id,
            targetId=instance_id
        ).get('deploymentTarget', {})

        raw_events = []
        for key in TARGET_KEYS:
            if key in target:
                raw_events = target[key].get('lifecycleEvents', [])
                break

        events = []
        for raw in raw_events:
            diagnostics = raw.get('diagnostics') or {}
            events.append(LifecycleEvent(
                name=raw.get('lifecycleEventName', ''),
                status=raw.get('status', ''),
                start_time=raw.get('startTime'),
                end_time=raw.get('endTime'),
                error_code=diagnostics.get('errorCode'),
                diagnostic_message=diagnostics.get('message')
            ))
        return events

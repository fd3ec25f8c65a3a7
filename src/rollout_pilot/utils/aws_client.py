"""AWS session handling and per-invocation credential scoping."""

import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from rollout_pilot.utils.errors import CredentialError, ErrorContext, ValidationError, error_handler
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AssumeRoleConfig:
    """Configuration for IAM role assumption."""
    role_arn: str
    session_name: str = 'rollout-pilot'
    external_id: Optional[str] = None
    duration_seconds: int = 3600


def sanitize_session_name(name: str) -> str:
    """Make a string acceptable as an STS role session name."""
    return re.sub(r'[^A-Za-z0-9+=,.@-]', '-', name)[:64]


class AWSClientManager:
    """Manages a boto3 session, optionally behind an assumed role."""

    def __init__(
        self,
        region: str,
        profile: Optional[str] = None,
        assume_role_config: Optional[AssumeRoleConfig] = None
    ):
        """Initialize AWS client manager.

        Args:
            region: AWS region for every client
            profile: AWS profile name for the base session
            assume_role_config: Role to assume; None uses the ambient identity
        """
        if not region:
            raise ValidationError("Missing required config key(s): ['region']")
        self.region = region
        self.profile = profile
        self.assume_role_config = assume_role_config
        self._session: Optional[boto3.Session] = None
        self._assumed_session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}

        self._boto_config = Config(
            retries={
                'mode': 'standard',
                'max_attempts': 3
            },
            connect_timeout=10,
            read_timeout=60
        )

    @property
    def session(self) -> boto3.Session:
        """Session used for API calls: the assumed one when a role was assumed."""
        if self._assumed_session is not None:
            return self._assumed_session

        if self._session is None:
            kwargs = {'region_name': self.region}
            if self.profile:
                kwargs['profile_name'] = self.profile
            self._session = boto3.Session(**kwargs)
            logger.debug(f"Created AWS session - Region: {self.region}, "
                         f"Profile: {self.profile or 'default'}")

        return self._session

    def get_client(self, service_name: str):
        """Get a cached boto3 client for a service.

        Args:
            service_name: AWS service name (e.g., 'codedeploy', 'ecs')

        Returns:
            Boto3 client for the service
        """
        if service_name not in self._clients:
            self._clients[service_name] = self.session.client(service_name, config=self._boto_config)
        return self._clients[service_name]

    def assume_role(self) -> None:
        """Assume the configured role and switch all clients to its credentials.

        Raises:
            CredentialError: If no credentials are available or STS refuses
        """
        config = self.assume_role_config
        if config is None:
            return

        logger.info(f"Assuming AWS role: {config.role_arn} "
                    f"(session={config.session_name}) in region={self.region}")

        params = {
            'RoleArn': config.role_arn,
            'RoleSessionName': config.session_name,
            'DurationSeconds': config.duration_seconds
        }
        if config.external_id:
            params['ExternalId'] = config.external_id

        try:
            sts = self.session.client('sts', config=self._boto_config)
            credentials = sts.assume_role(**params)['Credentials']
        except (ClientError, NoCredentialsError, PartialCredentialsError) as e:
            handled = error_handler.handle_exception(
                e, ErrorContext(aws_service='sts', operation='assume_role')
            )
            raise CredentialError(
                f"Failed to assume role {config.role_arn}: {handled.message}",
                cause=e,
                suggestions=handled.suggestions
            ) from e

        self._assumed_session = boto3.Session(
            aws_access_key_id=credentials['AccessKeyId'],
            aws_secret_access_key=credentials['SecretAccessKey'],
            aws_session_token=credentials['SessionToken'],
            region_name=self.region
        )
        self._clients.clear()

    def environment(self) -> Dict[str, str]:
        """Environment variables that hand this session's identity to a CLI.

        Returns:
            AWS_* variables for region and, when resolvable, credentials
        """
        env = {'AWS_REGION': self.region, 'AWS_DEFAULT_REGION': self.region}
        credentials = self.session.get_credentials()
        if credentials is not None:
            frozen = credentials.get_frozen_credentials()
            env['AWS_ACCESS_KEY_ID'] = frozen.access_key
            env['AWS_SECRET_ACCESS_KEY'] = frozen.secret_key
            if frozen.token:
                env['AWS_SESSION_TOKEN'] = frozen.token
        return env

    def clear_cache(self):
        """Drop cached clients and sessions."""
        self._clients.clear()
        self._session = None
        self._assumed_session = None
        logger.debug("Cleared AWS client cache")


@contextmanager
def scoped_session(
    region: str,
    role_arn: Optional[str] = None,
    session_name: str = 'rollout-pilot',
    profile: Optional[str] = None
) -> Iterator[AWSClientManager]:
    """Credentials for the duration of the enclosed block.

    Without ``role_arn`` the ambient identity (instance profile, IRSA,
    environment) is used; with it, short-lived cross-account credentials are
    obtained from STS. Cached clients and credentials are released on exit,
    including when the block raises.

    Args:
        region: AWS region
        role_arn: Optional role to assume
        session_name: STS session name (sanitized)
        profile: Optional AWS profile for the base session

    Yields:
        AWSClientManager bound to the scoped identity
    """
    assume = None
    if role_arn:
        assume = AssumeRoleConfig(role_arn=role_arn, session_name=sanitize_session_name(session_name))

    manager = AWSClientManager(region=region, profile=profile, assume_role_config=assume)
    try:
        manager.assume_role()
        yield manager
    finally:
        manager.clear_cache()

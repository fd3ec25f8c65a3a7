"""S3 object store for reference-based revisions."""

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from rollout_pilot.platforms.base import ObjectStore
from rollout_pilot.utils.errors import ErrorContext, ExternalCommandError, error_handler
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)


class S3ObjectStore(ObjectStore):
    """Uploads revision bundles to S3."""

    def __init__(self, client):
        """Initialize object store.

        Args:
            client: boto3 ``s3`` client
        """
        self.client = client

    def put(self, local_path: str, bucket: str, key: str) -> None:
        logger.info(f"Uploading revision bundle to s3://{bucket}/{key}")
        try:
            self.client.upload_file(local_path, bucket, key)
        except S3UploadFailedError as e:
            raise ExternalCommandError(
                f"Failed to upload revision bundle to S3: {e}",
                command=f"s3:upload_file s3://{bucket}/{key}",
                cause=e
            ) from e
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(
                e, ErrorContext(aws_service='s3', aws_operation='upload_file')
            ) from e

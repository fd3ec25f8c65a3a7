"""Error handling framework for deployment and rollback operations."""

from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import dataclass
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError


class ErrorCategory(Enum):
    """Categories of errors that can occur during deployment or rollback."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    EXTERNAL = "external"
    TIMEOUT = "timeout"
    DEPLOYMENT = "deployment"
    ROLLBACK = "rollback"
    CREDENTIAL = "credential"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Invocation cannot continue
    ERROR = "error"  # Operation failed
    WARNING = "warning"  # Non-fatal issue
    INFO = "info"  # Informational message


@dataclass
class ErrorContext:
    """Context information for an error."""
    deployment_id: Optional[str] = None
    operation: Optional[str] = None
    aws_service: Optional[str] = None
    aws_operation: Optional[str] = None
    request_id: Optional[str] = None
    snapshot: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class DeploymentError(Exception):
    """Base exception for deployment and rollback errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize deployment error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def __str__(self) -> str:
        return self.message

    def attach_snapshot(self, snapshot: str) -> 'DeploymentError':
        """Append a final status snapshot to the error message.

        Args:
            snapshot: One-line description of the platform-reported state

        Returns:
            The same error, for use in ``raise err.attach_snapshot(...)``
        """
        if snapshot and self.context.snapshot is None:
            self.context.snapshot = snapshot
            self.message = f"{self.message} [final state: {snapshot}]"
            self.args = (self.message,)
        return self

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        lines = []

        lines.append(f"❌ {self.severity.value.upper()}: {self.message}")

        if self.context.deployment_id:
            lines.append(f"   Deployment: {self.context.deployment_id}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")

        if self.cause:
            lines.append(f"   Cause: {str(self.cause)}")

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error
        """
        return {
            'type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': {
                'deployment_id': self.context.deployment_id,
                'operation': self.context.operation,
                'aws_service': self.context.aws_service,
                'aws_operation': self.context.aws_operation,
                'request_id': self.context.request_id,
                'snapshot': self.context.snapshot,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ValidationError(DeploymentError):
    """Missing or invalid required configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class UnsupportedModeError(ValidationError):
    """Unknown mode or strategy value supplied by the caller."""

    def __init__(self, value: str, valid: List[str], field: str = 'mode', **kwargs):
        self.value = value
        self.valid = list(valid)
        super().__init__(
            f"Unsupported {field}='{value}'. Valid: {'|'.join(self.valid)}",
            **kwargs
        )


class CredentialError(DeploymentError):
    """Error related to AWS credentials or role assumption."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CREDENTIAL,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class ExternalCommandError(DeploymentError):
    """A delegated command exited non-zero or a platform API call failed."""

    def __init__(
        self,
        message: str,
        command: str,
        exit_code: Optional[int] = None,
        stderr: str = '',
        **kwargs
    ):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code is not None:
            full = f"{message}. Exit code={exit_code}. Cmd={command}"
        else:
            full = f"{message}. Operation={command}"
        kwargs.setdefault('category', ErrorCategory.EXTERNAL)
        super().__init__(full, **kwargs)


class WaitTimeoutError(DeploymentError, TimeoutError):
    """A condition wait exceeded its deadline."""

    def __init__(self, label: str, timeout: float, elapsed: float, evaluations: int, **kwargs):
        self.label = label
        self.timeout = timeout
        self.elapsed = elapsed
        self.evaluations = evaluations
        super().__init__(
            f"Timed out after {elapsed:.0f}s waiting for {label} "
            f"(timeout={timeout:.0f}s, checks={evaluations})",
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class NoRollbackTargetError(DeploymentError):
    """No eligible revision exists to roll back to."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.ROLLBACK,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class DeploymentFailedError(DeploymentError):
    """A deployment reached a terminal state other than Succeeded."""

    def __init__(
        self,
        deployment_id: str,
        status: str,
        error_message: Optional[str] = None,
        **kwargs
    ):
        self.deployment_id = deployment_id
        self.status = status
        self.error_message = error_message
        kwargs.setdefault('context', ErrorContext(deployment_id=deployment_id))
        super().__init__(
            f"Deployment did not succeed. status={status}. error={error_message or 'None'}",
            category=ErrorCategory.DEPLOYMENT,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class ErrorHandler:
    """Handles and categorizes errors from AWS and other sources."""

    # Mapping of AWS error codes to error categories and suggestions
    AWS_ERROR_MAPPING = {
        'InvalidClientTokenId': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS credentials are invalid or expired',
            'suggestions': [
                'Check that your AWS credentials are correctly configured',
                'Verify credentials using: aws sts get-caller-identity',
            ]
        },
        'ExpiredToken': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS session token has expired',
            'suggestions': [
                'Refresh your AWS session credentials',
                'Shorten the pipeline step or raise the assumed-role duration',
            ]
        },
        'AccessDenied': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Access denied - insufficient permissions',
            'suggestions': [
                'Check IAM policies attached to the pipeline role',
                'Verify the cross-account role trusts the pipeline identity',
            ]
        },
        'AccessDeniedException': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Access denied - insufficient permissions',
            'suggestions': [
                'Check IAM policies attached to the pipeline role',
            ]
        },
        'ApplicationDoesNotExistException': {
            'category': ErrorCategory.VALIDATION,
            'message': 'CodeDeploy application not found',
            'suggestions': [
                'Verify codedeploy.application_name and the AWS region',
            ]
        },
        'DeploymentGroupDoesNotExistException': {
            'category': ErrorCategory.VALIDATION,
            'message': 'CodeDeploy deployment group not found',
            'suggestions': [
                'Verify codedeploy.deployment_group belongs to the application',
            ]
        },
        'DeploymentDoesNotExistException': {
            'category': ErrorCategory.VALIDATION,
            'message': 'CodeDeploy deployment not found',
            'suggestions': [
                'Check the deployment id and the AWS region',
            ]
        },
        'DeploymentAlreadyCompletedException': {
            'category': ErrorCategory.DEPLOYMENT,
            'message': 'Deployment has already completed',
            'suggestions': [
                'Nothing to stop; inspect the final status instead',
            ]
        },
        'DeploymentLimitExceededException': {
            'category': ErrorCategory.DEPLOYMENT,
            'message': 'Another deployment is in progress for this group',
            'suggestions': [
                'Wait for the active deployment to finish or stop it first',
            ]
        },
        'ServiceNotFoundException': {
            'category': ErrorCategory.VALIDATION,
            'message': 'ECS service not found',
            'suggestions': [
                'Verify manual_redeploy.cluster and manual_redeploy.service',
            ]
        },
        'ClusterNotFoundException': {
            'category': ErrorCategory.VALIDATION,
            'message': 'ECS cluster not found',
            'suggestions': [
                'Verify manual_redeploy.cluster and the AWS region',
            ]
        },
        'NoSuchBucket': {
            'category': ErrorCategory.VALIDATION,
            'message': 'Revision bucket does not exist',
            'suggestions': [
                'Verify revision.bucket and the AWS region',
            ]
        },
        'ThrottlingException': {
            'category': ErrorCategory.NETWORK,
            'message': 'API rate limit exceeded',
            'suggestions': [
                'Reduce the polling frequency',
                'Retries with backoff are already applied to status reads',
            ]
        },
    }

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> DeploymentError:
        """Handle an exception and convert to DeploymentError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            DeploymentError with categorization and suggestions
        """
        context = context or ErrorContext()

        if isinstance(error, DeploymentError):
            return error

        if isinstance(error, ClientError):
            return self._handle_aws_error(error, context)

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return CredentialError(
                message=f'AWS credentials unavailable: {error}',
                context=context,
                cause=error,
                suggestions=[
                    'Run on an agent with an instance profile or IRSA identity',
                    'Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY environment variables',
                    'Specify a profile with --profile',
                ]
            )

        if isinstance(error, ConnectionError):
            return DeploymentError(
                message=f'Network error: {error}',
                category=ErrorCategory.NETWORK,
                context=context,
                cause=error,
                suggestions=['Check connectivity to the AWS endpoints']
            )

        return DeploymentError(
            message=str(error),
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def _handle_aws_error(
        self,
        error: ClientError,
        context: ErrorContext
    ) -> DeploymentError:
        """Handle AWS ClientError.

        Args:
            error: The ClientError
            context: Error context

        Returns:
            ExternalCommandError naming the failed API operation
        """
        error_code = error.response.get('Error', {}).get('Code', 'Unknown')
        error_message = error.response.get('Error', {}).get('Message', str(error))
        request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
        operation = getattr(error, 'operation_name', None) or context.aws_operation or 'unknown'

        context.request_id = request_id
        context.aws_operation = operation

        error_info = self.AWS_ERROR_MAPPING.get(error_code)
        command = f"{context.aws_service or 'aws'}:{operation}"

        if error_info:
            return ExternalCommandError(
                f"{error_info['message']} ({error_code}): {error_message}",
                command=command,
                category=error_info['category'],
                context=context,
                cause=error,
                suggestions=error_info['suggestions']
            )

        return ExternalCommandError(
            f"AWS Error ({error_code}): {error_message}",
            command=command,
            context=context,
            cause=error,
            suggestions=[
                'Check AWS documentation for this error code',
                f'AWS Request ID: {request_id}',
            ]
        )


# Global error handler instance
error_handler = ErrorHandler()

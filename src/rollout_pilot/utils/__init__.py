"""Utility modules for logging, errors, retry, waiting and AWS sessions."""

from rollout_pilot.utils.aws_client import AWSClientManager, AssumeRoleConfig, scoped_session
from rollout_pilot.utils.retry import RetryPolicy, RetryExecutor, run_with_retry
from rollout_pilot.utils.waiter import WaitPolicy, wait_until
from rollout_pilot.utils.shell import CommandResult, CommandRunner
from rollout_pilot.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    DeploymentError,
    ValidationError,
    UnsupportedModeError,
    CredentialError,
    ExternalCommandError,
    WaitTimeoutError,
    NoRollbackTargetError,
    DeploymentFailedError,
    ErrorHandler,
    error_handler
)
from rollout_pilot.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS sessions
    'AWSClientManager',
    'AssumeRoleConfig',
    'scoped_session',

    # Retry / wait
    'RetryPolicy',
    'RetryExecutor',
    'run_with_retry',
    'WaitPolicy',
    'wait_until',

    # Commands
    'CommandResult',
    'CommandRunner',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'DeploymentError',
    'ValidationError',
    'UnsupportedModeError',
    'CredentialError',
    'ExternalCommandError',
    'WaitTimeoutError',
    'NoRollbackTargetError',
    'DeploymentFailedError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]

"""Retry executor with deterministic exponential backoff."""

import math
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from rollout_pilot.utils.errors import ValidationError, UnsupportedModeError
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to run an operation and how long to sleep between runs."""

    max_attempts: int = 3
    initial_delay: float = 3.0
    backoff_factor: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValidationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay <= 0:
            raise ValidationError(f"initial_delay must be > 0, got {self.initial_delay}")
        if self.backoff_factor < 1.0:
            raise ValidationError(f"backoff_factor must be >= 1.0, got {self.backoff_factor}")

    def delay_for(self, attempt: int) -> int:
        """Seconds to sleep after the given (1-indexed) failed attempt.

        Args:
            attempt: Number of the attempt that just failed

        Returns:
            Delay in whole seconds, never less than 1
        """
        raw = self.initial_delay * (self.backoff_factor ** (attempt - 1))
        return max(1, _round_half_up(raw))


class RetryExecutor:
    """Runs a unit of work up to ``policy.max_attempts`` times.

    Caller mistakes (``ValidationError``, ``UnsupportedModeError``) are never
    retried. Any other failure is retried after ``policy.delay_for(attempt)``
    seconds; the failure from the final attempt propagates unchanged.
    """

    NON_RETRYABLE = (ValidationError, UnsupportedModeError)

    def __init__(self, policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep):
        """Initialize retry executor.

        Args:
            policy: Retry policy
            sleep: Blocking sleep function (injectable for tests)
        """
        self.policy = policy
        self.sleep = sleep

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Execute a function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            Result of the function call

        Raises:
            The original exception of the last attempt
        """
        attempt = 1
        while True:
            try:
                result = func(*args, **kwargs)
                if attempt > 1:
                    logger.info(f"Operation succeeded on attempt {attempt}/{self.policy.max_attempts}")
                return result
            except self.NON_RETRYABLE:
                raise
            except Exception as e:
                if attempt >= self.policy.max_attempts:
                    raise

                delay = self.policy.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt}/{self.policy.max_attempts} failed: "
                    f"{type(e).__name__}: {e}. Sleeping {delay}s before retry..."
                )
                self.sleep(delay)
                attempt += 1


def run_with_retry(
    policy: RetryPolicy,
    operation: Callable[[], T],
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """Run ``operation`` under ``policy``.

    Args:
        policy: Retry policy
        operation: Zero-argument callable
        sleep: Blocking sleep function

    Returns:
        The operation's return value
    """
    return RetryExecutor(policy, sleep=sleep).execute(operation)

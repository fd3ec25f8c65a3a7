"""Poll-until-condition waiter with an overall deadline."""

import time
from dataclasses import dataclass
from typing import Callable

from rollout_pilot.utils.errors import ValidationError, WaitTimeoutError
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class WaitPolicy:
    """Overall timeout and poll spacing for a condition wait, in seconds."""

    timeout: float
    poll_interval: float
    label: str = 'condition'

    def __post_init__(self):
        if self.poll_interval <= 0:
            raise ValidationError(f"{self.label}: poll_interval must be > 0, got {self.poll_interval}")
        if self.poll_interval > self.timeout:
            raise ValidationError(
                f"{self.label}: poll_interval ({self.poll_interval}s) must not exceed timeout ({self.timeout}s)"
            )

    @classmethod
    def minutes(cls, timeout_minutes: float, poll_seconds: float, label: str) -> 'WaitPolicy':
        return cls(timeout=timeout_minutes * 60, poll_interval=poll_seconds, label=label)


def wait_until(
    policy: WaitPolicy,
    predicate: Callable[[], bool],
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep
) -> float:
    """Evaluate ``predicate`` every ``policy.poll_interval`` until it is true.

    The predicate is evaluated immediately and then once per interval; the
    final sleep is clipped so the last evaluation lands on the deadline. This
    bounds the number of evaluations to ``timeout / poll_interval + 1``.
    Exceptions from the predicate propagate unchanged.

    Args:
        policy: Timeout, interval and label
        predicate: Idempotent check, possibly reading an external system
        clock: Monotonic clock in seconds
        sleep: Blocking sleep function

    Returns:
        Seconds elapsed until the predicate held

    Raises:
        WaitTimeoutError: If the deadline passes before the predicate holds
    """
    start = clock()
    evaluations = 0

    while True:
        evaluations += 1
        if predicate():
            return clock() - start

        elapsed = clock() - start
        if elapsed >= policy.timeout:
            logger.error(f"Gave up waiting for {policy.label} after {elapsed:.0f}s")
            raise WaitTimeoutError(
                label=policy.label,
                timeout=policy.timeout,
                elapsed=elapsed,
                evaluations=evaluations
            )

        logger.info(f"Waiting for {policy.label} ...")
        sleep(min(policy.poll_interval, policy.timeout - elapsed))

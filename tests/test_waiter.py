"""Tests for the condition waiter."""

import pytest

from rollout_pilot.utils.errors import ExternalCommandError, ValidationError, WaitTimeoutError
from rollout_pilot.utils.waiter import WaitPolicy, wait_until


class Sequence:
    """Predicate returning scripted answers, then the last one forever."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if len(self.answers) > 1:
            return self.answers.pop(0)
        return self.answers[0]


class TestWaitPolicy:
    """Test policy validation."""

    def test_minutes_helper(self):
        policy = WaitPolicy.minutes(30, 20, 'deployment')
        assert policy.timeout == 1800
        assert policy.poll_interval == 20
        assert policy.label == 'deployment'

    @pytest.mark.parametrize("timeout,interval", [(60, 0), (60, -1), (10, 20)])
    def test_invalid_interval_rejected(self, timeout, interval):
        with pytest.raises(ValidationError):
            WaitPolicy(timeout=timeout, poll_interval=interval)


class TestWaitUntil:
    """Test waiting behaviour."""

    def test_immediate_success(self, clock):
        predicate = Sequence([True])
        elapsed = wait_until(WaitPolicy(60, 10), predicate, clock=clock, sleep=clock.sleep)
        assert elapsed == 0
        assert predicate.calls == 1
        assert clock.sleeps == []

    def test_success_on_third_poll(self, clock):
        predicate = Sequence([False, False, True])
        elapsed = wait_until(WaitPolicy(300, 10), predicate, clock=clock, sleep=clock.sleep)
        assert elapsed == 20
        assert predicate.calls == 3

    def test_timeout_bounds_evaluations(self, clock):
        predicate = Sequence([False])
        with pytest.raises(WaitTimeoutError) as exc_info:
            wait_until(WaitPolicy(300, 10, 'service'), predicate, clock=clock, sleep=clock.sleep)

        error = exc_info.value
        assert predicate.calls <= 31
        assert error.evaluations == predicate.calls
        assert error.elapsed >= 300
        assert error.label == 'service'
        assert 'service' in str(error)

    def test_timeout_is_builtin_timeout(self, clock):
        with pytest.raises(TimeoutError):
            wait_until(WaitPolicy(20, 10), Sequence([False]), clock=clock, sleep=clock.sleep)

    def test_last_sleep_clipped_to_deadline(self, clock):
        with pytest.raises(WaitTimeoutError):
            wait_until(WaitPolicy(25, 10), Sequence([False]), clock=clock, sleep=clock.sleep)
        assert clock.sleeps == [10, 10, 5]
        assert clock.now == 25

    def test_predicate_errors_propagate(self, clock):
        error = ExternalCommandError("boom", command='kubectl get pods')

        def predicate():
            raise error

        with pytest.raises(ExternalCommandError) as exc_info:
            wait_until(WaitPolicy(60, 10), predicate, clock=clock, sleep=clock.sleep)
        assert exc_info.value is error

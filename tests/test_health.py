"""Tests for pod health classification."""

from rollout_pilot.deployment.models import InstanceHealth
from rollout_pilot.rollback.health import (
    instance_from_pod,
    instances_from_pod_list,
    is_unhealthy,
    select_unhealthy,
)


def pod(name, phase, ready=None):
    status = {'phase': phase}
    if ready is not None:
        status['conditions'] = [
            {'type': 'Initialized', 'status': 'True'},
            {'type': 'Ready', 'status': 'True' if ready else 'False'},
        ]
    return {'metadata': {'name': name}, 'status': status}


class TestIsUnhealthy:
    """Test the phase/readiness rule."""

    def test_running_and_ready_is_healthy(self):
        assert not is_unhealthy(InstanceHealth('a', 'Running', ready=True))

    def test_running_not_ready_is_unhealthy(self):
        assert is_unhealthy(InstanceHealth('b', 'Running', ready=False))

    def test_pending_is_unhealthy(self):
        assert is_unhealthy(InstanceHealth('c', 'Pending', ready=False))

    def test_succeeded_is_healthy_even_if_not_ready(self):
        assert not is_unhealthy(InstanceHealth('d', 'Succeeded', ready=False))


class TestSelectUnhealthy:
    """Test selection and truncation."""

    def test_keeps_order_and_truncates(self):
        instances = [
            InstanceHealth('a', 'Running', True),
            InstanceHealth('b', 'Running', False),
            InstanceHealth('c', 'Pending'),
            InstanceHealth('d', 'Failed'),
            InstanceHealth('e', 'Succeeded'),
        ]
        assert [i.name for i in select_unhealthy(instances, 5)] == ['b', 'c', 'd']
        assert [i.name for i in select_unhealthy(instances, 2)] == ['b', 'c']

    def test_zero_max_pods(self):
        assert select_unhealthy([InstanceHealth('a', 'Failed')], 0) == []


class TestPodConversion:
    """Test conversion from pod objects."""

    def test_ready_condition(self):
        assert instance_from_pod(pod('api-1', 'Running', ready=True)).ready is True
        assert instance_from_pod(pod('api-2', 'Running', ready=False)).ready is False

    def test_missing_conditions_means_not_ready(self):
        instance = instance_from_pod(pod('api-3', 'Pending'))
        assert instance == InstanceHealth('api-3', 'Pending', False)

    def test_pods_without_name_ignored(self):
        pod_list = {'items': [pod('api-1', 'Running', True), {'metadata': {}, 'status': {'phase': 'Failed'}}]}
        assert [i.name for i in instances_from_pod_list(pod_list)] == ['api-1']

"""Rollback decisions and coordinators.

Only the pure decision helpers are re-exported here; the coordinators live in
``rollback.coordinator`` and ``rollback.k8s`` and depend on the platform
adapters, which themselves use these helpers.
"""

from .selector import ROLLBACK_ELIGIBLE, current_deployed, parse_helm_history, select_rollback_target
from .health import HEALTHY_PHASES, instance_from_pod, instances_from_pod_list, is_unhealthy, select_unhealthy

__all__ = [
    'ROLLBACK_ELIGIBLE',
    'current_deployed',
    'parse_helm_history',
    'select_rollback_target',
    'HEALTHY_PHASES',
    'instance_from_pod',
    'instances_from_pod_list',
    'is_unhealthy',
    'select_unhealthy',
]

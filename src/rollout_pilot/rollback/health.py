"""Classify workload instances as healthy or unhealthy for diagnostics."""

from typing import Any, Dict, Iterable, List, Optional

from rollout_pilot.deployment.models import InstanceHealth

HEALTHY_PHASES = frozenset({'Running', 'Succeeded'})


def is_unhealthy(instance: InstanceHealth) -> bool:
    """Not Running/Succeeded, or Running but not Ready."""
    if instance.phase not in HEALTHY_PHASES:
        return True
    return instance.phase == 'Running' and not instance.ready


def select_unhealthy(instances: Iterable[InstanceHealth], max_pods: int) -> List[InstanceHealth]:
    """First ``max_pods`` unhealthy instances in listing order.

    The result bounds how much diagnostic output is captured; it must not
    feed into any rollback decision.
    """
    if max_pods <= 0:
        return []
    selected = []
    for instance in instances:
        if is_unhealthy(instance):
            selected.append(instance)
            if len(selected) >= max_pods:
                break
    return selected


def instance_from_pod(pod: Dict[str, Any]) -> Optional[InstanceHealth]:
    """Build an ``InstanceHealth`` from a pod object; None if it has no name."""
    name = (pod.get('metadata') or {}).get('name')
    if not name:
        return None

    status = pod.get('status') or {}
    ready = False
    for condition in status.get('conditions') or []:
        if condition.get('type') == 'Ready':
            ready = str(condition.get('status')) == 'True'
            break

    return InstanceHealth(name=str(name), phase=str(status.get('phase') or 'Unknown'), ready=ready)


def instances_from_pod_list(pod_list: Dict[str, Any]) -> List[InstanceHealth]:
    """Convert a ``kubectl get pods -o json`` document, keeping list order."""
    instances = []
    for pod in pod_list.get('items') or []:
        instance = instance_from_pod(pod)
        if instance is not None:
            instances.append(instance)
    return instances

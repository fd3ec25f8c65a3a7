"""helm/kubectl-backed rolling-deployment platform."""

import json
from typing import List, Optional

from rollout_pilot.deployment.models import InstanceHealth, RevisionEntry
from rollout_pilot.platforms.base import ClusterPlatform
from rollout_pilot.rollback.health import instances_from_pod_list
from rollout_pilot.rollback.selector import parse_helm_history
from rollout_pilot.utils.errors import ExternalCommandError
from rollout_pilot.utils.logging import get_logger
from rollout_pilot.utils.shell import CommandRunner

logger = get_logger(__name__)

OVERVIEW_KINDS = ('deploy', 'rs', 'svc', 'ingress')


def _output(result) -> str:
    if result.ok:
        return result.stdout
    return f"(exit {result.exit_code}) {result.stderr}".strip()


class KubectlHelmPlatform(ClusterPlatform):
    """Drives helm and kubectl through a ``CommandRunner``."""

    def __init__(
        self,
        runner: CommandRunner,
        kubectl_binary: str = 'kubectl',
        helm_binary: str = 'helm',
        kubeconfig_path: Optional[str] = None
    ):
        """Initialize platform.

        Args:
            runner: Command transport
            kubectl_binary: kubectl executable
            helm_binary: helm executable
            kubeconfig_path: Explicit kubeconfig, None for the ambient one
        """
        self.runner = runner.with_env(KUBECONFIG=kubeconfig_path) if kubeconfig_path else runner
        self.kubectl_binary = kubectl_binary
        self.helm_binary = helm_binary

    def _kubectl(self, *args: str) -> List[str]:
        return [self.kubectl_binary, *args]

    def _helm(self, *args: str) -> List[str]:
        return [self.helm_binary, *args]

    @staticmethod
    def _selector_args(selector: Optional[str]) -> List[str]:
        return ['-l', selector] if selector else []

    def get_release_history(self, release: str, namespace: str, max_entries: int = 20) -> List[RevisionEntry]:
        result = self.runner.run_or_fail(
            self._helm('history', release, '-n', namespace, '--max', str(max_entries), '-o', 'json'),
            f"Unable to read helm history for release='{release}'"
        )
        return parse_helm_history(result.stdout, release=release, namespace=namespace)

    def rollback_release(self, release: str, revision: int, namespace: str, timeout_minutes: int) -> None:
        self.runner.run_or_fail(
            self._helm(
                'rollback', release, str(revision), '-n', namespace,
                '--wait', '--timeout', f"{timeout_minutes}m"
            ),
            'Helm rollback failed'
        )

    def undo_rollout(self, kind: str, name: str, namespace: str, to_revision: Optional[str] = None) -> None:
        command = self._kubectl('rollout', 'undo', f"{kind}/{name}", '-n', namespace)
        if to_revision:
            command.append(f"--to-revision={to_revision}")
        self.runner.run_or_fail(command, 'kubectl rollout undo failed')

    def wait_rollout(self, kind: str, name: str, namespace: str, timeout_minutes: int) -> None:
        self.runner.run_or_fail(
            self._kubectl('rollout', 'status', f"{kind}/{name}", '-n', namespace, f"--timeout={timeout_minutes}m"),
            'Rollback rollout did not complete in time'
        )

    def list_instances(self, namespace: str, selector: Optional[str] = None) -> List[InstanceHealth]:
        result = self.runner.run_or_fail(
            self._kubectl('get', 'pods', '-n', namespace, *self._selector_args(selector), '-o', 'json'),
            'Unable to list pods'
        )
        try:
            document = json.loads(result.stdout or '{}')
        except json.JSONDecodeError as e:
            raise ExternalCommandError(
                f"kubectl returned invalid JSON: {e}",
                command=result.command_line,
                exit_code=result.exit_code
            ) from e
        return instances_from_pod_list(document)

    def describe_instance(self, name: str, namespace: str) -> str:
        return _output(self.runner.run(self._kubectl('describe', 'pod', name, '-n', namespace)))

    def get_logs(
        self,
        name: str,
        namespace: str,
        container: Optional[str] = None,
        tail: int = 200,
        previous: bool = False
    ) -> str:
        command = self._kubectl('logs', name, '-n', namespace)
        if container:
            command += ['-c', container]
        if previous:
            command.append('--previous')
        command.append(f"--tail={tail}")
        return _output(self.runner.run(command))

    def get_overview(self, namespace: str, selector: Optional[str] = None) -> str:
        sections = []
        nodes = self.runner.run(self._kubectl('get', 'nodes', '-o', 'wide'))
        node_lines = _output(nodes).splitlines()[:20]
        sections.append("---- nodes (brief) ----\n" + "\n".join(node_lines))

        pods = self.runner.run(self._kubectl('get', 'pods', '-n', namespace, *self._selector_args(selector), '-o', 'wide'))
        sections.append("---- pods ----\n" + _output(pods))

        for kind in OVERVIEW_KINDS:
            result = self.runner.run(
                self._kubectl('get', kind, '-n', namespace, *self._selector_args(selector), '-o', 'wide'),
                quiet=True
            )
            if result.ok and result.stdout:
                sections.append(f"---- {kind} ----\n{result.stdout}")
        return "\n".join(sections)

    def get_events(self, namespace: str, limit: int) -> str:
        result = self.runner.run(
            self._kubectl('get', 'events', '-n', namespace, '--sort-by=.metadata.creationTimestamp')
        )
        lines = _output(result).splitlines()
        return "\n".join(lines[-limit:])


def update_kubeconfig(runner: CommandRunner, cluster_name: str, region: str, kubeconfig_path: str) -> None:
    """Write a kubeconfig entry for an EKS cluster using the aws CLI.

    Args:
        runner: Runner carrying the scoped AWS credentials in its environment
        cluster_name: EKS cluster name
        region: AWS region
        kubeconfig_path: File to write
    """
    logger.info(f"EKS bootstrap enabled → updating kubeconfig for cluster={cluster_name}, region={region}")
    runner.run_or_fail(
        [
            'aws', 'eks', 'update-kubeconfig',
            '--name', cluster_name,
            '--region', region,
            '--kubeconfig', kubeconfig_path
        ],
        'Failed to update kubeconfig for EKS'
    )

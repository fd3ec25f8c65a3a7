"""Tests for the helm/kubectl platform and the command runner."""

import json
import sys

import pytest

from rollout_pilot.deployment.models import RevisionStatus
from rollout_pilot.platforms.kubernetes import KubectlHelmPlatform, update_kubeconfig
from rollout_pilot.utils.errors import ExternalCommandError, NoRollbackTargetError
from rollout_pilot.utils.shell import CommandResult, CommandRunner


class ScriptedRunner(CommandRunner):
    """Runner answering commands from a table keyed by argument prefix."""

    def __init__(self, responses=None, env=None):
        super().__init__(env=env)
        self.responses = responses or {}
        self.commands = []

    def with_env(self, **extra):
        self.env.update(extra)
        return self

    def run(self, command, quiet=False):
        argv = [str(part) for part in command]
        self.commands.append(argv)
        for prefix, (exit_code, stdout, stderr) in self.responses.items():
            if tuple(argv[:len(prefix)]) == prefix:
                return CommandResult(command=argv, stdout=stdout, stderr=stderr, exit_code=exit_code)
        return CommandResult(command=argv, stdout='', stderr='', exit_code=0)


HELM_HISTORY = json.dumps([
    {"revision": 6, "updated": "2024-05-01T10:00:00Z", "status": "superseded", "chart": "api-1.2.0"},
    {"revision": 7, "updated": "2024-05-02T10:00:00Z", "status": "deployed", "chart": "api-1.3.0"},
])

PODS = json.dumps({"items": [
    {"metadata": {"name": "api-1"}, "status": {"phase": "Running",
                                               "conditions": [{"type": "Ready", "status": "True"}]}},
    {"metadata": {"name": "api-2"}, "status": {"phase": "CrashLoopBackOff"}},
]})


class TestKubectlHelmPlatform:
    """Test command construction and output parsing."""

    def test_kubeconfig_exported(self):
        runner = ScriptedRunner()
        KubectlHelmPlatform(runner, kubeconfig_path='/tmp/kube')
        assert runner.env['KUBECONFIG'] == '/tmp/kube'

    def test_release_history(self):
        runner = ScriptedRunner({('helm', 'history'): (0, HELM_HISTORY, '')})
        entries = KubectlHelmPlatform(runner).get_release_history('api', 'prod', 20)

        assert runner.commands[0] == ['helm', 'history', 'api', '-n', 'prod', '--max', '20', '-o', 'json']
        assert [(e.sequence_number, e.status) for e in entries] == [
            (6, RevisionStatus.SUPERSEDED),
            (7, RevisionStatus.DEPLOYED),
        ]

    def test_release_history_failure(self):
        runner = ScriptedRunner({('helm', 'history'): (1, '', 'Error: release: not found')})
        with pytest.raises(ExternalCommandError) as exc_info:
            KubectlHelmPlatform(runner).get_release_history('api', 'prod')
        assert exc_info.value.exit_code == 1
        assert 'helm history api' in exc_info.value.command

    def test_empty_release_history(self):
        runner = ScriptedRunner({('helm', 'history'): (0, '[]', '')})
        with pytest.raises(NoRollbackTargetError):
            KubectlHelmPlatform(runner).get_release_history('api', 'prod')

    def test_helm_rollback_waits(self):
        runner = ScriptedRunner()
        KubectlHelmPlatform(runner).rollback_release('api', 6, 'prod', 10)
        assert runner.commands[0] == ['helm', 'rollback', 'api', '6', '-n', 'prod', '--wait', '--timeout', '10m']

    def test_helm_rollback_failure(self):
        runner = ScriptedRunner({('helm', 'rollback'): (1, '', 'Error: timed out waiting for the condition')})
        with pytest.raises(ExternalCommandError, match="Helm rollback failed"):
            KubectlHelmPlatform(runner).rollback_release('api', 6, 'prod', 10)

    def test_undo_and_status(self):
        runner = ScriptedRunner()
        platform = KubectlHelmPlatform(runner)
        platform.undo_rollout('deployment', 'api', 'prod', '3')
        platform.wait_rollout('deployment', 'api', 'prod', 10)
        assert runner.commands == [
            ['kubectl', 'rollout', 'undo', 'deployment/api', '-n', 'prod', '--to-revision=3'],
            ['kubectl', 'rollout', 'status', 'deployment/api', '-n', 'prod', '--timeout=10m'],
        ]

    def test_undo_without_revision(self):
        runner = ScriptedRunner()
        KubectlHelmPlatform(runner).undo_rollout('deployment', 'api', 'prod')
        assert runner.commands[0] == ['kubectl', 'rollout', 'undo', 'deployment/api', '-n', 'prod']

    def test_list_instances(self):
        runner = ScriptedRunner({('kubectl', 'get', 'pods'): (0, PODS, '')})
        instances = KubectlHelmPlatform(runner).list_instances('prod', 'app=api')

        assert runner.commands[0] == ['kubectl', 'get', 'pods', '-n', 'prod', '-l', 'app=api', '-o', 'json']
        assert [(i.name, i.phase, i.ready) for i in instances] == [
            ('api-1', 'Running', True),
            ('api-2', 'CrashLoopBackOff', False),
        ]

    def test_list_instances_invalid_json(self):
        runner = ScriptedRunner({('kubectl', 'get', 'pods'): (0, '{not json', '')})
        with pytest.raises(ExternalCommandError, match="invalid JSON"):
            KubectlHelmPlatform(runner).list_instances('prod')

    def test_logs_command(self):
        runner = ScriptedRunner({('kubectl', 'logs'): (0, 'boom', '')})
        output = KubectlHelmPlatform(runner).get_logs('api-2', 'prod', container='app', tail=50, previous=True)
        assert output == 'boom'
        assert runner.commands[0] == ['kubectl', 'logs', 'api-2', '-n', 'prod', '-c', 'app', '--previous', '--tail=50']

    def test_diagnostic_reads_do_not_raise(self):
        runner = ScriptedRunner({('kubectl', 'describe'): (1, '', 'pods "api-9" not found')})
        output = KubectlHelmPlatform(runner).describe_instance('api-9', 'prod')
        assert output.startswith('(exit 1)')
        assert 'not found' in output

    def test_events_keep_most_recent(self):
        lines = "\n".join(f"event {i}" for i in range(50))
        runner = ScriptedRunner({('kubectl', 'get', 'events'): (0, lines, '')})
        output = KubectlHelmPlatform(runner).get_events('prod', 5)
        assert output.splitlines() == [f"event {i}" for i in range(45, 50)]

    def test_overview_skips_missing_kinds(self):
        runner = ScriptedRunner({('kubectl', 'get', 'ingress'): (1, '', 'forbidden')})
        overview = KubectlHelmPlatform(runner).get_overview('prod')
        assert '---- nodes (brief) ----' in overview
        assert '---- ingress ----' not in overview

    def test_update_kubeconfig(self):
        runner = ScriptedRunner()
        update_kubeconfig(runner, 'prod-eks', 'us-east-1', '.kubeconfig')
        assert runner.commands[0] == [
            'aws', 'eks', 'update-kubeconfig',
            '--name', 'prod-eks', '--region', 'us-east-1', '--kubeconfig', '.kubeconfig'
        ]


class TestCommandRunner:
    """Test the subprocess transport."""

    def test_captures_output(self):
        result = CommandRunner().run([sys.executable, '-c', 'print("hello")'])
        assert result.ok
        assert result.stdout == 'hello'

    def test_env_layered(self):
        runner = CommandRunner().with_env(ROLLOUT_TEST_VALUE='42')
        result = runner.run([sys.executable, '-c', 'import os; print(os.environ["ROLLOUT_TEST_VALUE"])'])
        assert result.stdout == '42'

    def test_missing_binary_is_127(self):
        result = CommandRunner().run(['definitely-not-a-real-binary-xyz'])
        assert result.exit_code == 127

    def test_run_or_fail_raises_with_exit_code(self):
        with pytest.raises(ExternalCommandError) as exc_info:
            CommandRunner().run_or_fail([sys.executable, '-c', 'import sys; sys.exit(3)'], 'Probe failed')
        assert exc_info.value.exit_code == 3
        assert str(exc_info.value).startswith('Probe failed. Exit code=3. Cmd=')

"""Tests for the blue/green deployment driver."""

import json

import pytest

from rollout_pilot.config.models import BlueGreenDeployConfig, WaitConfig
from rollout_pilot.deployment.bluegreen import BlueGreenDriver
from rollout_pilot.deployment.manifests import Workspace
from rollout_pilot.deployment.models import DeploymentStatus, RevisionType
from rollout_pilot.utils.errors import (
    DeploymentFailedError,
    ExternalCommandError,
    UnsupportedModeError,
    ValidationError,
    WaitTimeoutError,
)
from rollout_pilot.utils.retry import RetryPolicy

from conftest import FakeDeploymentService, FakeObjectStore


def make_config(**overrides):
    data = {
        'aws': {'region': 'us-east-1'},
        'codedeploy': {'application_name': 'orders', 'deployment_group': 'orders-bg'},
        'build': {'job_name': 'orders/deploy', 'build_number': '42'},
        'wait': {'timeout_minutes': 30, 'poll_seconds': 20},
    }
    data.update(overrides)
    return BlueGreenDeployConfig(**data)


def make_driver(config, service, workspace_dir, clock, object_store=None):
    return BlueGreenDriver(
        config,
        service,
        object_store=object_store,
        workspace=Workspace(str(workspace_dir)),
        clock=clock,
        sleep=clock.sleep
    )


class TestDeploySuccess:
    """Test the successful path."""

    def test_inline_revision_polls_until_succeeded(self, workspace_dir, clock):
        service = FakeDeploymentService(['Created', 'InProgress', 'InProgress', 'Succeeded'])
        driver = make_driver(make_config(), service, workspace_dir, clock)

        outcome = driver.deploy()

        assert outcome.deployment_id == 'd-TEST123'
        assert outcome.status == DeploymentStatus.SUCCEEDED
        assert outcome.revision_type == RevisionType.INLINE
        assert outcome.revision.content.startswith('version: 0.0')
        assert len(outcome.revision.sha256) == 64
        assert service.call_names().count('get_deployment') == 4
        assert clock.sleeps == [20, 20, 20]
        assert outcome.elapsed == 60

    def test_s3_revision_uploads_bundle(self, workspace_dir, clock):
        store = FakeObjectStore()
        service = FakeDeploymentService(['Succeeded'])
        config = make_config(revision={'bucket': 'artifacts', 'key_prefix': '/releases/orders/'})

        outcome = make_driver(config, service, workspace_dir, clock, object_store=store).deploy()

        assert outcome.revision_type == RevisionType.S3
        assert len(store.uploads) == 1
        _, bucket, key = store.uploads[0]
        assert bucket == 'artifacts'
        assert key == 'releases/orders/codedeploy-revision-orders-deploy-42.zip'
        assert outcome.revision.key == key
        assert service.created[0][2].bucket == 'artifacts'

    def test_upload_is_retried(self, workspace_dir, clock):
        store = FakeObjectStore(failures=1)
        config = make_config(revision={'bucket': 'artifacts', 'key_prefix': 'releases'})
        driver = BlueGreenDriver(
            config,
            FakeDeploymentService(['Succeeded']),
            object_store=store,
            workspace=Workspace(str(workspace_dir)),
            retry_policy=RetryPolicy(max_attempts=2, initial_delay=1),
            clock=clock,
            sleep=clock.sleep
        )
        driver.deploy()
        assert len(store.uploads) == 1
        assert clock.sleeps[0] == 1

    def test_image_injected_and_taskdef_rewritten(self, workspace_dir, clock):
        config = make_config(image='registry/web:2', container_name='app')
        make_driver(config, FakeDeploymentService(), workspace_dir, clock).deploy()

        taskdef = json.loads((workspace_dir / 'taskdef.json').read_text(encoding='utf-8'))
        assert taskdef['containerDefinitions'][1]['image'] == 'registry/web:2'
        assert taskdef['containerDefinitions'][0]['image'] == 'envoy:1'

    def test_no_image_leaves_taskdef_untouched(self, workspace_dir, clock):
        before = (workspace_dir / 'taskdef.json').read_text(encoding='utf-8')
        make_driver(make_config(), FakeDeploymentService(), workspace_dir, clock).deploy()
        assert (workspace_dir / 'taskdef.json').read_text(encoding='utf-8') == before

    def test_sample_resources(self, tmp_path, clock):
        config = make_config(
            use_sample_resources=True,
            template_replacements={'PLACEHOLDER_FAMILY': 'orders'},
            image='registry/orders:9'
        )
        make_driver(config, FakeDeploymentService(), tmp_path, clock).deploy()

        taskdef = json.loads((tmp_path / 'taskdef.json').read_text(encoding='utf-8'))
        assert taskdef['family'] == 'orders'
        assert taskdef['containerDefinitions'][0]['image'] == 'registry/orders:9'


class TestDeployFailure:
    """Test failure paths."""

    def test_failed_deployment_raises_with_platform_message(self, workspace_dir, clock):
        service = FakeDeploymentService(['InProgress', 'Failed'], error_message='health check failed')
        driver = make_driver(make_config(), service, workspace_dir, clock)

        with pytest.raises(DeploymentFailedError) as exc_info:
            driver.deploy()

        error = exc_info.value
        assert error.status == 'Failed'
        assert 'health check failed' in str(error)
        assert driver.deployment_id == 'd-TEST123'

    def test_stopped_deployment_is_a_failure(self, workspace_dir, clock):
        service = FakeDeploymentService(['Stopped'])
        with pytest.raises(DeploymentFailedError, match="status=Stopped"):
            make_driver(make_config(), service, workspace_dir, clock).deploy()

    def test_timeout_attaches_status_snapshot(self, workspace_dir, clock):
        service = FakeDeploymentService(['InProgress'])
        config = make_config(wait={'timeout_minutes': 1, 'poll_seconds': 20})

        with pytest.raises(WaitTimeoutError) as exc_info:
            make_driver(config, service, workspace_dir, clock).deploy()

        assert 'final state: status=InProgress' in str(exc_info.value)
        assert exc_info.value.context.deployment_id == 'd-TEST123'

    def test_status_read_errors_retried_then_propagated(self, workspace_dir, clock):
        service = FakeDeploymentService(['InProgress'])
        service.status_error = ExternalCommandError("throttled", command='codedeploy:get_deployment')

        with pytest.raises(ExternalCommandError):
            make_driver(make_config(), service, workspace_dir, clock).deploy()
        assert service.call_names().count('get_deployment') == 3


class TestDeployValidation:
    """Test that configuration is checked before any side effect."""

    def test_missing_keys_reported_together(self, workspace_dir, clock):
        service = FakeDeploymentService()
        config = BlueGreenDeployConfig(aws={'region': ''})

        with pytest.raises(ValidationError) as exc_info:
            make_driver(config, service, workspace_dir, clock).deploy()

        message = str(exc_info.value)
        assert 'aws.region' in message
        assert 'codedeploy.application_name' in message
        assert 'codedeploy.deployment_group' in message
        assert service.calls == []

    def test_s3_requires_key_prefix(self, workspace_dir, clock):
        service = FakeDeploymentService()
        config = make_config(revision={'type': 's3', 'bucket': 'artifacts'})
        with pytest.raises(ValidationError, match="revision.key_prefix"):
            make_driver(config, service, workspace_dir, clock, object_store=FakeObjectStore()).deploy()
        assert service.calls == []

    def test_unknown_revision_type(self, workspace_dir, clock):
        service = FakeDeploymentService()
        config = make_config(revision={'type': 'git'})
        with pytest.raises(UnsupportedModeError, match="revision.type='git'"):
            make_driver(config, service, workspace_dir, clock).deploy()
        assert service.calls == []

    def test_s3_without_object_store(self, workspace_dir, clock):
        service = FakeDeploymentService()
        config = make_config(revision={'bucket': 'artifacts', 'key_prefix': 'releases'})
        with pytest.raises(ValidationError, match="object store"):
            make_driver(config, service, workspace_dir, clock).deploy()
        assert service.calls == []

    def test_missing_workspace_file_before_submit(self, tmp_path, clock):
        service = FakeDeploymentService()
        with pytest.raises(ValidationError, match="Missing appspec.yaml"):
            make_driver(make_config(), service, tmp_path, clock).deploy()
        assert service.calls == []

    def test_poll_longer_than_timeout_rejected_before_submit(self, workspace_dir, clock):
        service = FakeDeploymentService(['InProgress'])
        wait = WaitConfig.model_construct(timeout_minutes=0.1, poll_seconds=20)
        config = make_config().model_copy(update={'wait': wait})

        with pytest.raises(ValidationError, match="deploy.wait: poll_interval"):
            make_driver(config, service, workspace_dir, clock).deploy()
        assert service.calls == []

"""Tests for manifest templates, image injection and bundles."""

import json
import logging
import zipfile

import pytest

from rollout_pilot.deployment.manifests import (
    TemplateLoader,
    Workspace,
    apply_replacements,
    build_bundle,
    content_sha256,
    inject_image,
    materialize_templates,
    parse_task_definition,
)
from rollout_pilot.utils.errors import ValidationError


TASKDEF = {
    "family": "web",
    "containerDefinitions": [
        {"name": "sidecar", "image": "envoy:1"},
        {"name": "app", "image": "web:1"},
    ],
}


class TestInjectImage:
    """Test image promotion into a task definition."""

    def test_named_container_updated(self):
        updated = inject_image(TASKDEF, "web:2", "app")
        assert updated["containerDefinitions"][1]["image"] == "web:2"
        assert updated["containerDefinitions"][0]["image"] == "envoy:1"
        assert TASKDEF["containerDefinitions"][1]["image"] == "web:1"

    def test_missing_container_falls_back_to_first(self, caplog):
        with caplog.at_level(logging.WARNING, logger='rollout_pilot.deployment.manifests'):
            updated = inject_image(TASKDEF, "web:2", "missing")

        assert updated["containerDefinitions"][0]["image"] == "web:2"
        assert updated["containerDefinitions"][1]["image"] == "web:1"
        assert any("containerName='missing' not found" in r.getMessage() for r in caplog.records)

    def test_other_fields_untouched(self):
        updated = inject_image(TASKDEF, "web:2", "app")
        assert updated["family"] == "web"
        assert updated["containerDefinitions"][1]["name"] == "app"

    @pytest.mark.parametrize("taskdef", [{}, {"containerDefinitions": []}, {"containerDefinitions": "x"}])
    def test_missing_container_definitions(self, taskdef):
        with pytest.raises(ValidationError, match="containerDefinitions"):
            inject_image(taskdef, "web:2")


class TestTemplates:
    """Test materializing the appspec/taskdef pair."""

    def test_sample_resources_rendered_into_workspace(self, tmp_path):
        workspace = Workspace(str(tmp_path))
        appspec, taskdef = materialize_templates(
            workspace,
            TemplateLoader(),
            appspec_path='appspec.yaml',
            taskdef_path='taskdef.json',
            use_sample_resources=True,
            replacements={'PLACEHOLDER_FAMILY': 'orders', 'PLACEHOLDER_REGION': 'eu-west-1'}
        )

        assert 'AWS::ECS::Service' in appspec
        document = json.loads(taskdef)
        assert document['family'] == 'orders'
        assert 'PLACEHOLDER_REGION' not in taskdef
        assert (tmp_path / 'taskdef.json').read_text(encoding='utf-8') == taskdef

    def test_missing_workspace_file_named(self, tmp_path):
        (tmp_path / 'appspec.yaml').write_text('version: 0.0\n', encoding='utf-8')
        with pytest.raises(ValidationError, match="Missing taskdef.json"):
            materialize_templates(Workspace(str(tmp_path)), TemplateLoader(), 'appspec.yaml', 'taskdef.json')

    def test_existing_workspace_files_used(self, workspace_dir):
        appspec, taskdef = materialize_templates(
            Workspace(str(workspace_dir)), TemplateLoader(), 'appspec.yaml', 'taskdef.json'
        )
        assert appspec.startswith('version: 0.0')
        assert json.loads(taskdef)['family'] == 'web'

    def test_unknown_template(self):
        with pytest.raises(ValidationError, match="Template resource not found"):
            TemplateLoader().load('sample/missing.yaml')

    def test_replacements_are_literal(self):
        assert apply_replacements("a.b a.b", {'a.b': 'x'}) == "x x"

    def test_invalid_task_definition_json(self):
        with pytest.raises(ValidationError, match="not valid JSON"):
            parse_task_definition("{nope", 'taskdef.json')


class TestBundle:
    """Test revision bundle packaging."""

    def test_bundle_contains_manifests(self, workspace_dir):
        bundle = build_bundle(
            Workspace(str(workspace_dir)), 'codedeploy-revision-job-7.zip', 'appspec.yaml', 'taskdef.json'
        )
        with zipfile.ZipFile(bundle.path) as zipf:
            assert sorted(zipf.namelist()) == ['appspec.yaml', 'taskdef.json']
        assert bundle.name == 'codedeploy-revision-job-7.zip'
        assert len(bundle.sha256) == 64

    def test_bundle_identity_is_stable(self, workspace_dir):
        workspace = Workspace(str(workspace_dir))
        first = build_bundle(workspace, 'bundle.zip', 'appspec.yaml', 'taskdef.json')
        second = build_bundle(workspace, 'bundle.zip', 'appspec.yaml', 'taskdef.json')
        assert first.sha256 == second.sha256

    def test_content_sha256(self):
        assert content_sha256('') == 'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'

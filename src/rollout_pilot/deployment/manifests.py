"""Manifest templates, image promotion and revision bundles."""

import copy
import hashlib
import json
import zipfile
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from rollout_pilot.deployment.models import RevisionBundle
from rollout_pilot.utils.errors import ValidationError
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)


class TemplateLoader:
    """Loads bundled templates keyed by a logical path such as ``sample/taskdef.json``."""

    def __init__(self, package: str = 'rollout_pilot.resources'):
        self.package = package

    def load(self, logical_path: str) -> str:
        resource = resources.files(self.package).joinpath(*logical_path.split('/'))
        if not resource.is_file():
            raise ValidationError(f"Template resource not found: {logical_path}")
        return resource.read_text(encoding='utf-8')


class Workspace:
    """Named files inside the pipeline's working directory."""

    def __init__(self, root: str = '.'):
        self.root = Path(root)

    def path(self, name: str) -> Path:
        return self.root / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def read_text(self, name: str) -> str:
        return self.path(name).read_text(encoding='utf-8')

    def write_text(self, name: str, text: str) -> None:
        target = self.path(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding='utf-8')


def apply_replacements(text: str, replacements: Mapping[str, str]) -> str:
    """Literal token replacement, applied in mapping order."""
    for token, value in replacements.items():
        text = text.replace(str(token), str(value))
    return text


def materialize_templates(
    workspace: Workspace,
    loader: TemplateLoader,
    appspec_path: str,
    taskdef_path: str,
    use_sample_resources: bool = False,
    sample_appspec: str = 'sample/appspec.yaml',
    sample_taskdef: str = 'sample/taskdef.json',
    replacements: Mapping[str, str] = None
) -> Tuple[str, str]:
    """Make sure the appspec/taskdef pair exists in the workspace.

    With ``use_sample_resources`` the bundled templates are rendered with
    ``replacements`` and written to the workspace; otherwise both files must
    already be there.

    Returns:
        The appspec and taskdef text as found in the workspace

    Raises:
        ValidationError: If a required workspace file is missing
    """
    if use_sample_resources:
        logger.info("useSampleResources=true → loading templates from bundled resources")
        appspec = apply_replacements(loader.load(sample_appspec), replacements or {})
        taskdef = apply_replacements(loader.load(sample_taskdef), replacements or {})
        workspace.write_text(appspec_path, appspec)
        workspace.write_text(taskdef_path, taskdef)
        logger.info(f"Wrote templates to workspace: {appspec_path}, {taskdef_path}")
        return appspec, taskdef

    logger.info("useSampleResources=false → expecting appspec/taskdef already exist in workspace")
    for name in (appspec_path, taskdef_path):
        if not workspace.exists(name):
            raise ValidationError(f"Missing {name} in workspace {workspace.root}")
    return workspace.read_text(appspec_path), workspace.read_text(taskdef_path)


def parse_task_definition(text: str, source: str = 'taskdef.json') -> Dict[str, Any]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{source} is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise ValidationError(f"{source} must contain a JSON object")
    return document


def inject_image(task_definition: Dict[str, Any], image: str, container_name: str = 'app') -> Dict[str, Any]:
    """Return a copy of ``task_definition`` with one container's image replaced.

    The container named ``container_name`` receives the image; when no
    container has that name the first one does, and a warning is logged.

    Raises:
        ValidationError: If ``containerDefinitions`` is missing or empty
    """
    updated = copy.deepcopy(task_definition)
    containers = updated.get('containerDefinitions')
    if not isinstance(containers, list) or not containers:
        raise ValidationError("taskdef.json missing containerDefinitions[]")

    target_name = container_name or 'app'
    target = next(
        (c for c in containers if isinstance(c, dict) and str(c.get('name')) == target_name),
        None
    )
    if target is None:
        logger.warning(
            f"containerName='{target_name}' not found. Falling back to first container definition."
        )
        target = containers[0]
        if not isinstance(target, dict):
            raise ValidationError("taskdef.json containerDefinitions[0] is not an object")

    target['image'] = image
    logger.info(f"Injected image into container '{target.get('name')}': {image}")
    return updated


def render_task_definition(task_definition: Dict[str, Any]) -> str:
    return json.dumps(task_definition, indent=2) + '\n'


def content_sha256(content: str) -> str:
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def build_bundle(workspace: Workspace, bundle_name: str, appspec_path: str, taskdef_path: str) -> RevisionBundle:
    """Zip the manifest pair into the workspace.

    Entries are written with a fixed timestamp so identical manifests give an
    identical bundle checksum.
    """
    bundle_path = workspace.path(bundle_name)
    if bundle_path.exists():
        bundle_path.unlink()

    with zipfile.ZipFile(bundle_path, 'w', zipfile.ZIP_DEFLATED) as zipf:
        for name in (appspec_path, taskdef_path):
            info = zipfile.ZipInfo(Path(name).as_posix(), date_time=(1980, 1, 1, 0, 0, 0))
            info.compress_type = zipfile.ZIP_DEFLATED
            zipf.writestr(info, workspace.path(name).read_bytes())

    digest = hashlib.sha256(bundle_path.read_bytes()).hexdigest()
    logger.info(f"Built revision bundle {bundle_name} ({bundle_path.stat().st_size} bytes, sha256={digest[:12]})")
    return RevisionBundle(path=str(bundle_path), name=bundle_name, sha256=digest)

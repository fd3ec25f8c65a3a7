"""YAML configuration parser for rollout-pilot."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..utils.errors import ValidationError
from .models import BlueGreenDeployConfig, K8sRollbackConfig, RollbackConfig

M = TypeVar("M", bound=BaseModel)

SECTIONS: Dict[str, Type[BaseModel]] = {
    "deploy": BlueGreenDeployConfig,
    "rollback": RollbackConfig,
    "k8s_rollback": K8sRollbackConfig,
}


class ConfigValidationError(ValidationError):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.errors = errors or []
        super().__init__(message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  • {location}: {msg}")

        return "\n".join(error_lines)


def _collect(section: str, error: PydanticValidationError) -> List[Dict]:
    return [
        {"loc": [section] + list(item["loc"]), "msg": item["msg"]}
        for item in error.errors()
    ]


def merge_overrides(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Apply explicit override fields on top of a section's raw values.

    Keys may be dotted (``aws.region``) to reach one level into a sub-section.
    ``None`` values are ignored so unset CLI flags never clobber the file.
    """
    merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in base.items()}
    for key, value in overrides.items():
        if value is None:
            continue
        if "." in key:
            parent, child = key.split(".", 1)
            sub = merged.get(parent)
            merged[parent] = dict(sub) if isinstance(sub, dict) else {}
            merged[parent][child] = value
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration manager for rollout-pilot."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to rollout.yaml; None means defaults only
        """
        self.config_path = Path(config_path) if config_path else None
        self.data: Dict[str, Any] = {}

    def load(self, required: bool = False) -> "Config":
        """Load and validate configuration from YAML file.

        Args:
            required: Raise if the file does not exist

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If the file is required and missing
        """
        if self.config_path is None or not self.config_path.exists():
            if required:
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
            self.data = {}
            return self

        try:
            with open(self.config_path, "r") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(self.data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        errors = self.validate()
        if errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(errors)} error(s)", errors
            )

        return self

    def validate(self) -> List[Dict]:
        """Validate every known section against its schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for key in self.data:
            if key not in SECTIONS:
                errors.append({"loc": [key], "msg": f"Unknown section; expected one of {sorted(SECTIONS)}"})

        for name, model in SECTIONS.items():
            raw = self.data.get(name)
            if raw is None:
                continue
            if not isinstance(raw, dict):
                errors.append({"loc": [name], "msg": "Section must be a mapping"})
                continue
            try:
                model(**raw)
            except PydanticValidationError as e:
                errors.extend(_collect(name, e))
        return errors

    def section(self, name: str, overrides: Optional[Dict[str, Any]] = None) -> BaseModel:
        """Materialize a section: defaults, then file values, then overrides.

        Args:
            name: deploy, rollback or k8s_rollback
            overrides: Explicit override fields (dotted keys allowed)

        Returns:
            Validated section model
        """
        model = SECTIONS[name]
        raw = merge_overrides(self.data.get(name) or {}, overrides or {})
        try:
            return model(**raw)
        except PydanticValidationError as e:
            raise ConfigValidationError(
                f"Configuration for '{name}' is invalid", _collect(name, e)
            )

    def deploy(self, **overrides: Any) -> BlueGreenDeployConfig:
        return self.section("deploy", overrides)

    def rollback(self, **overrides: Any) -> RollbackConfig:
        return self.section("rollback", overrides)

    def k8s_rollback(self, **overrides: Any) -> K8sRollbackConfig:
        return self.section("k8s_rollback", overrides)

"""
Configuration file loading.

Loads ``config.yaml`` from the project directory, overlays
``config.{env}.yaml`` when present, then resolves placeholders.
"""

from pathlib import Path
from typing import Any

import yaml

from feedmover.config.resolver import resolve_config

# Sections that must be mappings when present
_MAPPING_SECTIONS = (
    "staging",
    "archive",
    "run_log",
    "lock",
    "run",
    "logging",
    "notify",
    "credentials",
    "environments",
    "connections",
    "destinations",
    "workflow",
)
# Sections that must be lists when present
_LIST_SECTIONS = ("sources", "feeds")


class Config:
    """Merged configuration with dot-path lookup."""

    def __init__(self, data: dict[str, Any]):
        self.data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        keys = key.split(".")
        value = self.data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def section(self, key: str) -> dict[str, Any]:
        """Get a mapping section, empty dict when absent."""
        value = self.get(key)
        return value if isinstance(value, dict) else {}

    def validate(self) -> None:
        """Validate configuration structure (types of top-level sections)."""
        if not isinstance(self.data, dict):
            raise ValueError(f"Configuration must be a dictionary/mapping, got {type(self.data).__name__}")

        errors = []
        for name in _MAPPING_SECTIONS:
            value = self.data.get(name)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{name}' must be a dictionary, got {type(value).__name__}")
        for name in _LIST_SECTIONS:
            value = self.data.get(name)
            if value is not None and not isinstance(value, list):
                errors.append(f"Configuration '{name}' must be a list, got {type(value).__name__}")

        if errors:
            raise ValueError("\n".join(errors))


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load feedmover configuration.

    Args:
        project_path: Path to project root (default: current directory)
        env: Environment class (dev, test, prod); selects the overlay file
            and the value substituted for ``{env}``

    Returns:
        Config instance with merged configuration
    """
    if project_path is None:
        project_path = Path.cwd()

    base_config_path = project_path / "config.yaml"
    if not base_config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a config.yaml file in your project root"
        )
    if not base_config_path.is_file():
        raise FileNotFoundError(f"Configuration path is not a file: {base_config_path}")

    config_data = _read_yaml(base_config_path)

    if env:
        env_config_path = project_path / f"config.{env}.yaml"
        if env_config_path.exists():
            env_data = _read_yaml(env_config_path)
            _merge_dict(config_data, env_data)

    config_data = resolve_config(config_data, env or "dev")
    return Config(config_data)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            try:
                return yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                if hasattr(e, "problem_mark"):
                    mark = e.problem_mark
                    raise ValueError(
                        f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                        f"  {e}\n"
                        f"  File: {path}\n"
                        f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes"
                    ) from e
                raise ValueError(f"Error parsing {path.name}: {e}\n  File: {path}") from e
    except PermissionError as e:
        raise PermissionError(
            f"Permission denied reading {path.name}: {path}\n"
            f"  Error: {e}\n"
            f"  Suggestion: Check file permissions"
        ) from e


def _merge_dict(base: dict, override: dict):
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value

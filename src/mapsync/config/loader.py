"""
Configuration file loading.

Loads ``config.yaml`` (plus an optional ``config.{env}.yaml`` overlay) and
exposes it through a small dict-like ``Config`` wrapper.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from mapsync.config.resolver import resolve_config

BACKEND_TYPES = ("sftp", "filesystem")


class Config:
    """mapsync configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        # Convenience properties for common config sections
        self.backend = data.get("backend", {}) or {}
        self.rules = data.get("rules", []) or []
        self.file_types = data.get("file_types", []) or []
        self.schedules = data.get("schedules", {}) or {}

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

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if isinstance(key, str) and "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        if isinstance(key, str) and "." in key:
            value = self.data
            for k in key.split("."):
                if not isinstance(value, dict) or k not in value:
                    return False
                value = value[k]
            return True
        return key in self.data

    def __iter__(self) -> "Iterator[str]":
        """Iterate over top-level keys."""
        return iter(self.data)

    def keys(self):
        return self.data.keys()

    def items(self):
        return self.data.items()

    def validate(self) -> None:
        """Validate configuration structure.

        Only the shape of each section is checked here; individual rules are
        validated when they are loaded so that one bad rule cannot take the
        whole service down.
        """
        errors = []

        if not isinstance(self.data, dict):
            errors.append(f"Configuration must be a dictionary/mapping, got {type(self.data).__name__}")
            raise ValueError("\n".join(errors))

        backend = self.data.get("backend")
        if backend is not None:
            if not isinstance(backend, dict):
                errors.append(f"Configuration 'backend' must be a dictionary, got {type(backend).__name__}")
            elif backend.get("type", "sftp") not in BACKEND_TYPES:
                errors.append(
                    f"Configuration 'backend.type' must be one of {', '.join(BACKEND_TYPES)}, "
                    f"got {backend.get('type')!r}"
                )

        for section, expected in (("rules", list), ("file_types", list), ("schedules", dict), ("sync", dict)):
            value = self.data.get(section)
            if value is not None and not isinstance(value, expected):
                errors.append(
                    f"Configuration '{section}' must be a {expected.__name__}, got {type(value).__name__}"
                )

        sync = self.data.get("sync") or {}
        if isinstance(sync, dict):
            workers = sync.get("max_workers", 4)
            if not isinstance(workers, int) or workers < 1:
                errors.append(f"Configuration 'sync.max_workers' must be a positive integer, got {workers!r}")

        if errors:
            raise ValueError("\n".join(errors))


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load mapsync configuration.

    Args:
        project_path: Directory holding config.yaml (default: current directory)
        env: Environment name; ``config.{env}.yaml`` is merged over the base file

    Returns:
        Config instance with merged, environment-resolved configuration
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
            _merge_dict(config_data, _read_yaml(env_config_path))

    config_data = resolve_config(config_data)
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

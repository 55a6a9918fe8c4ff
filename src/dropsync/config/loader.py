"""
Configuration file loading.

Loads ``dropsync.yaml`` (and an optional ``dropsync.<env>.yaml`` overlay),
then resolves environment placeholders and overrides.
"""

from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml

from dropsync.config.resolver import resolve_config
from dropsync.exceptions import ConfigurationError

DEFAULT_CONFIG_NAME = "dropsync.yaml"


class Config:
    """dropsync configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any], source: Path | None = None):
        self.data = data
        self.source = source

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def section(self, name: str) -> dict[str, Any]:
        """Top-level section as a dict (empty if missing or not a mapping)."""
        value = self.data.get(name)
        return value if isinstance(value, dict) else {}

    def __getitem__(self, key: str) -> Any:
        if "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        if "." in key:
            value: Any = self.data
            for k in key.split("."):
                if not isinstance(value, dict) or k not in value:
                    return False
                value = value[k]
            return True
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)


def load_config(
    config_path: Path | str | None = None,
    env: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """
    Load dropsync configuration.

    Args:
        config_path: Config file, or a directory containing dropsync.yaml
            (default: current directory)
        env: Environment name; ``dropsync.<env>.yaml`` next to the base
            file is merged over it when present
        environ: Environment mapping for substitution (default: os.environ)

    Returns:
        Config instance with merged configuration

    Raises:
        ConfigurationError: If the file is missing, unreadable or not valid YAML
    """
    path = Path(config_path) if config_path is not None else Path.cwd()
    if path.is_dir():
        path = path / DEFAULT_CONFIG_NAME

    config_data = _read_yaml(path)

    if env:
        env_path = path.with_name(f"{path.stem}.{env}{path.suffix}")
        if env_path.exists():
            _merge_dict(config_data, _read_yaml(env_path))

    return Config(resolve_config(config_data, environ), source=path)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}\n  Suggestion: Create a {DEFAULT_CONFIG_NAME} file"
        )
    if not path.is_file():
        raise ConfigurationError(f"Configuration path is not a file: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except PermissionError as e:
        raise ConfigurationError(f"Permission denied reading {path}: {e}") from e
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise ConfigurationError(
            f"Error parsing {path.name}{where}:\n"
            f"  {e}\n"
            f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes"
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}: {path}")
    return data


def _merge_dict(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value

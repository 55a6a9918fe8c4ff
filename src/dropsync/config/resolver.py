"""
Configuration resolution and environment variable substitution.

Substitutes ``${VAR}`` / ``${VAR:-default}`` placeholders and applies
``DROPSYNC_<SECTION>__<KEY>`` environment overrides.
"""

import os
import re
from collections.abc import Mapping
from typing import Any

ENV_PREFIX = "DROPSYNC_"

_PLACEHOLDER = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def resolve_config(config_data: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Resolve configuration against the environment.

    Args:
        config_data: Parsed configuration dictionary
        environ: Environment mapping (default: os.environ)

    Returns:
        Resolved configuration (a new dictionary)
    """
    environ = os.environ if environ is None else environ
    resolved = _resolve_value(config_data, environ)
    apply_env_overrides(resolved, environ)
    return resolved


def _resolve_value(value: Any, environ: Mapping[str, str]) -> Any:
    """Recursively resolve values in configuration."""
    if isinstance(value, dict):
        return {k: _resolve_value(v, environ) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_value(item, environ) for item in value]
    elif isinstance(value, str):
        return _PLACEHOLDER.sub(lambda m: _lookup(m, environ), value)
    else:
        return value


def _lookup(match: re.Match, environ: Mapping[str, str]) -> str:
    name, default = match.group(1), match.group(2)
    if name in environ:
        return environ[name]
    if default is not None:
        return default
    # Leave unresolved placeholders in place; validation reports them
    return match.group(0)


def apply_env_overrides(config_data: dict[str, Any], environ: Mapping[str, str]) -> None:
    """
    Apply ``DROPSYNC_SFTP__PASSWORD=...`` style overrides in place.

    Double underscores separate nesting levels; keys are lower-cased.
    """
    for var, value in environ.items():
        if not var.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in var[len(ENV_PREFIX) :].split("__") if part]
        if len(path) < 2:
            continue
        node = config_data
        for key in path[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[path[-1]] = value

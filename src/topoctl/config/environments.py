"""Built-in environment presets and the closed environment-key lookup.

``resolve_environment`` is the only way a composer obtains a
:class:`StackConfig`; every failure surfaces as ``ConfigurationError``
before a single resource is declared.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from topoctl.config.models import StackConfig
from topoctl.domain.errors import ConfigurationError

ENVIRONMENTS: dict[str, dict[str, Any]] = {
    "dev": {
        "tags": {"Environment": "Development", "Project": "TodoApp"},
        "database": {"name": "todo_db", "username": "admin", "port": 3306},
        "backend": {
            "container_port": 8080,
            "desired_count": 1,
            "cpu_units": 256,
            "memory_mib": 512,
            "service_name": "todo-backend-service",
        },
    },
    "prd": {
        "tags": {"Environment": "Development", "Project": "TodoApp"},
        "database": {"name": "todo_db", "username": "admin", "port": 3306},
        "backend": {
            "container_port": 8080,
            "desired_count": 1,
            "cpu_units": 256,
            "memory_mib": 512,
            "service_name": "todo-backend-service",
        },
    },
}

# Switches the backend to target-tracking autoscaling when merged over a preset.
AUTOSCALING_OVERRIDE: dict[str, Any] = {
    "backend": {"scaling": {"min_capacity": 1, "max_capacity": 4}},
}


def environment_keys() -> list[str]:
    return sorted(ENVIRONMENTS)


def resolve_environment(
    env_key: str,
    overrides: Mapping[str, Any] | None = None,
) -> StackConfig:
    """Validate the preset for *env_key*, deep-merged with *overrides*.

    Raises:
        ConfigurationError: unknown key, or a merged record that does not
            validate.
    """
    if env_key not in ENVIRONMENTS:
        raise ConfigurationError(
            f"Unsupported environment {env_key!r} (expected one of {environment_keys()})"
        )
    overrides = overrides or {}
    base = _without_replaced_scaling_mode(ENVIRONMENTS[env_key], overrides)
    return build_stack_config(deep_merge(base, overrides), label=env_key)


_FIXED_KEYS = ("desired_count", "desiredCount")
_SCALING_KEYS = ("scaling", "scaling_min_capacity", "scaling_max_capacity")


def _without_replaced_scaling_mode(
    preset: Mapping[str, Any], overrides: Mapping[str, Any]
) -> Mapping[str, Any]:
    """Drop the preset's scaling mode when the overrides name the other one.

    An override that names both modes is left alone so validation rejects it.
    """
    backend = overrides.get("backend")
    if not isinstance(backend, Mapping):
        return preset
    fixed = any(k in backend for k in _FIXED_KEYS)
    scaled = any(k in backend for k in _SCALING_KEYS)
    if fixed == scaled:
        return preset
    dropped = _SCALING_KEYS if fixed else _FIXED_KEYS
    trimmed = {k: v for k, v in preset["backend"].items() if k not in dropped}
    return {**preset, "backend": trimmed}


def build_stack_config(raw: Mapping[str, Any], *, label: str = "config") -> StackConfig:
    """Validate a raw configuration record."""
    try:
        return StackConfig.model_validate(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration for {label!r}: {problems}") from exc


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* onto a copy of *base*.

    Nested mappings merge; any other value (including None) replaces.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged

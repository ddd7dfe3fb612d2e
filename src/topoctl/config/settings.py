"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``TOPOCTL_*`` prefix, ``__`` for nesting
  3. TOML file    — ``topoctl.toml`` discovered via walk-up
  4. Code defaults

The ``[environments.<key>]`` tables hold per-environment overrides that
are deep-merged over the built-in presets at composition time.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from topoctl.config.discovery import find_config
from topoctl.config.models import SuppressionSettings


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``topoctl.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                import click

                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


_tls = threading.local()


class TopoSettings(BaseSettings):
    """Everything the bootstrap layer hands to the composer.

    Attributes:
        app_name: Prefix for resource names; the stack is ``<app_name>-stack``.
        env: Environment key selecting a preset (``dev`` or ``prd``).
        account: Target account id, if known.
        region: Target region.
        environments: Per-environment override tables from TOML.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "TOPOCTL_",
        "env_nested_delimiter": "__",
    }

    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- Deployment context ---
    app_name: str = "todo-app"
    env: str = "prd"
    account: str | None = None
    region: str = "ap-northeast-1"

    # --- TOML sections ---
    environments: dict[str, dict[str, Any]] = Field(default_factory=dict)
    suppressions: SuppressionSettings = Field(default_factory=SuppressionSettings)

    @property
    def stack_name(self) -> str:
        return f"{self.app_name}-stack"

    def overrides_for(self, env_key: str) -> dict[str, Any]:
        return dict(self.environments.get(env_key, {}))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        start_dir: Path | None = None,
        **cli_flags: Any,
    ) -> TopoSettings:
        """Discover ``topoctl.toml`` and merge CLI flags on top.

        Flags passed as None are dropped so lower-priority sources apply.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(start_dir)

        flags = {k: v for k, v in cli_flags.items() if v is not None}
        _tls.toml_path = toml_path
        try:
            return cls(config_path=toml_path, **flags)
        finally:
            _tls.toml_path = None

"""Jinja2 loading for packaged source templates (canary scripts)."""

from __future__ import annotations

from pathlib import Path

from jinja2 import BaseLoader, ChoiceLoader, Environment, FileSystemLoader, PackageLoader


def build_template_environment(group: str, *, override_root: Path | None = None) -> Environment:
    """Build a Jinja2 environment with project overrides before packaged defaults.

    Overrides are looked up in ``<override_root>/<group>/`` and then
    ``<override_root>/``.
    """
    loaders: list[BaseLoader] = []
    if override_root is not None:
        loaders.append(FileSystemLoader([str(override_root / group), str(override_root)]))

    loaders.append(PackageLoader("topoctl", f"templates/{group}"))
    return Environment(loader=ChoiceLoader(loaders), keep_trailing_newline=True)


def render_canary_script(
    *,
    url_variable: str = "SITE_URL",
    timeout_ms: int = 30000,
    override_root: Path | None = None,
) -> str:
    env = build_template_environment("canary", override_root=override_root)
    return env.get_template("index.js.j2").render(url_variable=url_variable, timeout_ms=timeout_ms)

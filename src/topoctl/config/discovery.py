"""Walk-up discovery of ``topoctl.toml``.

``TOPOCTL_CONFIG`` wins over discovery; otherwise the nearest
``topoctl.toml`` at or above the start directory is used.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "topoctl.toml"
CONFIG_ENV_VAR = "TOPOCTL_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file path, or None if there is none."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        return p if p.is_file() else None

    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent

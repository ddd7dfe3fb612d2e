"""BaseService — shared foundation for topoctl services.

Every service receives the resolved :class:`TopoSettings` and, optionally,
a loaded :class:`PluginManager` at construction time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from topoctl.config.settings import TopoSettings
    from topoctl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class BaseService:
    """Abstract base for all service-layer classes."""

    def __init__(self, settings: TopoSettings, plugins: PluginManager | None = None) -> None:
        self._settings = settings
        self._plugins = plugins

    def _env_key(self, env_key: str | None) -> str:
        return env_key if env_key is not None else self._settings.env

    def _dispatch_event(self, hook_name: str, payload: dict[str, Any], warnings: list[str]) -> None:
        """Call a plugin hook. No-op without a plugin manager.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        if self._plugins is None:
            return
        try:
            getattr(self._plugins.hook, hook_name)(**payload)
        except Exception:
            logger.debug("Plugin hook failed for %s", hook_name, exc_info=True)
            warnings.append(f"Plugin hook failed for {hook_name}")

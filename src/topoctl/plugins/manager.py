"""Plugin discovery and loading.

Discovery: entry points in the ``topoctl.plugins`` group via pluggy's
setuptools entry-point loader. Built-ins and tests register instances
directly.
"""

from __future__ import annotations

import inspect
import logging

import pluggy
from pydantic import ValidationError

from topoctl.domain.suppressions import SuppressionRule
from topoctl.plugins.hookspecs import TopoctlHookSpec

PROJECT_NAME = "topoctl"
ENTRY_POINT_GROUP = "topoctl.plugins"

logger = logging.getLogger(__name__)


class PluginManager:
    """Manages plugin discovery, loading, and hook dispatch."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(TopoctlHookSpec)
        self._loaded: bool = False

    def discover_and_load(self) -> list[str]:
        """Load entry-point plugins; returns the names of all registered plugins."""
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._normalize_plugin_instances()
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance directly (e.g. built-in plugins)."""
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    @property
    def is_loaded(self) -> bool:
        """Whether discover_and_load() has been called."""
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def get_plugins(self) -> list[object]:
        return list(self._pm.get_plugins())

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    def collect_suppressions(self, warnings: list[str]) -> list[SuppressionRule]:
        """Gather suppression rules from every plugin.

        A plugin that raises or returns something other than rules is
        skipped with a warning.
        """
        rules: list[SuppressionRule] = []
        for plugin in self._pm.get_plugins():
            plugin_name = self._pm.get_name(plugin) or plugin.__class__.__name__
            hook = getattr(plugin, "register_suppressions", None)
            if hook is None:
                continue
            try:
                contributed = hook()
            except Exception:
                logger.warning(
                    "Plugin %s failed to register suppressions", plugin_name, exc_info=True
                )
                warnings.append(f"Plugin {plugin_name} failed to register suppressions")
                continue
            if contributed is None:
                continue
            for entry in contributed:
                try:
                    rules.append(
                        entry
                        if isinstance(entry, SuppressionRule)
                        else SuppressionRule.model_validate(entry)
                    )
                except ValidationError:
                    logger.warning("Skipping invalid suppression from plugin %s", plugin_name)
                    warnings.append(f"Plugin {plugin_name} returned an invalid suppression")
        return rules

    def _normalize_plugin_instances(self) -> None:
        """Replace registered plugin classes with instantiated objects.

        Entry-point loading may register a plugin class directly. Hook dispatch
        against class objects leaves ``self`` unbound and fails at runtime.
        """
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin) or not self._has_hook_impls(plugin):
                continue

            plugin_name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning(
                    "Failed to instantiate entry-point plugin %s",
                    plugin_name,
                    exc_info=True,
                )
                continue

            self._pm.register(instance, name=plugin_name)
            logger.debug("Instantiated entry-point plugin: %s", plugin_name)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """Check whether *cls* has any methods decorated with ``@hookimpl``.

        Pluggy's ``HookimplMarker("topoctl")`` sets a ``topoctl_impl``
        attribute on decorated methods.
        """
        for name in dir(cls):
            if name.startswith("_"):
                continue
            method = getattr(cls, name, None)
            if callable(method) and getattr(method, "topoctl_impl", None):
                return True
        return False

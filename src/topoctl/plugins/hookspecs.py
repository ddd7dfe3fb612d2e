"""Pluggy hook specifications for topoctl synthesis extensions.

One setup-time hook lets plugins contribute suppression rules; one
post-synthesis hook receives the stack outputs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from topoctl.domain.suppressions import SuppressionRule

hookspec = pluggy.HookspecMarker("topoctl")
hookimpl = pluggy.HookimplMarker("topoctl")


class TopoctlHookSpec:
    """Hook specifications for the topoctl plugin system."""

    @hookspec
    def register_suppressions(self) -> list[SuppressionRule] | None:
        """Return extra suppression rules applied after the built-in catalogues."""

    @hookspec
    def post_synth(
        self,
        stack_name: str,
        env_key: str,
        outputs: dict[str, Any],
    ) -> None:
        """Called after a successful synthesis with the named output values."""

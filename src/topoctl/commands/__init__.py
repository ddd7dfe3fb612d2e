"""Subcommand modules for topoctl.

Provides register_commands() which uses deferred imports to keep
``topoctl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all standalone commands on the root CLI group."""
    from topoctl.commands.nag import nag
    from topoctl.commands.route import route
    from topoctl.commands.synth import synth

    cli.add_command(synth)
    cli.add_command(route)
    cli.add_command(nag)

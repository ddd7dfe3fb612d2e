"""Command: show which origin serves a request path."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from topoctl.commands._base import TopoCommand

if TYPE_CHECKING:
    from topoctl.commands._context import AppContext


@click.command(
    cls=TopoCommand,
    examples="""\
  topoctl route /api/todos
  topoctl route /index.html --env dev
  topoctl route /missing --status 404""",
)
@click.argument("path")
@click.option("--env", "env_key", default=None, help="Environment key (default from settings).")
@click.option(
    "--status",
    type=click.IntRange(400, 599),
    default=None,
    help="Also show how an origin error status is rewritten.",
)
@click.pass_obj
def route(app: AppContext, path: str, env_key: str | None, status: int | None) -> None:
    """Resolve PATH against the edge routing rules."""
    from topoctl.services.synth import SynthService

    app.emit(SynthService(app.settings, app.plugins).route(path, env_key, status=status))

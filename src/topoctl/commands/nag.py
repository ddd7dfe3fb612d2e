"""Command: compliance checks with suppressions applied."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from topoctl.commands._base import TopoCommand

if TYPE_CHECKING:
    from topoctl.commands._context import AppContext


@click.command(
    cls=TopoCommand,
    examples="""\
  topoctl nag
  topoctl nag --env dev
  topoctl -v nag --env prd
  topoctl nag --no-fail""",
)
@click.option("--env", "env_key", default=None, help="Environment key (default from settings).")
@click.option("--no-fail", is_flag=True, help="Exit 0 even when unsuppressed findings remain.")
@click.pass_obj
def nag(app: AppContext, env_key: str | None, no_fail: bool) -> None:
    """Report findings that no suppression covers."""
    from topoctl.services.synth import SynthService

    result = SynthService(app.settings, app.plugins).nag(env_key)
    failing = result.ok and result.data.get("unsuppressed", 0) > 0 and not no_fail
    app.emit(result, exit_code=1 if failing else 0)

"""Command: synthesize the template for one environment."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from topoctl.commands._base import TopoCommand

if TYPE_CHECKING:
    from topoctl.commands._context import AppContext


@click.command(
    cls=TopoCommand,
    examples="""\
  topoctl synth
  topoctl synth --env dev
  topoctl synth --env prd --format yaml
  topoctl synth --env dev -o cdk.out/todo-app-stack.json
  topoctl --json synth --env dev""",
)
@click.option("--env", "env_key", default=None, help="Environment key (default from settings).")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="Template serialization.",
)
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the template to a file and print a summary instead.",
)
@click.pass_obj
def synth(app: AppContext, env_key: str | None, fmt: str, output_path: Path | None) -> None:
    """Compose the topology and print its template."""
    from topoctl.services.synth import SynthService

    svc = SynthService(app.settings, app.plugins)
    result = svc.synth(env_key, fmt="yaml" if fmt == "yaml" else "json")
    if not result.ok or app.settings.json_output:
        app.emit(result)
        return

    template = result.data["template"]
    if output_path is None:
        click.echo(template, nl=False)
        for warning in result.warnings:
            click.echo(f"WARNING: {warning}", err=True)
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(template, encoding="utf-8")
    data = {k: v for k, v in result.data.items() if k != "template"}
    data["written_to"] = str(output_path)
    app.emit(result.model_copy(update={"data": data}))

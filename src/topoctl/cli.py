"""Root CLI group for topoctl with global flags and command registration."""

from __future__ import annotations

import click

from topoctl import __version__
from topoctl.commands import register_commands
from topoctl.commands._base import TopoGroup
from topoctl.commands._context import AppContext
from topoctl.config.settings import TopoSettings


@click.group(cls=TopoGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name="topoctl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with timing spans.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--app-name", default=None, help="Resource name prefix (default todo-app).")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    app_name: str | None,
) -> None:
    """topoctl — three-tier topology synthesis CLI."""
    ctx.ensure_object(dict)
    settings = TopoSettings.from_cli(
        config_path=config_path,
        json_output=json_output or None,
        verbose=verbose or None,
        log_json=log_json or None,
        app_name=app_name,
    )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)

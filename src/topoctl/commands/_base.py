"""Click command and group classes carrying an ``--examples`` flag.

``--help`` stays short; worked invocations live in the ``examples`` text
and are printed on demand.
"""

from __future__ import annotations

from typing import Any

import click


class _ExamplesMixin:
    examples: str | None = None

    def _print_examples(self, ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(self.examples)
        ctx.exit(0)

    def get_params(self, ctx: click.Context) -> list[click.Parameter]:
        params: list[click.Parameter] = list(super().get_params(ctx))  # type: ignore[misc]
        if self.examples:
            params.append(
                click.Option(
                    ["--examples"],
                    is_flag=True,
                    expose_value=False,
                    is_eager=True,
                    callback=self._print_examples,
                    help="Show usage examples.",
                )
            )
        return params


class TopoCommand(_ExamplesMixin, click.Command):
    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples


class TopoGroup(_ExamplesMixin, click.Group):
    """Group whose subcommands default to :class:`TopoCommand`."""

    command_class = TopoCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples

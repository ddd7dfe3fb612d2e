"""Rich Console factory and theme for topoctl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract. In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

TOPO_THEME = Theme(
    {
        "topo.ok": "bold green",
        "topo.error": "bold red",
        "topo.warning": "bold yellow",
        "topo.op": "bold cyan",
        "topo.key": "dim",
        "topo.path": "dim",
        "topo.rule": "bold blue",
        "topo.suppressed": "dim",
        "topo.tier.network": "white",
        "topo.tier.edge": "cyan",
        "topo.tier.compute": "yellow",
        "topo.tier.data": "magenta",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=TOPO_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()

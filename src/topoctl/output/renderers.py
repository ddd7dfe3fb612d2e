"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from topoctl.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from topoctl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="topo.ok")
    op = Text(f"  {result.op}", style="topo.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}:", style="topo.key")
    if key in ("path", "origin"):
        v = Text(str(value), style="topo.path")
    elif isinstance(value, (dict, list)):
        v = Text(json.dumps(value, separators=(",", ":")))
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += f"  ({', '.join(f'{k}={v}' for k, v in annotations.items())})"
    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="topo.error")
    op = Text(f"  {result.op}", style="topo.op")
    code = Text(f" [{err.code}]" if err else "", style="topo.key")
    console.print(label, op, code, Text(" — "), Text(msg))

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Operation renderers ───────────────────────────────────────────────


def _render_synth(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a synthesis summary; the template itself is written by the command."""
    d = result.data
    _status_line(console, result)
    for key in ("stack_name", "env", "resources", "suppressed_nodes", "written_to"):
        if key in d:
            _field(console, key, d[key])

    outputs = d.get("outputs") or {}
    if outputs:
        console.print()
        table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
        table.add_column("Output", style="bold")
        table.add_column("Value")
        for name, value in outputs.items():
            rendered = value if isinstance(value, str) else json.dumps(value)
            table.add_row(name, rendered)
        console.print(table)

    if verbose:
        stats = d.get("stats") or {}
        if stats:
            console.print()
            table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
            table.add_column("Kind")
            table.add_column("Count", justify="right")
            for kind, count in stats.items():
                table.add_row(kind, str(count))
            console.print(table)
        _render_meta(console, result)


def _render_route(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("path", "origin", "pattern", "default", "cache_policy", "allowed_methods"):
        if key in d:
            _field(console, key, d[key])
    if "error_response" in d:
        response = d["error_response"]
        if response is None:
            _field(console, "error_response", "passed through")
        else:
            _field(
                console,
                "error_response",
                f"{response['response_page_path']} ({response['response_http_status']})",
            )
    if verbose:
        _render_meta(console, result)


def _render_nag(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render findings; suppressed ones only when verbose."""
    d = result.data
    findings = d.get("findings", [])
    shown = [f for f in findings if verbose or not f.get("suppressed")]

    if not shown:
        console.print(
            f"[topo.ok]OK[/topo.ok]  No unsuppressed findings "
            f"({d.get('suppressed', 0)} suppressed)."
        )
    else:
        table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
        table.add_column("Rule", style="topo.rule", no_wrap=True)
        table.add_column("Resource", style="topo.path")
        table.add_column("Finding")
        if verbose:
            table.add_column("Suppressed by")
        for finding in shown:
            row = [finding["rule_id"], finding["path"], finding["description"]]
            if verbose:
                row.append(finding.get("reason") or "")
            table.add_row(*row, style="topo.suppressed" if finding.get("suppressed") else None)
        console.print(table)
        unsuppressed, suppressed = d.get("unsuppressed", 0), d.get("suppressed", 0)
        console.print(f"\n{unsuppressed} unsuppressed, {suppressed} suppressed")

    if verbose:
        _render_meta(console, result)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "synth": _render_synth,
    "route": _render_route,
    "nag": _render_nag,
}

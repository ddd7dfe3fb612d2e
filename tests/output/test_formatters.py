"""Tests for the output formatter layer."""

from __future__ import annotations

import json

from topoctl.output.console import create_console, get_output
from topoctl.output.formatters import OutputSettings, format_result
from topoctl.services.result import ServiceResult


class TestFormatResult:
    def test_json(self) -> None:
        result = ServiceResult(ok=True, op="route", data={"origin": "todo-app-stack/ALB"})
        parsed = json.loads(format_result(result, settings=OutputSettings(json_output=True)))
        assert parsed["ok"] is True
        assert parsed["op"] == "route"
        assert parsed["data"] == {"origin": "todo-app-stack/ALB"}
        assert parsed["error"] is None

    def test_rich_by_default(self) -> None:
        result = ServiceResult(ok=True, op="route", data={"origin": "todo-app-stack/ALB"})
        output = format_result(result)
        assert "origin: todo-app-stack/ALB" in output
        assert not output.startswith("{")


class TestConsole:
    def test_buffered_plain_text(self) -> None:
        console = create_console(width=80)
        console.print("[topo.ok]OK[/topo.ok] done")
        output = get_output(console)
        assert output == "OK done\n"
        assert "\x1b[" not in output

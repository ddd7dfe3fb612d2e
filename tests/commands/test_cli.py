"""CLI tests for the root group and the synth, route and nag commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from topoctl import __version__
from topoctl.cli import cli


class TestRootGroup:
    def test_help_without_subcommand(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, [])
        assert result.exit_code == 0
        for command in ("synth", "route", "nag"):
            assert command in result.output

    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (["synth", "--examples"], "topoctl synth --env prd --format yaml"),
            (["route", "--examples"], "topoctl route /api/todos"),
            (["nag", "--examples"], "topoctl nag --no-fail"),
        ],
    )
    def test_examples(self, cli_runner: CliRunner, args: list[str], expected: str) -> None:
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        assert expected in result.output


class TestSynthCommand:
    def test_prints_template(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["synth", "--env", "dev"])
        assert result.exit_code == 0, result.output
        template = json.loads(result.stdout)
        assert template["AWSTemplateFormatVersion"] == "2010-09-09"
        assert "CloudFrontDomainName" in template["Outputs"]

    def test_yaml(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["synth", "--env", "dev", "--format", "yaml"])
        assert result.exit_code == 0
        assert result.stdout.startswith("AWSTemplateFormatVersion:")

    def test_json_envelope(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "synth", "--env", "dev"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["ok"] is True
        assert payload["data"]["env"] == "dev"
        assert json.loads(payload["data"]["template"])["Resources"]

    def test_write_to_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        target = tmp_path / "cdk.out" / "stack.json"
        result = cli_runner.invoke(cli, ["synth", "--env", "dev", "-o", str(target)])
        assert result.exit_code == 0
        assert json.loads(target.read_text())["Resources"]
        assert f"written_to: {target}" in result.stdout
        assert "AWSTemplateFormatVersion" not in result.stdout

    def test_unknown_environment(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["synth", "--env", "qa"])
        assert result.exit_code == 1
        assert result.stdout == ""
        assert "CONFIGURATION_ERROR" in result.stderr

    def test_unknown_environment_json(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "synth", "--env", "qa"])
        assert result.exit_code == 1
        payload = json.loads(result.stderr)
        assert payload["ok"] is False
        assert payload["error"]["code"] == "CONFIGURATION_ERROR"

    def test_malformed_edge_field_fails_cleanly(
        self, cli_runner: CliRunner, tmp_path: Path
    ) -> None:
        (tmp_path / "topoctl.toml").write_text(
            '[environments.dev.edge]\napi_path_pattern = "api/*"\n'
        )
        result = cli_runner.invoke(cli, ["--json", "synth", "--env", "dev"])
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        payload = json.loads(result.stderr)
        assert payload["error"]["code"] == "CONFIGURATION_ERROR"
        assert "edge.api_path_pattern" in payload["error"]["message"]

    def test_environment_from_toml(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "topoctl.toml").write_text('env = "dev"\napp_name = "shop"\n')
        result = cli_runner.invoke(cli, ["--json", "synth"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["data"]["env"] == "dev"
        assert payload["data"]["stack_name"] == "shop-stack"

    def test_app_name_flag(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--app-name", "demo", "--json", "synth", "--env", "dev"])
        assert json.loads(result.stdout)["data"]["stack_name"] == "demo-stack"


class TestRouteCommand:
    def test_api(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["route", "/api/todos", "--env", "dev"])
        assert result.exit_code == 0
        assert "origin: todo-app-stack/ALB" in result.stdout
        assert "CACHING_DISABLED" in result.stdout

    def test_error_status(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            cli, ["--json", "route", "/missing", "--env", "dev", "--status", "404"]
        )
        data = json.loads(result.stdout)["data"]
        assert data["default"] is True
        assert data["error_response"]["response_page_path"] == "/index.html"

    def test_status_must_be_an_error(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["route", "/", "--status", "200"])
        assert result.exit_code == 2


class TestNagCommand:
    def test_clean_by_default(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["nag", "--env", "dev"])
        assert result.exit_code == 0
        assert "No unsuppressed findings" in result.stdout

    def test_open_findings_fail(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "topoctl.toml").write_text("[suppressions]\nstack_wide = false\n")
        result = cli_runner.invoke(cli, ["nag", "--env", "dev"])
        assert result.exit_code == 1
        assert "AwsSolutions-IAM4" in result.stdout

    def test_no_fail(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "topoctl.toml").write_text("[suppressions]\nstack_wide = false\n")
        result = cli_runner.invoke(cli, ["--json", "nag", "--env", "dev", "--no-fail"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["unsuppressed"] > 0

    def test_verbose_shows_telemetry(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["-v", "nag", "--env", "dev"])
        assert result.exit_code == 0
        assert "SynthService.nag" in result.stdout
        assert "tier.network" in result.stdout

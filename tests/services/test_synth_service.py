"""Tests for SynthService operations."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from topoctl.config.settings import TopoSettings
from topoctl.plugins import PluginManager, hookimpl
from topoctl.services.synth import SynthService
from topoctl.services.telemetry import enable_telemetry


class _RecordingPlugin:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    @hookimpl
    def post_synth(self, stack_name: str, env_key: str, outputs: dict[str, Any]) -> None:
        self.calls.append({"stack_name": stack_name, "env_key": env_key, "outputs": outputs})


class _BrokenPlugin:
    @hookimpl
    def post_synth(self, stack_name: str, env_key: str, outputs: dict[str, Any]) -> None:
        raise RuntimeError("boom")


class TestSynth:
    def test_json_template(self, settings: TopoSettings) -> None:
        result = SynthService(settings).synth("dev")
        assert result.ok
        assert result.op == "synth"
        data = result.data
        assert data["stack_name"] == "todo-app-stack"
        assert data["env"] == "dev"
        assert data["format"] == "json"
        template = json.loads(data["template"])
        assert len(template["Resources"]) == data["resources"]
        assert set(template["Outputs"]) == set(data["outputs"])
        assert data["stats"]["security_group"] == 3
        assert data["suppressed_nodes"] == data["resources"] + 1

    def test_yaml_template(self, settings: TopoSettings) -> None:
        result = SynthService(settings).synth("prd", fmt="yaml")
        assert result.ok
        loaded = YAML(typ="safe").load(result.data["template"])
        assert loaded["Description"] == "todo-app-stack (prd)"

    def test_default_environment_from_settings(self, settings: TopoSettings) -> None:
        assert SynthService(settings).synth().data["env"] == "prd"

    def test_unknown_environment(self, settings: TopoSettings) -> None:
        result = SynthService(settings).synth("qa")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "CONFIGURATION_ERROR"
        assert result.error.detail == {"env": "qa"}
        assert "Unsupported environment" in result.error.message

    def test_toml_overrides_apply(self, tmp_path: Path) -> None:
        (tmp_path / "topoctl.toml").write_text(
            "[environments.dev.backend]\ndesired_count = 3\n"
        )
        settings = TopoSettings.from_cli(start_dir=tmp_path)
        template = json.loads(SynthService(settings).synth("dev").data["template"])
        services = [r for r in template["Resources"].values() if r["Type"] == "AWS::ECS::Service"]
        assert services[0]["Properties"]["DesiredCount"] == 3

    def test_post_synth_hook(self, settings: TopoSettings) -> None:
        plugins = PluginManager()
        plugin = _RecordingPlugin()
        plugins.register_plugin(plugin)
        result = SynthService(settings, plugins).synth("dev")
        assert result.ok
        (call,) = plugin.calls
        assert call["stack_name"] == "todo-app-stack"
        assert call["env_key"] == "dev"
        assert set(call["outputs"]) == {
            "DatabaseEndpoint",
            "LoadBalancerDNS",
            "CloudFrontDomainName",
            "WebBucketName",
        }

    def test_failing_hook_is_a_warning(self, settings: TopoSettings) -> None:
        plugins = PluginManager()
        plugins.register_plugin(_BrokenPlugin())
        result = SynthService(settings, plugins).synth("dev")
        assert result.ok
        assert result.warnings == ["Plugin hook failed for post_synth"]

    def test_telemetry_meta(self, settings: TopoSettings) -> None:
        enable_telemetry()
        result = SynthService(settings).synth("dev")
        assert result.meta is not None
        span = result.meta["telemetry"]
        assert span["name"] == "SynthService.synth"
        assert [c["name"] for c in span["children"]] == ["compose", "suppress", "render"]
        tiers = [c["name"] for c in span["children"][0]["children"]]
        assert tiers[0] == "tier.network"
        assert tiers[-1] == "tier.tags"


class TestRoute:
    def test_api_path(self, settings: TopoSettings) -> None:
        result = SynthService(settings).route("/api/todos", "dev")
        assert result.ok
        assert result.data["origin"] == "todo-app-stack/ALB"
        assert result.data["pattern"] == "/api/*"
        assert result.data["default"] is False
        assert result.data["cache_policy"] == "CACHING_DISABLED"
        assert result.data["allowed_methods"] == "ALL"
        assert result.data["forward_all_viewer"] is True
        assert "error_response" not in result.data

    def test_static_path_with_error_status(self, settings: TopoSettings) -> None:
        result = SynthService(settings).route("/missing", "dev", status=404)
        assert result.data["origin"] == "todo-app-stack/WebBucket"
        assert result.data["cache_policy"] == "CACHING_OPTIMIZED"
        assert result.data["error_response"] == {
            "http_status": 404,
            "response_page_path": "/index.html",
            "response_http_status": 200,
        }

    def test_status_passed_through(self, settings: TopoSettings) -> None:
        result = SynthService(settings).route("/", "dev", status=500)
        assert result.data["error_response"] is None

    def test_failure(self, settings: TopoSettings) -> None:
        result = SynthService(settings).route("/", "nope")
        assert not result.ok
        assert result.op == "route"


class TestNag:
    def test_default_settings(self, settings: TopoSettings) -> None:
        result = SynthService(settings).nag("dev")
        assert result.ok
        assert result.data["unsuppressed"] == 0
        assert result.data["count"] == result.data["suppressed"] > 0

    def test_plugin_suppressions_apply(self, tmp_path: Path) -> None:
        (tmp_path / "topoctl.toml").write_text("[suppressions]\nstack_wide = false\n")
        settings = TopoSettings.from_cli(start_dir=tmp_path)

        class IamPlugin:
            @hookimpl
            def register_suppressions(self) -> list[dict[str, Any]]:
                return [
                    {
                        "rule_id": rule_id,
                        "reason": "Roles are reviewed by the platform team",
                        "predicate": {"type": "kind", "kinds": ["iam_role"]},
                    }
                    for rule_id in ("AwsSolutions-IAM4", "AwsSolutions-IAM5")
                ]

        before = SynthService(settings).nag("dev")
        assert before.data["unsuppressed"] > 0

        plugins = PluginManager()
        plugins.register_plugin(IamPlugin())
        after = SynthService(settings, plugins).nag("dev")
        assert after.data["unsuppressed"] == 0
        assert after.warnings == []

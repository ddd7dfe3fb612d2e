"""Tests for operation-specific Rich renderers."""

from __future__ import annotations

from topoctl.output.renderers import render_result
from topoctl.services.result import ServiceError, ServiceResult


def _synth_result(**extra: object) -> ServiceResult:
    data: dict[str, object] = {
        "stack_name": "todo-app-stack",
        "env": "dev",
        "resources": 57,
        "suppressed_nodes": 58,
        "stats": {"vpc": 1, "subnet": 6},
        "outputs": {
            "WebBucketName": {"Ref": "WebBucket1234ABCD"},
            "Plain": "value",
        },
    }
    data.update(extra)
    return ServiceResult(ok=True, op="synth", data=data)


def _finding(rule_id: str, *, suppressed: bool, reason: str | None = None) -> dict[str, object]:
    finding: dict[str, object] = {
        "rule_id": rule_id,
        "path": "todo-app-stack/TaskRole",
        "kind": "iam_role",
        "description": "The role uses AWS managed policies",
        "suppressed": suppressed,
    }
    if reason:
        finding["reason"] = reason
    return finding


class TestRenderError:
    def test_code_and_message(self) -> None:
        result = ServiceResult(
            ok=False,
            op="synth",
            error=ServiceError(
                code="CONFIGURATION_ERROR", message="Unsupported environment", detail={"env": "qa"}
            ),
        )
        output = render_result(result)
        assert "ERROR" in output
        assert "[CONFIGURATION_ERROR]" in output
        assert "Unsupported environment" in output
        assert "env: qa" not in output

    def test_detail_when_verbose(self) -> None:
        result = ServiceResult(
            ok=False,
            op="nag",
            error=ServiceError(code="COMPOSITION_ERROR", message="bad", detail={"env": "qa"}),
        )
        assert "env: qa" in render_result(result, verbose=True)


class TestRenderSynth:
    def test_summary_and_outputs(self) -> None:
        output = render_result(_synth_result())
        assert "OK" in output
        assert "stack_name: todo-app-stack" in output
        assert "resources: 57" in output
        assert "WebBucketName" in output
        assert "WebBucket1234ABCD" in output
        assert "subnet" not in output

    def test_stats_when_verbose(self) -> None:
        output = render_result(_synth_result(), verbose=True)
        assert "Kind" in output
        assert "subnet" in output

    def test_written_to(self) -> None:
        output = render_result(_synth_result(written_to="out/stack.json"))
        assert "written_to: out/stack.json" in output


class TestRenderRoute:
    def test_fields(self) -> None:
        result = ServiceResult(
            ok=True,
            op="route",
            data={
                "path": "/missing",
                "origin": "todo-app-stack/WebBucket",
                "pattern": "*",
                "default": True,
                "cache_policy": "CACHING_OPTIMIZED",
                "allowed_methods": "GET_HEAD",
                "error_response": {
                    "http_status": 404,
                    "response_page_path": "/index.html",
                    "response_http_status": 200,
                },
            },
        )
        output = render_result(result)
        assert "origin: todo-app-stack/WebBucket" in output
        assert "cache_policy: CACHING_OPTIMIZED" in output
        assert "error_response: /index.html (200)" in output

    def test_passed_through(self) -> None:
        result = ServiceResult(
            ok=True, op="route", data={"path": "/", "error_response": None}
        )
        assert "error_response: passed through" in render_result(result)


class TestRenderNag:
    def test_clean(self) -> None:
        result = ServiceResult(
            ok=True,
            op="nag",
            data={
                "findings": [_finding("AwsSolutions-IAM4", suppressed=True, reason="demo")],
                "count": 1,
                "unsuppressed": 0,
                "suppressed": 1,
            },
        )
        assert "No unsuppressed findings (1 suppressed)." in render_result(result)

    def test_open_findings_table(self) -> None:
        result = ServiceResult(
            ok=True,
            op="nag",
            data={
                "findings": [
                    _finding("AwsSolutions-IAM4", suppressed=False),
                    _finding("AwsSolutions-IAM5", suppressed=True, reason="Wildcards allowed"),
                ],
                "count": 2,
                "unsuppressed": 1,
                "suppressed": 1,
            },
        )
        output = render_result(result)
        assert "AwsSolutions-IAM4" in output
        assert "AwsSolutions-IAM5" not in output
        assert "1 unsuppressed, 1 suppressed" in output

        verbose = render_result(result, verbose=True)
        assert "AwsSolutions-IAM5" in verbose
        assert "Wildcards allowed" in verbose


class TestRenderGeneric:
    def test_unknown_op(self) -> None:
        result = ServiceResult(ok=True, op="custom", data={"answer": 42, "items": [1, 2]})
        output = render_result(result)
        assert "answer: 42" in output
        assert "items: [1,2]" in output

    def test_telemetry_tree_when_verbose(self) -> None:
        result = ServiceResult(
            ok=True,
            op="custom",
            data={},
            meta={
                "telemetry": {
                    "name": "SynthService.synth",
                    "duration_ms": 12.5,
                    "children": [
                        {
                            "name": "tier.network",
                            "duration_ms": 1.25,
                            "annotations": {"resources": 27},
                        }
                    ],
                }
            },
        )
        output = render_result(result, verbose=True)
        assert "SynthService.synth" in output
        assert "tier.network" in output
        assert "resources=27" in output

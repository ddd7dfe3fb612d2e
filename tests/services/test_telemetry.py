"""Tests for telemetry spans."""

from __future__ import annotations

from topoctl.services.result import ServiceResult
from topoctl.services.telemetry import (
    Span,
    disable_telemetry,
    enable_telemetry,
    trace_span,
    traced,
)


@traced
def _op() -> ServiceResult:
    with trace_span("child") as span:
        if span is not None:
            span.annotate("resources", 3)
    return ServiceResult(ok=True, op="op", meta={"kept": True})


class TestTraceSpan:
    def test_disabled_yields_none(self) -> None:
        disable_telemetry()
        with trace_span("x") as span:
            assert span is None

    def test_without_parent_yields_none(self) -> None:
        enable_telemetry()
        with trace_span("orphan") as span:
            assert span is None


class TestTraced:
    def test_disabled_leaves_result_alone(self) -> None:
        assert _op().meta == {"kept": True}

    def test_enabled_merges_span_tree(self) -> None:
        enable_telemetry()
        meta = _op().meta
        assert meta is not None
        assert meta["kept"] is True
        tree = meta["telemetry"]
        assert tree["name"] == "_op"
        (child,) = tree["children"]
        assert child["name"] == "child"
        assert child["annotations"] == {"resources": 3}


class TestSpan:
    def test_duration_before_end(self) -> None:
        assert Span(name="s").duration_ms == 0.0

    def test_to_dict(self) -> None:
        span = Span(name="s")
        span.end()
        assert span.duration_ms >= 0
        assert span.to_dict()["name"] == "s"
        assert "children" not in span.to_dict()

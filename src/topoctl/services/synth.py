"""SynthService — compose, suppress, and report on one environment.

Three operations share the same front half (compose the graph, then run
the suppression visitor over it):

- ``synth``: render the template and dispatch ``post_synth``
- ``route``: resolve a request path against the edge router
- ``nag``: evaluate the compliance rule pack
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from topoctl.domain.errors import TopologyError
from topoctl.infrastructure.template import TemplateFormat, dump_template, render_template
from topoctl.services.base import BaseService
from topoctl.services.composer import Synthesis, TopologyComposer
from topoctl.services.nag import NagChecker, unsuppressed
from topoctl.services.result import ServiceError, ServiceResult
from topoctl.services.suppression import SuppressionVisitor, VisitReport
from topoctl.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Composed:
    synthesis: Synthesis
    report: VisitReport


class SynthService(BaseService):
    """Synthesis operations over the configured application."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    def synth(self, env_key: str | None = None, *, fmt: TemplateFormat = "json") -> ServiceResult:
        """Compose *env_key* and render the template in *fmt*."""
        env = self._env_key(env_key)
        warnings: list[str] = []
        try:
            composed = self._compose(env, warnings)
            synthesis = composed.synthesis
            with trace_span("render"):
                template = render_template(
                    synthesis.graph,
                    synthesis.outputs.to_template(),
                    description=f"{synthesis.stack_name} ({env})",
                )
                text = dump_template(template, fmt)
        except TopologyError as exc:
            return _failure("synth", exc, env)

        outputs = {name: out.value for name, out in synthesis.outputs.named().items()}
        self._dispatch_event(
            "post_synth",
            {"stack_name": synthesis.stack_name, "env_key": env, "outputs": outputs},
            warnings,
        )
        return ServiceResult(
            ok=True,
            op="synth",
            data={
                "stack_name": synthesis.stack_name,
                "env": env,
                "format": fmt,
                "resources": len(synthesis.graph),
                "stats": synthesis.graph.stats(),
                "suppressed_nodes": len(composed.report.by_path),
                "outputs": outputs,
                "template": text,
            },
            warnings=warnings,
        )

    @traced
    def route(
        self, path: str, env_key: str | None = None, *, status: int | None = None
    ) -> ServiceResult:
        """Report which origin serves *path*, and how *status* is rewritten."""
        env = self._env_key(env_key)
        warnings: list[str] = []
        try:
            router = self._compose(env, warnings).synthesis.router
        except TopologyError as exc:
            return _failure("route", exc, env)

        rule = router.resolve(path)
        data: dict[str, object] = {
            "env": env,
            "path": path,
            "origin": rule.origin,
            "pattern": rule.path_pattern,
            "default": rule.is_default,
            "cache_policy": rule.cache_policy.name,
            "allowed_methods": rule.allowed_methods.name,
            "forward_all_viewer": rule.forward_all_viewer,
        }
        if status is not None:
            response = router.remap_error(status)
            data["error_response"] = response.model_dump() if response is not None else None
        return ServiceResult(ok=True, op="route", data=data, warnings=warnings)

    @traced
    def nag(self, env_key: str | None = None) -> ServiceResult:
        """Run the compliance rule pack over the suppressed graph."""
        env = self._env_key(env_key)
        warnings: list[str] = []
        try:
            graph = self._compose(env, warnings).synthesis.graph
        except TopologyError as exc:
            return _failure("nag", exc, env)

        with trace_span("checks"):
            findings = NagChecker().check(graph)
        open_findings = unsuppressed(findings)
        return ServiceResult(
            ok=True,
            op="nag",
            data={
                "env": env,
                "findings": [f.to_dict() for f in findings],
                "count": len(findings),
                "unsuppressed": len(open_findings),
                "suppressed": len(findings) - len(open_findings),
            },
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _compose(self, env: str, warnings: list[str]) -> _Composed:
        settings = self._settings
        composer = TopologyComposer(
            settings.app_name, account=settings.account, region=settings.region
        )
        with trace_span("compose"):
            synthesis = composer.compose(env, settings.overrides_for(env))

        extra = self._plugins.collect_suppressions(warnings) if self._plugins else []
        visitor = SuppressionVisitor.from_settings(settings.suppressions, extra)
        with trace_span("suppress"):
            report = visitor.visit(synthesis.graph)
        return _Composed(synthesis=synthesis, report=report)


def _failure(op: str, exc: TopologyError, env: str) -> ServiceResult:
    logger.debug("%s failed for %s: %s", op, env, exc)
    return ServiceResult(
        ok=False,
        op=op,
        error=ServiceError(code=exc.code, message=str(exc), detail={"env": env}),
    )

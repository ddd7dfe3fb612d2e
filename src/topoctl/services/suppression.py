"""SuppressionVisitor — attach accepted findings to nodes of a finished graph.

Rules are independent: every rule whose predicate matches a node adds its
suppression there (and, for descendant rules, to everything beneath it).
Attachment is keyed by rule id, so visiting twice changes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from topoctl.config.models import SuppressionSettings
from topoctl.domain.suppressions import (
    DEFAULT_SUPPRESSIONS,
    STACK_SUPPRESSIONS,
    SuppressionRule,
)
from topoctl.infrastructure.graph.engine import ResourceGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitReport:
    """Outcome of one visit."""

    visited: int
    attached: int
    by_path: dict[str, frozenset[str]]

    def rule_ids(self, path: str) -> frozenset[str]:
        return self.by_path.get(path, frozenset())


class SuppressionVisitor:
    def __init__(self, rules: Iterable[SuppressionRule]) -> None:
        self.rules: tuple[SuppressionRule, ...] = tuple(rules)

    @classmethod
    def from_settings(
        cls,
        settings: SuppressionSettings,
        extra: Iterable[SuppressionRule] = (),
    ) -> SuppressionVisitor:
        """Built-in catalogues selected by *settings*, then plugin rules."""
        rules: list[SuppressionRule] = []
        if settings.defaults:
            rules.extend(DEFAULT_SUPPRESSIONS)
        if settings.stack_wide:
            rules.extend(STACK_SUPPRESSIONS)
        rules.extend(extra)
        return cls(rules)

    def visit(self, graph: ResourceGraph) -> VisitReport:
        """Walk *graph* once in containment preorder and attach suppressions."""
        visited = 0
        attached = 0
        for node in graph.walk():
            visited += 1
            for rule in self.rules:
                if not rule.predicate.matches(node):
                    continue
                targets = [node]
                if rule.applies_to_descendants:
                    targets.extend(graph.descendants(node.path))
                suppression = rule.suppression
                for target in targets:
                    if target.attach(suppression):
                        attached += 1

        by_path = {r.path: frozenset(r.suppressions) for r in graph.walk() if r.suppressions}
        logger.debug(
            "suppression.applied nodes=%d attached=%d suppressed_nodes=%d",
            visited,
            attached,
            len(by_path),
        )
        return VisitReport(visited=visited, attached=attached, by_path=by_path)

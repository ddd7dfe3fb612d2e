"""Suppression rules: which linter findings are accepted on which nodes.

A rule pairs one (rule_id, reason) with a predicate. Predicates are
either an exact resource-kind match or a substring match on the node's
hierarchical path; path matching is kept verbatim so existing
suppression lists keep working.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, Field

from topoctl.domain.types import ResourceKind

if TYPE_CHECKING:
    from topoctl.infrastructure.graph.engine import Resource


class KindPredicate(BaseModel):
    """Match nodes whose kind is one of *kinds*."""

    model_config = {"frozen": True}

    type: Literal["kind"] = "kind"
    kinds: frozenset[ResourceKind]

    def matches(self, resource: Resource) -> bool:
        return resource.kind in self.kinds


class PathPredicate(BaseModel):
    """Match nodes whose path contains any of *substrings*."""

    model_config = {"frozen": True}

    type: Literal["path"] = "path"
    substrings: tuple[str, ...] = Field(min_length=1)

    def matches(self, resource: Resource) -> bool:
        return any(s in resource.path for s in self.substrings)


Predicate = Annotated[KindPredicate | PathPredicate, Field(discriminator="type")]


class Suppression(BaseModel):
    """An accepted finding attached to a node."""

    model_config = {"frozen": True}

    rule_id: str
    reason: str
    applies_to: tuple[str, ...] = ()

    def to_metadata(self) -> dict[str, object]:
        entry: dict[str, object] = {"id": self.rule_id, "reason": self.reason}
        if self.applies_to:
            entry["applies_to"] = list(self.applies_to)
        return entry


class SuppressionRule(BaseModel):
    model_config = {"frozen": True}

    rule_id: str = Field(min_length=1)
    reason: str = Field(min_length=10)
    predicate: Predicate
    applies_to_descendants: bool = False
    applies_to: tuple[str, ...] = ()

    @property
    def suppression(self) -> Suppression:
        return Suppression(rule_id=self.rule_id, reason=self.reason, applies_to=self.applies_to)


def kinds(*values: ResourceKind) -> KindPredicate:
    return KindPredicate(kinds=frozenset(values))


def path_contains(*substrings: str) -> PathPredicate:
    return PathPredicate(substrings=substrings)


def suppress(
    predicate: KindPredicate | PathPredicate,
    entries: Iterable[tuple[str, str] | tuple[str, str, tuple[str, ...]]],
    *,
    descendants: bool = False,
) -> list[SuppressionRule]:
    """Expand one predicate and its (rule_id, reason[, applies_to]) entries into rules."""
    rules: list[SuppressionRule] = []
    for entry in entries:
        rule_id, reason = entry[0], entry[1]
        applies_to = entry[2] if len(entry) > 2 else ()
        rules.append(
            SuppressionRule(
                rule_id=rule_id,
                reason=reason,
                predicate=predicate,
                applies_to_descendants=descendants,
                applies_to=applies_to,
            )
        )
    return rules


# --- Built-in catalogue (development-environment exceptions) ---

DEFAULT_SUPPRESSIONS: tuple[SuppressionRule, ...] = (
    *suppress(
        kinds(ResourceKind.BUCKET),
        [
            ("AwsSolutions-S1", "Server access logging is disabled in development"),
            ("AwsSolutions-S5", "Origin access identity is not used in development"),
            ("AwsSolutions-S10", "SSL enforcement is relaxed in development"),
        ],
    ),
    *suppress(
        path_contains("WebBucket/Policy"),
        [("AwsSolutions-S10", "SSL enforcement is relaxed in development")],
        descendants=True,
    ),
    *suppress(
        kinds(ResourceKind.LOAD_BALANCER),
        [
            ("AwsSolutions-ELB2", "Load balancer access logs are disabled in development"),
            ("AwsSolutions-EC23", "Plain HTTP is allowed in development"),
        ],
    ),
    *suppress(
        kinds(ResourceKind.DB_CLUSTER),
        [
            ("AwsSolutions-RDS6", "IAM database authentication is disabled in development"),
            ("AwsSolutions-RDS10", "Deletion protection is disabled in development"),
        ],
    ),
    *suppress(
        path_contains("CloudFront", "Distribution"),
        [
            ("AwsSolutions-CFR1", "Geo restriction is disabled in development"),
            ("AwsSolutions-CFR2", "WAF integration is disabled in development"),
            ("AwsSolutions-CFR3", "Distribution access logging is disabled in development"),
            ("AwsSolutions-CFR4", "The default viewer certificate is used in development"),
            ("AwsSolutions-CFR5", "Origin traffic uses HTTP inside the VPC in development"),
        ],
        descendants=True,
    ),
    *suppress(
        path_contains("VPC"),
        [("AwsSolutions-VPC7", "VPC flow logs are disabled in development")],
        descendants=True,
    ),
    *suppress(
        path_contains("Cluster", "TaskDefinition"),
        [
            ("AwsSolutions-ECS4", "Container Insights is disabled in development"),
            ("AwsSolutions-ECS2", "Environment variables are set directly in development"),
        ],
        descendants=True,
    ),
    *suppress(
        path_contains("DatabaseCredentials"),
        [("AwsSolutions-SMG4", "Automatic secret rotation is disabled in development")],
        descendants=True,
    ),
    *suppress(
        kinds(ResourceKind.DB_CLUSTER),
        [
            ("AwsSolutions-RDS11", "The engine default port is used in development"),
            ("AwsSolutions-RDS14", "Backtrack is disabled in development"),
            (
                "AwsSolutions-RDS16",
                "Log exports are disabled in development",
                (
                    "LogExport::audit",
                    "LogExport::error",
                    "LogExport::general",
                    "LogExport::slowquery",
                ),
            ),
        ],
    ),
)

# Blanket exceptions attached to the stack root and everything beneath it.
STACK_SUPPRESSIONS: tuple[SuppressionRule, ...] = tuple(
    suppress(
        kinds(ResourceKind.STACK),
        [
            ("AwsSolutions-IAM4", "AWS managed policies are used by this demo project"),
            ("AwsSolutions-IAM5", "Wildcard permissions are allowed by this demo project"),
            ("AwsSolutions-EC23", "Plain HTTP is allowed in development"),
            ("AwsSolutions-ELB2", "Load balancer access logs are disabled in development"),
            ("AwsSolutions-S1", "Server access logging is disabled in development"),
            ("AwsSolutions-S10", "SSL enforcement is relaxed in development"),
            ("AwsSolutions-RDS6", "IAM database authentication is disabled in development"),
            ("AwsSolutions-RDS10", "Deletion protection is disabled in development"),
            ("AwsSolutions-RDS11", "The engine default port is used in development"),
            ("AwsSolutions-VPC7", "VPC flow logs are disabled in development"),
            ("AwsSolutions-SMG4", "Automatic secret rotation is disabled in development"),
            ("AwsSolutions-ECS2", "Environment variables are set directly in development"),
            ("AwsSolutions-ECS4", "Container Insights is disabled in development"),
            ("AwsSolutions-ECS7", "Telemetry sidecars log through the agent container"),
            ("AwsSolutions-CFR1", "Geo restriction is disabled in development"),
            ("AwsSolutions-CFR2", "WAF integration is disabled in development"),
            ("AwsSolutions-CFR3", "Distribution access logging is disabled in development"),
            ("AwsSolutions-CFR4", "The default viewer certificate is used in development"),
            ("AwsSolutions-CFR5", "Origin traffic uses HTTP inside the VPC in development"),
            ("AwsSolutions-L1", "Only managed runtimes are used by this demo project"),
        ],
        descendants=True,
    )
)

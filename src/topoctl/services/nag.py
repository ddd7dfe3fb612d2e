"""Compliance checks over a synthesized graph.

A compact AwsSolutions-style rule pack. Each rule inspects resources of
the kinds it covers and reports a :class:`Finding` when the resource does
not comply. Findings on nodes that carry a suppression for the same rule
id are kept but marked suppressed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeAlias

from topoctl.domain.types import ResourceKind
from topoctl.infrastructure.graph.engine import Resource, ResourceGraph

Check: TypeAlias = Callable[[Resource, ResourceGraph], bool]

_MANAGED_POLICY_PREFIX = "arn:aws:iam::aws:policy/"
_OPEN_CIDRS = frozenset({"0.0.0.0/0", "::/0"})


@dataclass(frozen=True)
class NagRule:
    rule_id: str
    kinds: frozenset[ResourceKind]
    description: str
    violates: Check


@dataclass(frozen=True)
class Finding:
    rule_id: str
    path: str
    kind: ResourceKind
    description: str
    suppressed: bool = False
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "rule_id": self.rule_id,
            "path": self.path,
            "kind": str(self.kind),
            "description": self.description,
            "suppressed": self.suppressed,
        }
        if self.reason:
            out["reason"] = self.reason
        return out


# --- Checks ---


def _no_flow_logs(resource: Resource, graph: ResourceGraph) -> bool:
    # Flow logs are never declared by the composer.
    return True


def _open_ingress(resource: Resource, graph: ResourceGraph) -> bool:
    return any(
        child.kind is ResourceKind.SECURITY_GROUP_INGRESS
        and (
            child.properties.get("CidrIp") in _OPEN_CIDRS
            or child.properties.get("CidrIpv6") in _OPEN_CIDRS
        )
        for child in graph.children(resource.path)
    )


def _no_lb_access_logs(resource: Resource, graph: ResourceGraph) -> bool:
    attrs = {a["Key"]: a["Value"] for a in resource.properties.get("LoadBalancerAttributes", [])}
    return attrs.get("access_logs.s3.enabled") != "true"


def _no_bucket_logging(resource: Resource, graph: ResourceGraph) -> bool:
    return "LoggingConfiguration" not in resource.properties


def _no_ssl_enforcement(resource: Resource, graph: ResourceGraph) -> bool:
    for child in graph.children(resource.path):
        if child.kind is not ResourceKind.BUCKET_POLICY:
            continue
        statements = child.properties.get("PolicyDocument", {}).get("Statement", [])
        for statement in statements:
            secure = statement.get("Condition", {}).get("Bool", {}).get("aws:SecureTransport")
            if statement.get("Effect") == "Deny" and str(secure).lower() == "false":
                return False
    return True


def _no_iam_auth(resource: Resource, graph: ResourceGraph) -> bool:
    return not resource.properties.get("EnableIAMDatabaseAuthentication", False)


def _no_deletion_protection(resource: Resource, graph: ResourceGraph) -> bool:
    return not resource.properties.get("DeletionProtection", False)


def _default_port(resource: Resource, graph: ResourceGraph) -> bool:
    return resource.properties.get("Port") in (None, 3306, 5432)


def _no_rotation(resource: Resource, graph: ResourceGraph) -> bool:
    return "RotationRules" not in resource.properties


def _plain_environment(resource: Resource, graph: ResourceGraph) -> bool:
    return any(c.get("Environment") for c in resource.properties.get("ContainerDefinitions", []))


def _no_container_insights(resource: Resource, graph: ResourceGraph) -> bool:
    settings = resource.properties.get("ClusterSettings", [])
    return not any(
        s.get("Name") == "containerInsights" and s.get("Value") == "enabled" for s in settings
    )


def _distribution_config(resource: Resource) -> dict[str, Any]:
    return resource.properties.get("DistributionConfig", {})


def _no_geo_restriction(resource: Resource, graph: ResourceGraph) -> bool:
    geo = _distribution_config(resource).get("Restrictions", {}).get("GeoRestriction", {})
    return geo.get("RestrictionType", "none") == "none"


def _no_waf(resource: Resource, graph: ResourceGraph) -> bool:
    return not _distribution_config(resource).get("WebACLId")


def _no_distribution_logging(resource: Resource, graph: ResourceGraph) -> bool:
    return "Logging" not in _distribution_config(resource)


def _default_certificate(resource: Resource, graph: ResourceGraph) -> bool:
    cert = _distribution_config(resource).get("ViewerCertificate")
    return cert is None or bool(cert.get("CloudFrontDefaultCertificate"))


def _http_origin(resource: Resource, graph: ResourceGraph) -> bool:
    endpoint = resource.properties.get("VpcOriginEndpointConfig", {})
    return endpoint.get("OriginProtocolPolicy") == "http-only"


def _managed_policies(resource: Resource, graph: ResourceGraph) -> bool:
    return any(
        isinstance(arn, str) and arn.startswith(_MANAGED_POLICY_PREFIX)
        for arn in resource.properties.get("ManagedPolicyArns", [])
    )


def _wildcards(resource: Resource, graph: ResourceGraph) -> bool:
    for policy in resource.properties.get("Policies", []):
        for statement in policy.get("PolicyDocument", {}).get("Statement", []):
            for field in ("Action", "Resource"):
                values = statement.get(field, [])
                values = values if isinstance(values, list) else [values]
                if any(isinstance(v, str) and "*" in v for v in values):
                    return True
    return False


def _rule(rule_id: str, kinds: Iterable[ResourceKind], description: str, check: Check) -> NagRule:
    return NagRule(
        rule_id=f"AwsSolutions-{rule_id}",
        kinds=frozenset(kinds),
        description=description,
        violates=check,
    )


AWS_SOLUTIONS_RULES: tuple[NagRule, ...] = (
    _rule(
        "VPC7",
        [ResourceKind.VPC],
        "The VPC does not have an associated flow log",
        _no_flow_logs,
    ),
    _rule(
        "EC23",
        [ResourceKind.SECURITY_GROUP],
        "The security group allows unrestricted inbound access",
        _open_ingress,
    ),
    _rule(
        "ELB2",
        [ResourceKind.LOAD_BALANCER],
        "The load balancer does not have access logs enabled",
        _no_lb_access_logs,
    ),
    _rule(
        "S1",
        [ResourceKind.BUCKET],
        "The bucket has server access logs disabled",
        _no_bucket_logging,
    ),
    _rule(
        "S10",
        [ResourceKind.BUCKET],
        "The bucket does not require requests to use SSL",
        _no_ssl_enforcement,
    ),
    _rule(
        "RDS6",
        [ResourceKind.DB_CLUSTER],
        "The database cluster does not have IAM authentication enabled",
        _no_iam_auth,
    ),
    _rule(
        "RDS10",
        [ResourceKind.DB_CLUSTER],
        "The database cluster does not have deletion protection enabled",
        _no_deletion_protection,
    ),
    _rule(
        "RDS11",
        [ResourceKind.DB_CLUSTER],
        "The database cluster uses the engine default port",
        _default_port,
    ),
    _rule(
        "SMG4",
        [ResourceKind.SECRET],
        "The secret does not have automatic rotation scheduled",
        _no_rotation,
    ),
    _rule(
        "ECS2",
        [ResourceKind.TASK_DEFINITION],
        "The task definition includes plain environment variables",
        _plain_environment,
    ),
    _rule(
        "ECS4",
        [ResourceKind.ECS_CLUSTER],
        "The cluster has Container Insights disabled",
        _no_container_insights,
    ),
    _rule(
        "CFR1",
        [ResourceKind.DISTRIBUTION],
        "The distribution may require geo restrictions",
        _no_geo_restriction,
    ),
    _rule(
        "CFR2",
        [ResourceKind.DISTRIBUTION],
        "The distribution may require integration with a web ACL",
        _no_waf,
    ),
    _rule(
        "CFR3",
        [ResourceKind.DISTRIBUTION],
        "The distribution does not have access logging enabled",
        _no_distribution_logging,
    ),
    _rule(
        "CFR4",
        [ResourceKind.DISTRIBUTION],
        "The distribution uses the default viewer certificate",
        _default_certificate,
    ),
    _rule(
        "CFR5",
        [ResourceKind.VPC_ORIGIN],
        "The origin is reached over plain HTTP",
        _http_origin,
    ),
    _rule(
        "IAM4",
        [ResourceKind.IAM_ROLE],
        "The role uses AWS managed policies",
        _managed_policies,
    ),
    _rule(
        "IAM5",
        [ResourceKind.IAM_ROLE],
        "The role grants wildcard permissions",
        _wildcards,
    ),
)


class NagChecker:
    """Evaluate a rule pack over every emitted resource of a graph."""

    def __init__(self, rules: Iterable[NagRule] = AWS_SOLUTIONS_RULES) -> None:
        self.rules = tuple(rules)

    def check(self, graph: ResourceGraph) -> list[Finding]:
        findings: list[Finding] = []
        for resource in graph.resources():
            for rule in self.rules:
                if resource.kind not in rule.kinds or not rule.violates(resource, graph):
                    continue
                suppression = resource.suppressions.get(rule.rule_id)
                findings.append(
                    Finding(
                        rule_id=rule.rule_id,
                        path=resource.path,
                        kind=resource.kind,
                        description=rule.description,
                        suppressed=suppression is not None,
                        reason=suppression.reason if suppression else None,
                    )
                )
        return findings


def unsuppressed(findings: Iterable[Finding]) -> list[Finding]:
    return [f for f in findings if not f.suppressed]

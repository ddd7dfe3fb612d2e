"""SecurityGroupChain — the directed tier-to-tier permit graph.

Edge (load balancer) <- public peers on the edge port
Compute              <- Edge group only, on the container port
Data                 <- Compute group only, on the data port

Every allowed source becomes its own ingress resource; ports are never
ranges. A permit that skips a tier is rejected.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from itertools import pairwise

from pydantic import ValidationError

from topoctl.domain.errors import CompositionError
from topoctl.domain.security import SecurityRule, is_prefix_list
from topoctl.domain.types import ResourceKind, Tier
from topoctl.infrastructure.graph.engine import ResourceGraph

logger = logging.getLogger(__name__)

# Chain order, upstream first.
CHAIN: tuple[Tier, ...] = (Tier.EDGE, Tier.COMPUTE, Tier.DATA)

_GROUPS: dict[Tier, tuple[str, str]] = {
    Tier.EDGE: ("AlbSecurityGroup", "Allow HTTP/HTTPS inbound traffic to ALB"),
    Tier.COMPUTE: (
        "FargateServiceSecurityGroup",
        "Allow inbound traffic from ALB to Fargate service",
    ),
    Tier.DATA: ("DatabaseSecurityGroup", "Allow inbound traffic from Fargate service to Database"),
}

_UPSTREAM_LABEL: dict[Tier, str] = {
    Tier.EDGE: "ALB",
    Tier.COMPUTE: "Fargate service",
}


@dataclass(frozen=True)
class SecurityChain:
    """The groups and rules a chain declared."""

    groups: dict[Tier, str]
    rules: tuple[SecurityRule, ...]

    def group(self, tier: Tier) -> str:
        return self.groups[tier]

    def rules_into(self, tier: Tier) -> list[SecurityRule]:
        return [r for r in self.rules if r.dest_tier is tier]


class SecurityGroupChain:
    """Declare the three security groups and their one-hop ingress rules."""

    def __init__(self, graph: ResourceGraph, vpc_path: str) -> None:
        self._graph = graph
        self._vpc = vpc_path

    def build(
        self,
        *,
        edge_port: int,
        edge_sources: Sequence[str],
        container_port: int,
        data_port: int,
    ) -> SecurityChain:
        if not edge_sources:
            raise CompositionError("The edge tier needs at least one ingress source")

        scope = self._graph.stack_name
        groups = {tier: self._declare_group(scope, tier) for tier in CHAIN}
        ports = {Tier.EDGE: edge_port, Tier.COMPUTE: container_port, Tier.DATA: data_port}

        rules: list[SecurityRule] = []
        for peer in dict.fromkeys(edge_sources):
            rules.append(
                self.permit(
                    peer,
                    Tier.NETWORK,
                    groups[Tier.EDGE],
                    Tier.EDGE,
                    port=edge_port,
                    description=_peer_description(peer, edge_port),
                )
            )
        for upstream, downstream in pairwise(CHAIN):
            rules.append(
                self.permit(
                    groups[upstream],
                    upstream,
                    groups[downstream],
                    downstream,
                    port=ports[downstream],
                    description=f"Allow traffic from {_UPSTREAM_LABEL[upstream]}",
                )
            )

        logger.debug("Declared security chain with %d rules", len(rules))
        return SecurityChain(groups=groups, rules=tuple(rules))

    def permit(
        self,
        source: str,
        source_tier: Tier,
        dest: str,
        dest_tier: Tier,
        *,
        port: int,
        description: str,
    ) -> SecurityRule:
        """Validate one rule and declare it as an ingress resource on *dest*.

        Tiers of graph nodes are read from the graph; the passed tiers must
        agree with them. External peers always sit in the network tier.
        """
        if dest not in self._graph:
            raise CompositionError(f"Ingress target {dest!r} is not a declared security group")
        if source not in self._graph and source_tier is not Tier.NETWORK:
            raise CompositionError(
                f"External peer {source} belongs to NETWORK, not {source_tier.name}"
            )
        for path, claimed in ((source, source_tier), (dest, dest_tier)):
            if path not in self._graph:
                continue
            actual = self._graph.get(path).tier
            if actual is not claimed:
                held = actual.name if actual is not None else "no tier"
                raise CompositionError(f"{path} belongs to {held}, not {claimed.name}")
        try:
            rule = SecurityRule(
                source=source,
                dest=dest,
                source_tier=source_tier,
                dest_tier=dest_tier,
                port=port,
                description=description,
            )
        except ValidationError as exc:
            raise CompositionError(str(exc.errors()[0]["msg"])) from exc

        props: dict[str, object] = {
            "GroupId": self._graph.get_att(dest, "GroupId"),
            "IpProtocol": rule.protocol,
            "FromPort": rule.port,
            "ToPort": rule.port,
            "Description": rule.description,
        }
        if source in self._graph:
            props["SourceSecurityGroupId"] = self._graph.get_att(source, "GroupId")
            label = self._graph.get(source).name
        elif is_prefix_list(source):
            props["SourcePrefixListId"] = source
            label = source
        else:
            props["CidrIp"] = source
            label = source.replace("/", "_")
        self._graph.add(
            dest,
            f"from {label}:{rule.port}",
            ResourceKind.SECURITY_GROUP_INGRESS,
            tier=dest_tier,
            properties=props,
        )
        return rule

    def _declare_group(self, scope: str, tier: Tier) -> str:
        node_id, description = _GROUPS[tier]
        resource = self._graph.add(
            scope,
            node_id,
            ResourceKind.SECURITY_GROUP,
            tier=tier,
            properties={
                "GroupDescription": description,
                "VpcId": self._graph.ref(self._vpc),
                "SecurityGroupEgress": [
                    {
                        "CidrIp": "0.0.0.0/0",
                        "Description": "Allow all outbound traffic by default",
                        "IpProtocol": "-1",
                    }
                ],
            },
        )
        return resource.path


def _peer_description(peer: str, port: int) -> str:
    if is_prefix_list(peer):
        return f"Allow port {port} from CloudFront"
    return f"Allow port {port} from {peer}"

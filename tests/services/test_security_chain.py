"""Tests for the tier-to-tier security group chain."""

from __future__ import annotations

import pytest

from topoctl.domain.errors import CompositionError
from topoctl.domain.security import hop_distance
from topoctl.domain.types import ResourceKind, Tier
from topoctl.infrastructure.graph.engine import ResourceGraph
from topoctl.services.security_chain import SecurityChain, SecurityGroupChain

STACK = "todo-app-stack"
VPC = f"{STACK}/VPC"


def _build(graph: ResourceGraph, sources: list[str] | None = None) -> SecurityChain:
    return SecurityGroupChain(graph, VPC).build(
        edge_port=80,
        edge_sources=sources if sources is not None else ["pl-58a04531"],
        container_port=8080,
        data_port=3306,
    )


class TestSecurityGroupChain:
    def test_three_groups(self, graph: ResourceGraph) -> None:
        chain = _build(graph)
        assert graph.count(ResourceKind.SECURITY_GROUP) == 3
        assert chain.group(Tier.EDGE) == f"{STACK}/AlbSecurityGroup"
        assert chain.group(Tier.COMPUTE) == f"{STACK}/FargateServiceSecurityGroup"
        assert chain.group(Tier.DATA) == f"{STACK}/DatabaseSecurityGroup"

    def test_every_rule_is_one_hop(self, graph: ResourceGraph) -> None:
        chain = _build(graph, ["pl-58a04531", "10.0.0.0/8"])
        assert len(chain.rules) == 4
        assert all(hop_distance(r.source_tier, r.dest_tier) == 1 for r in chain.rules)

    def test_ports_per_tier(self, graph: ResourceGraph) -> None:
        chain = _build(graph)
        assert [r.port for r in chain.rules_into(Tier.EDGE)] == [80]
        (compute_rule,) = chain.rules_into(Tier.COMPUTE)
        assert compute_rule.source == chain.group(Tier.EDGE)
        assert compute_rule.port == 8080
        (data_rule,) = chain.rules_into(Tier.DATA)
        assert data_rule.source == chain.group(Tier.COMPUTE)
        assert data_rule.port == 3306

    def test_data_tier_admits_only_compute(self, graph: ResourceGraph) -> None:
        chain = _build(graph)
        ingress = graph.children(chain.group(Tier.DATA))
        assert [r.name for r in ingress] == ["from FargateServiceSecurityGroup:3306"]
        (rule,) = ingress
        assert rule.properties["SourceSecurityGroupId"] == graph.get_att(
            chain.group(Tier.COMPUTE), "GroupId"
        )
        assert rule.properties["FromPort"] == rule.properties["ToPort"] == 3306

    def test_edge_peers(self, graph: ResourceGraph) -> None:
        chain = _build(graph, ["pl-58a04531", "203.0.113.0/24", "pl-58a04531"])
        ingress = {r.name: r for r in graph.children(chain.group(Tier.EDGE))}
        assert set(ingress) == {"from pl-58a04531:80", "from 203.0.113.0_24:80"}
        assert ingress["from pl-58a04531:80"].properties["SourcePrefixListId"] == "pl-58a04531"
        assert ingress["from 203.0.113.0_24:80"].properties["CidrIp"] == "203.0.113.0/24"

    def test_needs_an_edge_source(self, graph: ResourceGraph) -> None:
        with pytest.raises(CompositionError, match="at least one ingress source"):
            _build(graph, [])

    def test_skipping_a_tier_is_rejected(self, graph: ResourceGraph) -> None:
        chain = _build(graph)
        builder = SecurityGroupChain(graph, VPC)
        with pytest.raises(CompositionError, match="tiers must be adjacent"):
            builder.permit(
                chain.group(Tier.EDGE),
                Tier.EDGE,
                chain.group(Tier.DATA),
                Tier.DATA,
                port=3306,
                description="ALB straight to the database",
            )
        assert len(graph.children(chain.group(Tier.DATA))) == 1

    def test_tier_is_taken_from_the_graph(self, graph: ResourceGraph) -> None:
        chain = _build(graph)
        builder = SecurityGroupChain(graph, VPC)
        with pytest.raises(CompositionError, match="AlbSecurityGroup belongs to EDGE, not COMPUTE"):
            builder.permit(
                chain.group(Tier.EDGE),
                Tier.COMPUTE,
                chain.group(Tier.DATA),
                Tier.DATA,
                port=3306,
                description="ALB posing as the service",
            )
        assert len(graph.children(chain.group(Tier.DATA))) == 1

    def test_downstream_to_upstream_is_rejected(self, graph: ResourceGraph) -> None:
        chain = _build(graph)
        builder = SecurityGroupChain(graph, VPC)
        with pytest.raises(CompositionError, match="must come from the upstream tier"):
            builder.permit(
                chain.group(Tier.DATA),
                Tier.DATA,
                chain.group(Tier.COMPUTE),
                Tier.COMPUTE,
                port=8080,
                description="Database calling back into the service",
            )
        assert len(graph.children(chain.group(Tier.COMPUTE))) == 1

    def test_external_peer_stays_in_network_tier(self, graph: ResourceGraph) -> None:
        chain = _build(graph)
        builder = SecurityGroupChain(graph, VPC)
        with pytest.raises(CompositionError, match="External peer 10.0.0.0/8 belongs to NETWORK"):
            builder.permit(
                "10.0.0.0/8",
                Tier.COMPUTE,
                chain.group(Tier.DATA),
                Tier.DATA,
                port=3306,
                description="Office network to the database",
            )

    def test_unknown_target_group(self, graph: ResourceGraph) -> None:
        builder = SecurityGroupChain(graph, VPC)
        with pytest.raises(CompositionError, match="not a declared security group"):
            builder.permit(
                "pl-58a04531",
                Tier.NETWORK,
                f"{STACK}/Missing",
                Tier.EDGE,
                port=80,
                description="Nowhere",
            )

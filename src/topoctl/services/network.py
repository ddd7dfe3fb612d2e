"""Network tier — VPC, subnets per availability zone, gateways, routes.

Each AZ gets one public, one private (egress through NAT) and one
isolated subnet. CIDR blocks are carved in subnet-group order, so with
two AZs ``10.0.0.0/24`` and ``10.0.1.0/24`` are public, the next two are
private and the last two isolated.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field

from topoctl.config.models import NetworkConfig
from topoctl.domain.types import ResourceKind, SubnetType, Tier
from topoctl.infrastructure.graph.engine import ResourceGraph

logger = logging.getLogger(__name__)

SUBNET_GROUPS: tuple[SubnetType, ...] = (
    SubnetType.PUBLIC,
    SubnetType.PRIVATE,
    SubnetType.ISOLATED,
)


@dataclass
class NetworkTopology:
    vpc: str
    subnets: dict[SubnetType, list[str]] = field(default_factory=dict)
    nat_gateways: list[str] = field(default_factory=list)
    internet_gateway: str | None = None

    def subnet_ids(self, subnet_type: SubnetType) -> list[str]:
        return list(self.subnets.get(subnet_type, []))


class NetworkBuilder:
    """Declare the VPC and everything routed inside it."""

    def __init__(self, graph: ResourceGraph, app_name: str) -> None:
        self._graph = graph
        self._app = app_name

    def build(self, config: NetworkConfig) -> NetworkTopology:
        g = self._graph
        vpc = g.add(
            g.stack_name,
            "VPC",
            ResourceKind.VPC,
            tier=Tier.NETWORK,
            properties={
                "CidrBlock": config.cidr,
                "EnableDnsHostnames": True,
                "EnableDnsSupport": True,
                "InstanceTenancy": "default",
            },
        )
        vpc.tags["Name"] = f"{self._app}-vpc"
        topology = NetworkTopology(vpc=vpc.path)

        igw = g.add(vpc.path, "IGW", ResourceKind.INTERNET_GATEWAY, tier=Tier.NETWORK).path
        attachment = g.add(
            vpc.path,
            "VPCGW",
            ResourceKind.GATEWAY_ATTACHMENT,
            tier=Tier.NETWORK,
            properties={"VpcId": g.ref(vpc.path), "InternetGatewayId": g.ref(igw)},
        ).path
        topology.internet_gateway = igw

        blocks = config.subnet_blocks()
        for group in SUBNET_GROUPS:
            topology.subnets[group] = [
                self._declare_subnet(vpc.path, group, az, next(blocks))
                for az in range(config.max_azs)
            ]

        for public in topology.subnets[SubnetType.PUBLIC]:
            g.add(
                public,
                "DefaultRoute",
                ResourceKind.ROUTE,
                tier=Tier.NETWORK,
                properties={
                    "RouteTableId": g.ref(f"{public}/RouteTable"),
                    "DestinationCidrBlock": "0.0.0.0/0",
                    "GatewayId": g.ref(igw),
                },
                depends_on=[attachment],
            )

        for public in topology.subnets[SubnetType.PUBLIC][: config.nat_gateways]:
            eip = g.add(
                public,
                "EIP",
                ResourceKind.ELASTIC_IP,
                tier=Tier.NETWORK,
                properties={"Domain": "vpc"},
            ).path
            nat = g.add(
                public,
                "NATGateway",
                ResourceKind.NAT_GATEWAY,
                tier=Tier.NETWORK,
                properties={
                    "SubnetId": g.ref(public),
                    "AllocationId": g.get_att(eip, "AllocationId"),
                },
                depends_on=[f"{public}/DefaultRoute", f"{public}/RouteTableAssociation"],
            ).path
            topology.nat_gateways.append(nat)

        if topology.nat_gateways:
            # Private subnets spread over the NAT gateways round-robin.
            for index, private in enumerate(topology.subnets[SubnetType.PRIVATE]):
                nat = topology.nat_gateways[index % len(topology.nat_gateways)]
                g.add(
                    private,
                    "DefaultRoute",
                    ResourceKind.ROUTE,
                    tier=Tier.NETWORK,
                    properties={
                        "RouteTableId": g.ref(f"{private}/RouteTable"),
                        "DestinationCidrBlock": "0.0.0.0/0",
                        "NatGatewayId": g.ref(nat),
                    },
                )
        else:
            logger.warning("No NAT gateway; private subnets have no outbound route")

        logger.debug(
            "Declared VPC with %d subnets across %d AZs",
            sum(len(v) for v in topology.subnets.values()),
            config.max_azs,
        )
        return topology

    def _declare_subnet(
        self, vpc: str, group: SubnetType, az_index: int, block: ipaddress.IPv4Network
    ) -> str:
        g = self._graph
        subnet = g.add(
            vpc,
            f"{group}Subnet{az_index + 1}",
            ResourceKind.SUBNET,
            tier=Tier.NETWORK,
            properties={
                "VpcId": g.ref(vpc),
                "CidrBlock": str(block),
                "AvailabilityZone": {"Fn::Select": [az_index, {"Fn::GetAZs": ""}]},
                "MapPublicIpOnLaunch": group is SubnetType.PUBLIC,
            },
        )
        subnet.tags["aws-cdk:subnet-type"] = group.title()
        table = g.add(
            subnet.path,
            "RouteTable",
            ResourceKind.ROUTE_TABLE,
            tier=Tier.NETWORK,
            properties={"VpcId": g.ref(vpc)},
        ).path
        g.add(
            subnet.path,
            "RouteTableAssociation",
            ResourceKind.ROUTE_TABLE_ASSOCIATION,
            tier=Tier.NETWORK,
            properties={"RouteTableId": g.ref(table), "SubnetId": g.ref(subnet.path)},
        )
        return subnet.path


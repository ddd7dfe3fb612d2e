"""Tiers, resource kinds, and the small enums shared across builders.

ResourceKind is the closed set of node kinds the composer may emit.
Suppression and nag rules dispatch on it instead of inspecting types.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class Tier(IntEnum):
    """Security tier, valued by hop distance from public ingress."""

    NETWORK = 0
    EDGE = 1
    COMPUTE = 2
    DATA = 3


class ResourceKind(StrEnum):
    """Every kind of node that can appear in a resource graph."""

    STACK = "stack"
    VPC = "vpc"
    INTERNET_GATEWAY = "internet_gateway"
    GATEWAY_ATTACHMENT = "gateway_attachment"
    SUBNET = "subnet"
    ROUTE_TABLE = "route_table"
    ROUTE_TABLE_ASSOCIATION = "route_table_association"
    ROUTE = "route"
    ELASTIC_IP = "elastic_ip"
    NAT_GATEWAY = "nat_gateway"
    SECURITY_GROUP = "security_group"
    SECURITY_GROUP_INGRESS = "security_group_ingress"
    SECRET = "secret"
    DB_SUBNET_GROUP = "db_subnet_group"
    DB_CLUSTER = "db_cluster"
    DB_INSTANCE = "db_instance"
    ECR_REPOSITORY = "ecr_repository"
    IMAGE_DEPLOYMENT = "image_deployment"
    ECS_CLUSTER = "ecs_cluster"
    LOG_GROUP = "log_group"
    IAM_ROLE = "iam_role"
    TASK_DEFINITION = "task_definition"
    ECS_SERVICE = "ecs_service"
    SCALABLE_TARGET = "scalable_target"
    SCALING_POLICY = "scaling_policy"
    LOAD_BALANCER = "load_balancer"
    LISTENER = "listener"
    TARGET_GROUP = "target_group"
    BUCKET = "bucket"
    BUCKET_POLICY = "bucket_policy"
    BUCKET_DEPLOYMENT = "bucket_deployment"
    ORIGIN_ACCESS_CONTROL = "origin_access_control"
    VPC_ORIGIN = "vpc_origin"
    DISTRIBUTION = "distribution"
    CANARY = "canary"


# Target-format type names. STACK is a scope, not an emitted resource.
CFN_TYPES: dict[ResourceKind, str] = {
    ResourceKind.VPC: "AWS::EC2::VPC",
    ResourceKind.INTERNET_GATEWAY: "AWS::EC2::InternetGateway",
    ResourceKind.GATEWAY_ATTACHMENT: "AWS::EC2::VPCGatewayAttachment",
    ResourceKind.SUBNET: "AWS::EC2::Subnet",
    ResourceKind.ROUTE_TABLE: "AWS::EC2::RouteTable",
    ResourceKind.ROUTE_TABLE_ASSOCIATION: "AWS::EC2::SubnetRouteTableAssociation",
    ResourceKind.ROUTE: "AWS::EC2::Route",
    ResourceKind.ELASTIC_IP: "AWS::EC2::EIP",
    ResourceKind.NAT_GATEWAY: "AWS::EC2::NatGateway",
    ResourceKind.SECURITY_GROUP: "AWS::EC2::SecurityGroup",
    ResourceKind.SECURITY_GROUP_INGRESS: "AWS::EC2::SecurityGroupIngress",
    ResourceKind.SECRET: "AWS::SecretsManager::Secret",
    ResourceKind.DB_SUBNET_GROUP: "AWS::RDS::DBSubnetGroup",
    ResourceKind.DB_CLUSTER: "AWS::RDS::DBCluster",
    ResourceKind.DB_INSTANCE: "AWS::RDS::DBInstance",
    ResourceKind.ECR_REPOSITORY: "AWS::ECR::Repository",
    ResourceKind.IMAGE_DEPLOYMENT: "Custom::DockerImageDeployment",
    ResourceKind.ECS_CLUSTER: "AWS::ECS::Cluster",
    ResourceKind.LOG_GROUP: "AWS::Logs::LogGroup",
    ResourceKind.IAM_ROLE: "AWS::IAM::Role",
    ResourceKind.TASK_DEFINITION: "AWS::ECS::TaskDefinition",
    ResourceKind.ECS_SERVICE: "AWS::ECS::Service",
    ResourceKind.SCALABLE_TARGET: "AWS::ApplicationAutoScaling::ScalableTarget",
    ResourceKind.SCALING_POLICY: "AWS::ApplicationAutoScaling::ScalingPolicy",
    ResourceKind.LOAD_BALANCER: "AWS::ElasticLoadBalancingV2::LoadBalancer",
    ResourceKind.LISTENER: "AWS::ElasticLoadBalancingV2::Listener",
    ResourceKind.TARGET_GROUP: "AWS::ElasticLoadBalancingV2::TargetGroup",
    ResourceKind.BUCKET: "AWS::S3::Bucket",
    ResourceKind.BUCKET_POLICY: "AWS::S3::BucketPolicy",
    ResourceKind.BUCKET_DEPLOYMENT: "Custom::CDKBucketDeployment",
    ResourceKind.ORIGIN_ACCESS_CONTROL: "AWS::CloudFront::OriginAccessControl",
    ResourceKind.VPC_ORIGIN: "AWS::CloudFront::VpcOrigin",
    ResourceKind.DISTRIBUTION: "AWS::CloudFront::Distribution",
    ResourceKind.CANARY: "AWS::Synthetics::Canary",
}

# Kinds that accept resource tags in the target format.
TAGGABLE_KINDS: frozenset[ResourceKind] = frozenset(
    {
        ResourceKind.VPC,
        ResourceKind.INTERNET_GATEWAY,
        ResourceKind.SUBNET,
        ResourceKind.ROUTE_TABLE,
        ResourceKind.ELASTIC_IP,
        ResourceKind.NAT_GATEWAY,
        ResourceKind.SECURITY_GROUP,
        ResourceKind.SECRET,
        ResourceKind.DB_SUBNET_GROUP,
        ResourceKind.DB_CLUSTER,
        ResourceKind.DB_INSTANCE,
        ResourceKind.ECR_REPOSITORY,
        ResourceKind.ECS_CLUSTER,
        ResourceKind.LOG_GROUP,
        ResourceKind.IAM_ROLE,
        ResourceKind.TASK_DEFINITION,
        ResourceKind.ECS_SERVICE,
        ResourceKind.LOAD_BALANCER,
        ResourceKind.TARGET_GROUP,
        ResourceKind.BUCKET,
        ResourceKind.DISTRIBUTION,
        ResourceKind.CANARY,
    }
)


class DependencyCondition(StrEnum):
    """Container start-up dependency conditions."""

    START = "START"
    COMPLETE = "COMPLETE"
    SUCCESS = "SUCCESS"
    HEALTHY = "HEALTHY"


class SubnetType(StrEnum):
    """Subnet placement classes."""

    PUBLIC = "public"
    PRIVATE = "private"
    ISOLATED = "isolated"


class AllowedMethods(StrEnum):
    """Method sets an edge route may accept."""

    GET_HEAD = "GET_HEAD"
    GET_HEAD_OPTIONS = "GET_HEAD_OPTIONS"
    ALL = "ALL"


ALLOWED_METHODS: dict[AllowedMethods, tuple[str, ...]] = {
    AllowedMethods.GET_HEAD: ("GET", "HEAD"),
    AllowedMethods.GET_HEAD_OPTIONS: ("GET", "HEAD", "OPTIONS"),
    AllowedMethods.ALL: ("GET", "HEAD", "OPTIONS", "PUT", "PATCH", "POST", "DELETE"),
}


class CachePolicy(StrEnum):
    """Managed edge cache policies, valued by their managed policy id."""

    CACHING_OPTIMIZED = "658327ea-f89d-4fab-a63d-7e88639e58f6"
    CACHING_DISABLED = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"


# Managed origin request policy forwarding every viewer header, cookie and query string.
ALL_VIEWER_ORIGIN_REQUEST_POLICY = "216adef6-5c7f-47e4-b989-5492eafa07d3"

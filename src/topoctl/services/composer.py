"""TopologyComposer — one synthesis pass from configuration to graph.

Tiers are declared in a fixed order, each consuming handles produced by
the tiers before it:

    network -> security -> credentials -> data -> image registry
    -> compute -> load balancer -> static storage -> edge
    -> synthetic monitoring -> tag propagation

The composer's graph is replaced only when every tier succeeds. After a
failure it is an empty graph, never a partial one.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from topoctl.config.environments import build_stack_config, resolve_environment
from topoctl.config.models import StackConfig
from topoctl.domain.errors import TopologyError
from topoctl.domain.outputs import OutputSet, OutputValue
from topoctl.domain.types import TAGGABLE_KINDS, ResourceKind, SubnetType, Tier
from topoctl.infrastructure.graph.engine import ResourceGraph
from topoctl.infrastructure.templates import render_canary_script
from topoctl.services.compute import ComputeProvisioner, ComputeTopology
from topoctl.services.edge import EdgeRouter
from topoctl.services.network import NetworkBuilder, NetworkTopology
from topoctl.services.security_chain import SecurityChain, SecurityGroupChain
from topoctl.services.telemetry import trace_span

logger = logging.getLogger(__name__)

AURORA_ENGINE_VERSION = "8.0.mysql_aurora.3.08.0"
CANARY_RUNTIME = "syn-nodejs-puppeteer-11.0"
# Synthetics canary names are limited to 21 characters.
_CANARY_NAME_LIMIT = 21


@dataclass(frozen=True)
class LoadBalancerTopology:
    load_balancer: str
    listener: str
    target_group: str


@dataclass(frozen=True)
class Synthesis:
    """A completed composition: the graph plus handles to each tier."""

    env_key: str
    config: StackConfig
    graph: ResourceGraph
    network: NetworkTopology
    security: SecurityChain
    compute: ComputeTopology
    load_balancer: LoadBalancerTopology
    router: EdgeRouter
    distribution: str
    outputs: OutputSet

    @property
    def stack_name(self) -> str:
        return self.graph.stack_name


class TopologyComposer:
    """Build the complete resource graph for one environment.

    Args:
        app_name: Prefix for physical names; the stack is ``<app_name>-stack``.
        account: Target account id, recorded for the deployment collaborator.
        region: Target region.
        backend_source: Directory the application image is built from.
        frontend_source: Directory of static assets for the web bucket.
        canary_script: Canary handler source; rendered from the packaged
            template when omitted.
    """

    def __init__(
        self,
        app_name: str = "todo-app",
        *,
        account: str | None = None,
        region: str = "ap-northeast-1",
        backend_source: str = "../backend",
        frontend_source: str = "../frontend/dist",
        canary_script: str | None = None,
    ) -> None:
        self.app_name = app_name
        self.account = account
        self.region = region
        self.backend_source = backend_source
        self.frontend_source = frontend_source
        self.canary_script = canary_script if canary_script is not None else render_canary_script()
        self._graph = ResourceGraph(self.stack_name)

    @property
    def stack_name(self) -> str:
        return f"{self.app_name}-stack"

    @property
    def graph(self) -> ResourceGraph:
        """The last successfully composed graph (empty before and after failures)."""
        return self._graph

    def compose(self, env_key: str, overrides: Mapping[str, Any] | None = None) -> Synthesis:
        """Resolve *env_key* and compose its topology.

        Raises:
            ConfigurationError: unknown environment key or invalid merged config.
            CompositionError: a tier could not be declared.
        """
        self._graph = ResourceGraph(self.stack_name)
        config = resolve_environment(env_key, overrides)
        return self.compose_config(config, env_key=env_key)

    def compose_config(
        self, config: StackConfig | Mapping[str, Any], *, env_key: str = "custom"
    ) -> Synthesis:
        """Compose from an explicit configuration record."""
        self._graph = ResourceGraph(self.stack_name)
        if not isinstance(config, StackConfig):
            config = build_stack_config(config, label=env_key)

        graph = ResourceGraph(self.stack_name)
        try:
            synthesis = self._build(graph, config, env_key)
        except TopologyError as exc:
            logger.warning("synthesis.aborted env=%s code=%s: %s", env_key, exc.code, exc)
            raise
        self._graph = graph
        logger.info("synthesis.complete env=%s resources=%d", env_key, len(graph))
        return synthesis

    # ------------------------------------------------------------------
    # Build pass
    # ------------------------------------------------------------------

    def _build(self, graph: ResourceGraph, config: StackConfig, env_key: str) -> Synthesis:
        with self._tier(graph, "network"):
            network = NetworkBuilder(graph, self.app_name).build(config.network)

        with self._tier(graph, "security"):
            security = SecurityGroupChain(graph, network.vpc).build(
                edge_port=config.edge.port,
                edge_sources=[*config.edge.prefix_list_ids, *config.edge.cidrs],
                container_port=config.backend.container_port,
                data_port=config.database.port,
            )

        with self._tier(graph, "credentials"):
            credentials = self._declare_credentials(graph, config)

        with self._tier(graph, "data"):
            db_cluster = self._declare_database(graph, config, network, security, credentials)

        with self._tier(graph, "registry"):
            repository, image = self._declare_registry(graph)

        compute_tier = ComputeProvisioner(graph, self.app_name)
        with self._tier(graph, "compute"):
            compute = compute_tier.provision(
                backend=config.backend,
                database=config.database,
                vpc=network.vpc,
                repository=repository,
                credentials=credentials,
                db_cluster=db_cluster,
                security_group=security.group(Tier.COMPUTE),
                subnets=network.subnet_ids(SubnetType.PRIVATE),
                depends_on=[image],
            )

        with self._tier(graph, "load_balancer"):
            balancer = self._declare_load_balancer(graph, config, network, security)
            compute_tier.attach_to_target_group(
                compute, target_group=balancer.target_group, listener=balancer.listener
            )

        with self._tier(graph, "static"):
            bucket = self._declare_static_storage(graph, config)

        with self._tier(graph, "edge"):
            router = EdgeRouter.standard(
                static_origin=bucket,
                api_origin=balancer.load_balancer,
                api_pattern=config.edge.api_path_pattern,
                error_document=config.edge.error_document,
            )
            distribution = router.declare(graph)
            compute_tier.add_environment(
                compute.task,
                compute.task.default_container.name,
                "CORS_ALLOWED_ORIGINS",
                _https(graph, distribution),
            )

        if config.monitoring.enabled:
            with self._tier(graph, "monitoring"):
                self._declare_canary(graph, config, distribution)

        with self._tier(graph, "tags"):
            tagged = propagate_tags(graph, config.tags)
            logger.debug("Tagged %d resources", tagged)

        outputs = OutputSet(
            database_endpoint=OutputValue(
                description="The endpoint of the database",
                value=graph.get_att(db_cluster, "Endpoint.Address"),
            ),
            load_balancer_dns=OutputValue(
                description="The DNS name of the internal load balancer",
                value=graph.get_att(balancer.load_balancer, "DNSName"),
            ),
            edge_domain=OutputValue(
                description="The domain name of the CloudFront distribution",
                value=graph.get_att(distribution, "DomainName"),
            ),
            static_bucket=OutputValue(
                description="The name of the S3 bucket for the web app",
                value=graph.ref(bucket),
            ),
        )
        return Synthesis(
            env_key=env_key,
            config=config,
            graph=graph,
            network=network,
            security=security,
            compute=compute,
            load_balancer=balancer,
            router=router,
            distribution=distribution,
            outputs=outputs,
        )

    @contextmanager
    def _tier(self, graph: ResourceGraph, name: str) -> Generator[None]:
        before = len(graph)
        with trace_span(f"tier.{name}") as span:
            yield
            added = len(graph) - before
            if span is not None:
                span.annotate("resources", added)
        logger.debug("tier.built %s (+%d resources)", name, added)

    # ------------------------------------------------------------------
    # Tiers declared directly by the composer
    # ------------------------------------------------------------------

    def _declare_credentials(self, graph: ResourceGraph, config: StackConfig) -> str:
        return graph.add(
            graph.stack_name,
            "DatabaseCredentials",
            ResourceKind.SECRET,
            tier=Tier.DATA,
            properties={
                "Name": f"{self.app_name}-db-credentials",
                "Description": "Credentials for the application database",
                "GenerateSecretString": {
                    "SecretStringTemplate": json.dumps({"username": config.database.username}),
                    "GenerateStringKey": "password",
                    "ExcludePunctuation": True,
                    "IncludeSpace": False,
                },
            },
            deletion_policy="Delete",
        ).path

    def _declare_database(
        self,
        graph: ResourceGraph,
        config: StackConfig,
        network: NetworkTopology,
        security: SecurityChain,
        credentials: str,
    ) -> str:
        db = config.database
        cluster = graph.add(
            graph.stack_name,
            "DatabaseCluster",
            ResourceKind.DB_CLUSTER,
            tier=Tier.DATA,
            deletion_policy="Delete",
        ).path
        subnet_group = graph.add(
            cluster,
            "Subnets",
            ResourceKind.DB_SUBNET_GROUP,
            tier=Tier.DATA,
            properties={
                "DBSubnetGroupDescription": f"Subnets for {self.app_name} database",
                "SubnetIds": [graph.ref(s) for s in network.subnet_ids(SubnetType.ISOLATED)],
            },
        ).path
        graph.update_properties(
            cluster,
            Engine="aurora-mysql",
            EngineVersion=AURORA_ENGINE_VERSION,
            DatabaseName=db.name,
            Port=db.port,
            MasterUsername=_resolve_secret(graph, credentials, "username"),
            MasterUserPassword=_resolve_secret(graph, credentials, "password"),
            DBSubnetGroupName=graph.ref(subnet_group),
            VpcSecurityGroupIds=[graph.get_att(security.group(Tier.DATA), "GroupId")],
            ServerlessV2ScalingConfiguration={
                "MinCapacity": db.min_capacity,
                "MaxCapacity": db.max_capacity,
            },
            StorageEncrypted=True,
            CopyTagsToSnapshot=True,
        )
        graph.add(
            cluster,
            "Writer",
            ResourceKind.DB_INSTANCE,
            tier=Tier.DATA,
            properties={
                "DBClusterIdentifier": graph.ref(cluster),
                "DBInstanceClass": "db.serverless",
                "Engine": "aurora-mysql",
                "PubliclyAccessible": False,
            },
            deletion_policy="Delete",
        )
        return cluster

    def _declare_registry(self, graph: ResourceGraph) -> tuple[str, str]:
        repository = graph.add(
            graph.stack_name,
            "Repository",
            ResourceKind.ECR_REPOSITORY,
            tier=Tier.COMPUTE,
            properties={"RepositoryName": f"{self.app_name}-repository", "EmptyOnDelete": True},
            deletion_policy="Delete",
        ).path
        image = graph.add(
            graph.stack_name,
            "ImageDeployment",
            ResourceKind.IMAGE_DEPLOYMENT,
            tier=Tier.COMPUTE,
            properties={
                "SourceDirectory": self.backend_source,
                "Platform": "linux/amd64",
                "DestinationImageUri": {
                    "Fn::Join": ["", [graph.get_att(repository, "RepositoryUri"), ":latest"]]
                },
            },
        ).path
        return repository, image

    def _declare_load_balancer(
        self,
        graph: ResourceGraph,
        config: StackConfig,
        network: NetworkTopology,
        security: SecurityChain,
    ) -> LoadBalancerTopology:
        scope = graph.stack_name
        alb = graph.add(
            scope,
            "ALB",
            ResourceKind.LOAD_BALANCER,
            tier=Tier.EDGE,
            properties={
                "Name": f"{self.app_name}-internal-alb",
                "Scheme": "internal",
                "Type": "application",
                "SecurityGroups": [graph.get_att(security.group(Tier.EDGE), "GroupId")],
                "Subnets": [graph.ref(s) for s in network.subnet_ids(SubnetType.PRIVATE)],
                "LoadBalancerAttributes": [
                    {"Key": "deletion_protection.enabled", "Value": "false"},
                ],
            },
        ).path
        target_group = graph.add(
            scope,
            "TargetGroup",
            ResourceKind.TARGET_GROUP,
            tier=Tier.EDGE,
            properties={
                "Port": config.backend.container_port,
                "Protocol": "HTTP",
                "TargetType": "ip",
                "VpcId": graph.ref(network.vpc),
                "HealthCheckPath": config.backend.health_check_path,
                "HealthCheckIntervalSeconds": 30,
                "HealthCheckTimeoutSeconds": 5,
                "HealthyThresholdCount": 2,
                "UnhealthyThresholdCount": 5,
            },
        ).path
        listener = graph.add(
            alb,
            "HttpListener",
            ResourceKind.LISTENER,
            tier=Tier.EDGE,
            properties={
                "LoadBalancerArn": graph.ref(alb),
                "Port": config.edge.port,
                "Protocol": "HTTP",
                "DefaultActions": [{"Type": "forward", "TargetGroupArn": graph.ref(target_group)}],
            },
        ).path
        return LoadBalancerTopology(load_balancer=alb, listener=listener, target_group=target_group)

    def _declare_static_storage(self, graph: ResourceGraph, config: StackConfig) -> str:
        document = config.edge.error_document.lstrip("/")
        bucket = graph.add(
            graph.stack_name,
            "WebBucket",
            ResourceKind.BUCKET,
            tier=Tier.EDGE,
            properties={
                "PublicAccessBlockConfiguration": {
                    "BlockPublicAcls": True,
                    "BlockPublicPolicy": True,
                    "IgnorePublicAcls": True,
                    "RestrictPublicBuckets": True,
                },
                "WebsiteConfiguration": {"IndexDocument": document, "ErrorDocument": document},
            },
            deletion_policy="Delete",
        ).path
        graph.add(
            graph.stack_name,
            "DeployWebApp",
            ResourceKind.BUCKET_DEPLOYMENT,
            tier=Tier.EDGE,
            properties={
                "SourceDirectory": self.frontend_source,
                "DestinationBucketName": graph.ref(bucket),
                "Prune": True,
            },
        )
        return bucket

    def _declare_canary(self, graph: ResourceGraph, config: StackConfig, distribution: str) -> str:
        artifacts = config.monitoring.artifact_bucket or f"{self.app_name}-canary-artifacts"
        role = graph.add(
            graph.stack_name,
            "CanaryRole",
            ResourceKind.IAM_ROLE,
            tier=Tier.EDGE,
            properties={
                "AssumeRolePolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Action": "sts:AssumeRole",
                            "Effect": "Allow",
                            "Principal": {"Service": "lambda.amazonaws.com"},
                        }
                    ],
                },
                "ManagedPolicyArns": [
                    "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole",
                    "arn:aws:iam::aws:policy/CloudWatchSyntheticsFullAccess",
                    "arn:aws:iam::aws:policy/AWSXRayDaemonWriteAccess",
                ],
                "Policies": [
                    {
                        "PolicyName": "CanaryArtifacts",
                        "PolicyDocument": {
                            "Version": "2012-10-17",
                            "Statement": [
                                {
                                    "Action": ["s3:PutObject", "s3:GetBucketLocation"],
                                    "Effect": "Allow",
                                    "Resource": [
                                        f"arn:aws:s3:::{artifacts}",
                                        f"arn:aws:s3:::{artifacts}/*",
                                    ],
                                }
                            ],
                        },
                    }
                ],
            },
        ).path
        return graph.add(
            graph.stack_name,
            "Canary",
            ResourceKind.CANARY,
            tier=Tier.EDGE,
            properties={
                "Name": f"{self.app_name}-canary"[:_CANARY_NAME_LIMIT],
                "RuntimeVersion": CANARY_RUNTIME,
                "Code": {"Handler": "index.handler", "Script": self.canary_script},
                "ArtifactS3Location": f"s3://{artifacts}/{self.app_name}",
                "ExecutionRoleArn": graph.get_att(role, "Arn"),
                "Schedule": {"Expression": f"rate({config.monitoring.rate_minutes} minutes)"},
                "RunConfig": {
                    "ActiveTracing": True,
                    "EnvironmentVariables": {"SITE_URL": _https(graph, distribution)},
                },
                "StartCanaryAfterCreation": True,
            },
        ).path


def propagate_tags(graph: ResourceGraph, tags: Mapping[str, str]) -> int:
    """Copy stack tags onto every taggable resource.

    Tags a resource already carries win over stack tags with the same key.
    Returns the number of resources tagged.
    """
    if not tags:
        return 0
    tagged = 0
    for resource in graph.resources():
        if resource.kind in TAGGABLE_KINDS:
            resource.tags = {**tags, **resource.tags}
            tagged += 1
    return tagged


def _https(graph: ResourceGraph, distribution: str) -> dict[str, Any]:
    return {"Fn::Join": ["", ["https://", graph.get_att(distribution, "DomainName")]]}


def _resolve_secret(graph: ResourceGraph, secret: str, key: str) -> dict[str, Any]:
    return {
        "Fn::Join": [
            "",
            ["{{resolve:secretsmanager:", graph.ref(secret), f":SecretString:{key}::}}}}"],
        ]
    }

"""ComputeProvisioner — task topology, service, and scaling mode.

One task holds the essential application container plus two sidecars:
a CloudWatch agent and an init container that copies the OpenTelemetry
java agent into a shared volume. The application waits for the init
container to START.

Scaling is either a fixed ``DesiredCount`` or an autoscaling target with
a CPU target-tracking policy. In the autoscaled mode the service leaves
``DesiredCount`` unset and the policy converges it over time.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from topoctl.config.models import BackendConfig, DatabaseConfig
from topoctl.domain.containers import (
    ContainerDependency,
    ContainerHealthCheck,
    ContainerSpec,
    MountPoint,
    SecretRef,
    validate_task_containers,
)
from topoctl.domain.errors import CompositionError
from topoctl.domain.types import DependencyCondition, ResourceKind, Tier
from topoctl.infrastructure.graph.engine import ResourceGraph

logger = logging.getLogger(__name__)

OTEL_VOLUME = "opentelemetry-auto-instrumentation"
OTEL_MOUNT = "/otel-auto-instrumentation"
CLOUDWATCH_AGENT_IMAGE = "public.ecr.aws/cloudwatch-agent/cloudwatch-agent:latest-amd64"
ADOT_JAVA_IMAGE = "public.ecr.aws/aws-observability/adot-autoinstrumentation-java:v1.32.6"

_POLICY_ARN = "arn:aws:iam::aws:policy/{}"

EXECUTION_MANAGED_POLICIES = (
    "service-role/AmazonECSTaskExecutionRolePolicy",
    "AmazonSSMFullAccess",
    "CloudWatchAgentServerPolicy",
)
TASK_MANAGED_POLICIES = ("AmazonS3ReadOnlyAccess",)
TASK_TELEMETRY_ACTIONS = (
    "logs:PutLogEvents",
    "logs:CreateLogGroup",
    "logs:CreateLogStream",
    "logs:DescribeLogStreams",
    "logs:DescribeLogGroups",
    "logs:PutRetentionPolicy",
    "xray:PutTraceSegments",
    "xray:PutTelemetryRecords",
    "xray:GetSamplingRules",
    "xray:GetSamplingTargets",
    "xray:GetSamplingStatisticSummaries",
    "cloudwatch:PutMetricData",
    "ec2:DescribeVolumes",
    "ec2:DescribeTags",
    "ssm:GetParameters",
)

_CW_AGENT_CONFIG = (
    '{"agent": {"debug": true}, "traces": {"traces_collected": '
    '{"application_signals": {"enabled": true}}}, "logs": {"metrics_collected": '
    '{"application_signals": {"enabled": true}}}}'
)


@dataclass
class TaskTopology:
    """Containers of one task definition, as declared in the graph."""

    path: str
    family: str
    cpu: int
    memory: int
    containers: list[ContainerSpec]
    volumes: tuple[str, ...] = ()

    @property
    def default_container(self) -> ContainerSpec:
        return next(c for c in self.containers if c.essential)

    def container(self, name: str) -> ContainerSpec:
        for spec in self.containers:
            if spec.name == name:
                return spec
        raise CompositionError(f"Task '{self.family}' has no container '{name}'")


@dataclass
class ComputeTopology:
    """Everything the compute tier declared."""

    cluster: str
    task: TaskTopology
    service: str
    log_group: str
    scaling_target: str | None = None
    scaling_policy: str | None = None
    roles: dict[str, str] = field(default_factory=dict)

    @property
    def autoscaled(self) -> bool:
        return self.scaling_target is not None


class ComputeProvisioner:
    """Declare the compute tier into a :class:`ResourceGraph`."""

    def __init__(self, graph: ResourceGraph, app_name: str) -> None:
        self._graph = graph
        self._app = app_name

    # ------------------------------------------------------------------
    # High-level entry point used by the composer
    # ------------------------------------------------------------------

    def provision(
        self,
        *,
        backend: BackendConfig,
        database: DatabaseConfig,
        vpc: str,
        repository: str,
        credentials: str,
        db_cluster: str,
        security_group: str,
        subnets: list[str],
        depends_on: Sequence[str] = (),
    ) -> ComputeTopology:
        """Declare cluster, roles, task definition, and service.

        The service is not yet attached to a load balancer; see
        :meth:`attach_to_target_group`.
        """
        scope = self._graph.stack_name
        cluster = self._graph.add(
            scope,
            "Cluster",
            ResourceKind.ECS_CLUSTER,
            tier=Tier.COMPUTE,
            properties={"ClusterName": f"{self._app}-cluster"},
            depends_on=[vpc],
        ).path
        log_group = self._graph.add(
            scope,
            "ServiceLogGroup",
            ResourceKind.LOG_GROUP,
            tier=Tier.COMPUTE,
            properties={"LogGroupName": f"/ecs/{self._app}-service", "RetentionInDays": 30},
        ).path
        agent_log_group = self._graph.add(
            scope,
            "CloudWatchAgentLogGroup",
            ResourceKind.LOG_GROUP,
            tier=Tier.COMPUTE,
            properties={"RetentionInDays": 7},
        ).path

        roles = self._declare_roles(credentials)
        containers = self.application_containers(
            backend=backend,
            database=database,
            repository=repository,
            credentials=credentials,
            db_cluster=db_cluster,
            log_group=log_group,
            agent_log_group=agent_log_group,
        )
        task = self.define_task(
            family=f"{self._app}-task",
            cpu=backend.cpu_units,
            memory=backend.memory_mib,
            containers=containers,
            volumes=(OTEL_VOLUME,),
            execution_role=roles["execution"],
            task_role=roles["task"],
        )
        topology = self.define_service(
            task,
            cluster=cluster,
            backend=backend,
            security_group=security_group,
            subnets=subnets,
            depends_on=depends_on,
        )
        topology.log_group = log_group
        topology.roles = roles
        return topology

    # ------------------------------------------------------------------
    # Containers and task definition
    # ------------------------------------------------------------------

    def application_containers(
        self,
        *,
        backend: BackendConfig,
        database: DatabaseConfig,
        repository: str,
        credentials: str,
        db_cluster: str,
        log_group: str,
        agent_log_group: str,
    ) -> list[ContainerSpec]:
        """The application container and its two sidecars."""
        g = self._graph
        db_url = {
            "Fn::Join": [
                "",
                [
                    "jdbc:mysql://",
                    g.get_att(db_cluster, "Endpoint.Address"),
                    ":",
                    g.get_att(db_cluster, "Endpoint.Port"),
                    f"/{database.name}",
                ],
            ]
        }
        shared = MountPoint(source_volume=OTEL_VOLUME, container_path=OTEL_MOUNT)
        init = ContainerSpec(
            name="InitContainer",
            image=ADOT_JAVA_IMAGE,
            essential=False,
            command=("cp", "/javaagent.jar", f"{OTEL_MOUNT}/javaagent.jar"),
            mount_points=(shared,),
        )
        agent = ContainerSpec(
            name="CloudWatchAgent",
            image=CLOUDWATCH_AGENT_IMAGE,
            essential=False,
            environment={"CW_CONFIG_CONTENT": _CW_AGENT_CONFIG},
            log_group=agent_log_group,
            log_stream_prefix="CloudWatchAgent",
        )
        app = ContainerSpec(
            name=f"{self._app}-container",
            image={"Fn::Join": ["", [g.get_att(repository, "RepositoryUri"), ":latest"]]},
            environment={
                "SPRING_PROFILES_ACTIVE": backend.spring_profile,
                "DB_URL": db_url,
                "OTEL_RESOURCE_ATTRIBUTES": "service.name=todo_app",
                "OTEL_LOGS_EXPORTER": "none",
                "OTEL_METRICS_EXPORTER": "none",
                "OTEL_EXPORTER_OTLP_PROTOCOL": "http/protobuf",
                "OTEL_AWS_APPLICATION_SIGNALS_ENABLED": "true",
                "JAVA_TOOL_OPTIONS": f" -javaagent:{OTEL_MOUNT}/javaagent.jar",
                "OTEL_AWS_APPLICATION_SIGNALS_EXPORTER_ENDPOINT": (
                    "http://localhost:4316/v1/metrics"
                ),
                "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT": "http://localhost:4316/v1/traces",
                "OTEL_TRACES_SAMPLER": "xray",
                "OTEL_PROPAGATORS": "tracecontext,baggage,b3,xray",
            },
            secrets={
                "DB_USERNAME": SecretRef(secret=credentials, field="username"),
                "DB_PASSWORD": SecretRef(secret=credentials, field="password"),
            },
            container_port=backend.container_port,
            essential=True,
            depends_on=(
                ContainerDependency(container=init.name, condition=DependencyCondition.START),
            ),
            mount_points=(shared,),
            health_check=ContainerHealthCheck(
                command=(
                    "CMD-SHELL",
                    f"curl -f http://localhost:{backend.container_port}"
                    f"{backend.health_check_path} || exit 1",
                ),
            ),
            log_group=log_group,
            log_stream_prefix=self._app,
        )
        return [app, agent, init]

    def define_task(
        self,
        *,
        family: str,
        cpu: int,
        memory: int,
        containers: list[ContainerSpec],
        volumes: tuple[str, ...] = (),
        execution_role: str,
        task_role: str,
    ) -> TaskTopology:
        """Validate the container set and declare the task definition."""
        try:
            validate_task_containers(containers)
        except ValueError as exc:
            raise CompositionError(f"Task '{family}': {exc}") from exc
        for spec in containers:
            for mount in spec.mount_points:
                if mount.source_volume not in volumes:
                    raise CompositionError(
                        f"Container '{spec.name}' mounts undeclared volume '{mount.source_volume}'"
                    )

        self._graph.add(
            self._graph.stack_name,
            "TaskDefinition",
            ResourceKind.TASK_DEFINITION,
            tier=Tier.COMPUTE,
            properties={
                "Family": family,
                "Cpu": str(cpu),
                "Memory": str(memory),
                "NetworkMode": "awsvpc",
                "RequiresCompatibilities": ["FARGATE"],
                "ExecutionRoleArn": self._graph.get_att(execution_role, "Arn"),
                "TaskRoleArn": self._graph.get_att(task_role, "Arn"),
                "Volumes": [{"Name": name} for name in volumes],
                "ContainerDefinitions": [self._render_container(c) for c in containers],
            },
        )
        return TaskTopology(
            path=f"{self._graph.stack_name}/TaskDefinition",
            family=family,
            cpu=cpu,
            memory=memory,
            containers=list(containers),
            volumes=volumes,
        )

    def add_environment(self, task: TaskTopology, container: str, key: str, value: Any) -> None:
        """Append a plain environment entry to one container of *task*."""
        spec = task.container(container)
        try:
            updated = spec.with_environment(key, value)
        except ValueError as exc:
            raise CompositionError(str(exc)) from exc
        task.containers = [updated if c.name == container else c for c in task.containers]
        self._graph.update_properties(
            task.path,
            ContainerDefinitions=[self._render_container(c) for c in task.containers],
        )

    def _render_container(self, spec: ContainerSpec) -> dict[str, Any]:
        g = self._graph
        out: dict[str, Any] = {"Name": spec.name, "Image": spec.image, "Essential": spec.essential}
        if spec.environment:
            out["Environment"] = [
                {"Name": k, "Value": v} for k, v in sorted(spec.environment.items())
            ]
        if spec.secrets:
            out["Secrets"] = [
                {
                    "Name": k,
                    "ValueFrom": (
                        {"Fn::Join": ["", [g.ref(ref.secret), f":{ref.field}::"]]}
                        if ref.field
                        else g.ref(ref.secret)
                    ),
                }
                for k, ref in sorted(spec.secrets.items())
            ]
        if spec.container_port is not None:
            out["PortMappings"] = [{"ContainerPort": spec.container_port, "Protocol": "tcp"}]
        if spec.depends_on:
            out["DependsOn"] = [
                {"ContainerName": d.container, "Condition": str(d.condition)}
                for d in spec.depends_on
            ]
        if spec.command:
            out["Command"] = list(spec.command)
        if spec.mount_points:
            out["MountPoints"] = [
                {
                    "SourceVolume": m.source_volume,
                    "ContainerPath": m.container_path,
                    "ReadOnly": m.read_only,
                }
                for m in spec.mount_points
            ]
        if spec.health_check is not None:
            hc = spec.health_check
            out["HealthCheck"] = {
                "Command": list(hc.command),
                "Interval": hc.interval,
                "Timeout": hc.timeout,
                "Retries": hc.retries,
                "StartPeriod": hc.start_period,
            }
        if spec.log_group is not None:
            out["LogConfiguration"] = {
                "LogDriver": "awslogs",
                "Options": {
                    "awslogs-group": g.ref(spec.log_group),
                    "awslogs-stream-prefix": spec.log_stream_prefix or spec.name,
                    "awslogs-region": {"Ref": "AWS::Region"},
                },
            }
        return out

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def _declare_roles(self, credentials: str) -> dict[str, str]:
        g = self._graph
        scope = g.stack_name
        assume = {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Action": "sts:AssumeRole",
                    "Effect": "Allow",
                    "Principal": {"Service": "ecs-tasks.amazonaws.com"},
                }
            ],
        }
        execution = g.add(
            scope,
            "TaskExecutionRole",
            ResourceKind.IAM_ROLE,
            tier=Tier.COMPUTE,
            properties={
                "AssumeRolePolicyDocument": assume,
                "ManagedPolicyArns": [_POLICY_ARN.format(p) for p in EXECUTION_MANAGED_POLICIES],
                "Policies": [
                    {
                        "PolicyName": "SecretAccess",
                        "PolicyDocument": {
                            "Version": "2012-10-17",
                            "Statement": [
                                {
                                    "Action": [
                                        "secretsmanager:GetSecretValue",
                                        "secretsmanager:DescribeSecret",
                                    ],
                                    "Effect": "Allow",
                                    "Resource": g.ref(credentials),
                                }
                            ],
                        },
                    }
                ],
            },
        )
        task = g.add(
            scope,
            "TaskRole",
            ResourceKind.IAM_ROLE,
            tier=Tier.COMPUTE,
            properties={
                "AssumeRolePolicyDocument": assume,
                "ManagedPolicyArns": [_POLICY_ARN.format(p) for p in TASK_MANAGED_POLICIES],
                "Policies": [
                    {
                        "PolicyName": "CustomPolicy",
                        "PolicyDocument": {
                            "Version": "2012-10-17",
                            "Statement": [
                                {
                                    "Action": list(TASK_TELEMETRY_ACTIONS),
                                    "Effect": "Allow",
                                    "Resource": "*",
                                }
                            ],
                        },
                    }
                ],
            },
        )
        return {"execution": execution.path, "task": task.path}

    # ------------------------------------------------------------------
    # Service and scaling
    # ------------------------------------------------------------------

    def define_service(
        self,
        task: TaskTopology,
        *,
        cluster: str,
        backend: BackendConfig,
        security_group: str,
        subnets: list[str],
        depends_on: Sequence[str] = (),
    ) -> ComputeTopology:
        """Declare the service and, when configured, its autoscaling policy."""
        g = self._graph
        if (backend.desired_count is None) == (backend.scaling is None):
            raise CompositionError("Service needs exactly one of desired_count or scaling")

        props: dict[str, Any] = {
            "Cluster": g.ref(cluster),
            "ServiceName": backend.service_name,
            "TaskDefinition": g.ref(task.path),
            "LaunchType": "FARGATE",
            "DeploymentConfiguration": {"MinimumHealthyPercent": 100, "MaximumPercent": 200},
            "HealthCheckGracePeriodSeconds": 180,
            "NetworkConfiguration": {
                "AwsvpcConfiguration": {
                    "AssignPublicIp": "DISABLED",
                    "SecurityGroups": [g.get_att(security_group, "GroupId")],
                    "Subnets": [g.ref(s) for s in subnets],
                }
            },
        }
        if backend.desired_count is not None:
            props["DesiredCount"] = backend.desired_count

        service = g.add(
            g.stack_name,
            "FargateService",
            ResourceKind.ECS_SERVICE,
            tier=Tier.COMPUTE,
            properties=props,
            depends_on=depends_on,
        ).path

        topology = ComputeTopology(cluster=cluster, task=task, service=service, log_group="")
        if backend.scaling is not None:
            scaling = backend.scaling
            target = g.add(
                service,
                "TaskCountTarget",
                ResourceKind.SCALABLE_TARGET,
                tier=Tier.COMPUTE,
                properties={
                    "MinCapacity": scaling.min_capacity,
                    "MaxCapacity": scaling.max_capacity,
                    "ResourceId": {
                        "Fn::Join": [
                            "",
                            ["service/", g.ref(cluster), "/", g.get_att(service, "Name")],
                        ]
                    },
                    "ScalableDimension": "ecs:service:DesiredCount",
                    "ServiceNamespace": "ecs",
                },
            ).path
            policy = g.add(
                target,
                "CpuScaling",
                ResourceKind.SCALING_POLICY,
                tier=Tier.COMPUTE,
                properties={
                    "PolicyName": f"{self._app}-cpu-scaling",
                    "PolicyType": "TargetTrackingScaling",
                    "ScalingTargetId": g.ref(target),
                    "TargetTrackingScalingPolicyConfiguration": {
                        "PredefinedMetricSpecification": {
                            "PredefinedMetricType": "ECSServiceAverageCPUUtilization"
                        },
                        "TargetValue": scaling.target_cpu_utilization,
                        "ScaleInCooldown": scaling.scale_in_cooldown,
                        "ScaleOutCooldown": scaling.scale_out_cooldown,
                    },
                },
            ).path
            topology.scaling_target = target
            topology.scaling_policy = policy

        logger.debug(
            "Declared service %s (%s)",
            backend.service_name,
            "autoscaled" if topology.autoscaled else f"desired={backend.desired_count}",
        )
        return topology

    def attach_to_target_group(
        self, topology: ComputeTopology, *, target_group: str, listener: str
    ) -> None:
        """Register the service's essential container behind *target_group*.

        The service is also made to wait for *listener*, since a target
        group cannot route until a listener forwards to it.
        """
        app = topology.task.default_container
        if app.container_port is None:
            raise CompositionError(f"Container '{app.name}' exposes no port to register")
        self._graph.update_properties(
            topology.service,
            LoadBalancers=[
                {
                    "ContainerName": app.name,
                    "ContainerPort": app.container_port,
                    "TargetGroupArn": self._graph.ref(target_group),
                }
            ],
        )
        self._graph.add_dependency(topology.service, listener)

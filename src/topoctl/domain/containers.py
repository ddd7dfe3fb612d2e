"""Container and task topology models.

A task holds exactly one essential container (the default container) and
any number of sidecars. Start-up ordering is a DAG of explicit
:class:`~topoctl.domain.types.DependencyCondition` edges.
"""

from __future__ import annotations

from typing import Any

import networkx as nx
from pydantic import BaseModel, Field, model_validator

from topoctl.domain.types import DependencyCondition


class ContainerDependency(BaseModel):
    """Wait for *container* to reach *condition* before starting."""

    model_config = {"frozen": True}

    container: str
    condition: DependencyCondition


class MountPoint(BaseModel):
    model_config = {"frozen": True}

    source_volume: str
    container_path: str
    read_only: bool = False


class ContainerHealthCheck(BaseModel):
    model_config = {"frozen": True}

    command: tuple[str, ...]
    interval: int = 30
    timeout: int = 5
    retries: int = 3
    start_period: int = 60


class SecretRef(BaseModel):
    """A value resolved from a secret store when the task launches."""

    model_config = {"frozen": True}

    secret: str
    field: str | None = None


class ContainerSpec(BaseModel):
    """One container definition.

    ``environment`` is resolved at definition time, ``secrets`` at launch;
    a key may live in only one of them.
    """

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    image: str | dict[str, Any]
    environment: dict[str, Any] = Field(default_factory=dict)
    secrets: dict[str, SecretRef] = Field(default_factory=dict)
    container_port: int | None = Field(default=None, ge=1, le=65535)
    essential: bool = True
    depends_on: tuple[ContainerDependency, ...] = ()
    command: tuple[str, ...] = ()
    mount_points: tuple[MountPoint, ...] = ()
    health_check: ContainerHealthCheck | None = None
    log_group: str | None = None
    log_stream_prefix: str | None = None

    @model_validator(mode="after")
    def _disjoint_channels(self) -> ContainerSpec:
        overlap = sorted(set(self.environment) & set(self.secrets))
        if overlap:
            msg = f"Container '{self.name}' declares {overlap} as both environment and secret"
            raise ValueError(msg)
        return self

    def with_environment(self, key: str, value: Any) -> ContainerSpec:
        """Return a copy with one more plain environment entry."""
        if key in self.secrets:
            msg = f"Container '{self.name}' already receives '{key}' as a secret"
            raise ValueError(msg)
        return self.model_copy(update={"environment": {**self.environment, key: value}})


def validate_task_containers(containers: list[ContainerSpec]) -> ContainerSpec:
    """Check task-level container invariants and return the essential container.

    Raises:
        ValueError: on zero or several essential containers, duplicate names,
            dangling or cyclic dependencies, or a condition the target
            container cannot satisfy.
    """
    names = [c.name for c in containers]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate container names: {duplicates}")

    essential = [c for c in containers if c.essential]
    if len(essential) != 1:
        raise ValueError(
            f"A task needs exactly one essential container, found {len(essential)}"
        )

    by_name = {c.name: c for c in containers}
    order: nx.DiGraph = nx.DiGraph()
    order.add_nodes_from(names)
    for container in containers:
        for dep in container.depends_on:
            target = by_name.get(dep.container)
            if target is None:
                raise ValueError(
                    f"'{container.name}' depends on unknown container '{dep.container}'"
                )
            if target.name == container.name:
                raise ValueError(f"'{container.name}' cannot depend on itself")
            if dep.condition in (DependencyCondition.COMPLETE, DependencyCondition.SUCCESS):
                if target.essential:
                    raise ValueError(
                        f"Essential container '{target.name}' cannot be a "
                        f"{dep.condition} dependency target"
                    )
            if dep.condition is DependencyCondition.HEALTHY and target.health_check is None:
                raise ValueError(
                    f"'{target.name}' has no health check, cannot wait for HEALTHY"
                )
            order.add_edge(container.name, target.name)

    if not nx.is_directed_acyclic_graph(order):
        cycle = [edge[0] for edge in nx.find_cycle(order)]
        raise ValueError(f"Container dependency cycle: {' -> '.join(cycle)}")

    return essential[0]

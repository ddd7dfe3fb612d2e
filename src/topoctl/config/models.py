"""Pydantic configuration models for a single stack composition.

Defaults are baked in here; environment presets and ``topoctl.toml``
only carry the fields they change. Legacy key spellings
(``dbName``, ``task_cpu``, ``scaling_min_capacity`` ...) are accepted
as aliases so existing environment files validate unchanged.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterator
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from topoctl.domain.types import SubnetType

# Fargate task sizes: cpu units -> (min MiB, max MiB)
FARGATE_SIZES: dict[int, tuple[int, int]] = {
    256: (512, 2048),
    512: (1024, 4096),
    1024: (2048, 8192),
    2048: (4096, 16384),
    4096: (8192, 30720),
    8192: (16384, 61440),
    16384: (32768, 122880),
}


class DatabaseConfig(BaseModel):
    """[database] section."""

    model_config = {"frozen": True, "populate_by_name": True}

    name: str = Field(
        min_length=1,
        validation_alias=AliasChoices("name", "db_name", "dbName"),
    )
    port: int = Field(ge=1, le=65535)
    username: str = "admin"
    min_capacity: float = Field(default=0, ge=0, le=256)
    max_capacity: float = Field(default=1, ge=1, le=256)

    @model_validator(mode="after")
    def _capacity_bounds(self) -> DatabaseConfig:
        if self.min_capacity > self.max_capacity:
            msg = f"min_capacity {self.min_capacity} exceeds max_capacity {self.max_capacity}"
            raise ValueError(msg)
        return self


class ScalingConfig(BaseModel):
    """Autoscaling bounds for the backend service."""

    model_config = {"frozen": True, "populate_by_name": True}

    min_capacity: int = Field(ge=0)
    max_capacity: int = Field(ge=1)
    target_cpu_utilization: float = Field(default=70.0, gt=0, le=100)
    scale_in_cooldown: int = Field(default=60, ge=0)
    scale_out_cooldown: int = Field(default=60, ge=0)

    @model_validator(mode="after")
    def _bounds(self) -> ScalingConfig:
        if self.min_capacity > self.max_capacity:
            msg = f"min_capacity {self.min_capacity} exceeds max_capacity {self.max_capacity}"
            raise ValueError(msg)
        return self


class BackendConfig(BaseModel):
    """[backend] section.

    Exactly one of ``desired_count`` (fixed) or ``scaling`` (autoscaled)
    must be given.
    """

    model_config = {"frozen": True, "populate_by_name": True}

    container_port: int = Field(
        ge=1,
        le=65535,
        validation_alias=AliasChoices("container_port", "containerPort"),
    )
    cpu_units: int = Field(validation_alias=AliasChoices("cpu_units", "task_cpu", "cpuUnits"))
    memory_mib: int = Field(
        validation_alias=AliasChoices("memory_mib", "task_memory", "memoryMiB"),
    )
    service_name: str = Field(
        min_length=1,
        validation_alias=AliasChoices("service_name", "serviceName"),
    )
    desired_count: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("desired_count", "desiredCount"),
    )
    scaling: ScalingConfig | None = None
    health_check_path: str = "/actuator/health"
    spring_profile: str = "prod"

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_scaling(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = {k: data[k] for k in ("scaling_min_capacity", "scaling_max_capacity") if k in data}
        if not flat:
            return data
        if data.get("scaling") is not None:
            raise ValueError("Give scaling bounds either flat or under 'scaling', not both")
        rest = {k: v for k, v in data.items() if k not in flat}
        rest["scaling"] = {
            "min_capacity": flat.get("scaling_min_capacity", 1),
            "max_capacity": flat.get("scaling_max_capacity", 1),
        }
        return rest

    @model_validator(mode="after")
    def _check(self) -> BackendConfig:
        if self.desired_count is not None and self.scaling is not None:
            raise ValueError("desired_count and scaling are mutually exclusive")
        if self.desired_count is None and self.scaling is None:
            raise ValueError("one of desired_count or scaling is required")
        bounds = FARGATE_SIZES.get(self.cpu_units)
        if bounds is None:
            raise ValueError(f"Unsupported cpu_units {self.cpu_units}")
        low, high = bounds
        if not low <= self.memory_mib <= high:
            msg = f"memory_mib {self.memory_mib} outside {low}-{high} for {self.cpu_units} cpu"
            raise ValueError(msg)
        return self


class EdgeConfig(BaseModel):
    """[edge] section."""

    model_config = {"frozen": True}

    port: int = Field(default=80, ge=1, le=65535)
    # CloudFront origin-facing prefix list (ap-northeast-1)
    prefix_list_ids: tuple[str, ...] = ("pl-58a04531",)
    cidrs: tuple[str, ...] = ()
    api_path_pattern: str = "/api/*"
    error_document: str = "/index.html"

    @field_validator("prefix_list_ids")
    @classmethod
    def _prefix_lists(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for entry in value:
            if not entry.startswith("pl-"):
                raise ValueError(f"Prefix list id must start with 'pl-': {entry!r}")
        return value

    @field_validator("cidrs")
    @classmethod
    def _cidrs(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for entry in value:
            try:
                ipaddress.ip_network(entry)
            except ValueError as exc:
                raise ValueError(f"Invalid ingress CIDR {entry!r}: {exc}") from exc
        return value

    @field_validator("api_path_pattern")
    @classmethod
    def _api_pattern(cls, value: str) -> str:
        if value == "*" or not value.startswith("/"):
            raise ValueError(f"api_path_pattern must be an absolute path pattern: {value!r}")
        return value

    @field_validator("error_document")
    @classmethod
    def _error_document(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"error_document must start with '/': {value!r}")
        return value

    @model_validator(mode="after")
    def _has_source(self) -> EdgeConfig:
        if not self.prefix_list_ids and not self.cidrs:
            raise ValueError("edge needs at least one prefix list or CIDR source")
        return self


class MonitoringConfig(BaseModel):
    """[monitoring] section.

    ``artifact_bucket`` names an existing bucket for canary run artifacts;
    when unset, ``<app_name>-canary-artifacts`` is assumed.
    """

    model_config = {"frozen": True}

    enabled: bool = True
    rate_minutes: int = Field(default=5, ge=1, le=60)
    artifact_bucket: str | None = None


class NetworkConfig(BaseModel):
    """[network] section."""

    model_config = {"frozen": True}

    cidr: str = "10.0.0.0/16"
    max_azs: int = Field(default=2, ge=1, le=6)
    nat_gateways: int = Field(default=1, ge=0)
    subnet_mask: int = Field(default=24, ge=16, le=28)

    @field_validator("cidr")
    @classmethod
    def _ipv4_cidr(cls, value: str) -> str:
        try:
            ipaddress.IPv4Network(value)
        except ValueError as exc:
            raise ValueError(f"Invalid VPC CIDR {value!r}: {exc}") from exc
        return value

    @model_validator(mode="after")
    def _fits(self) -> NetworkConfig:
        if self.nat_gateways > self.max_azs:
            raise ValueError(f"nat_gateways {self.nat_gateways} exceeds max_azs {self.max_azs}")
        prefix = ipaddress.IPv4Network(self.cidr).prefixlen
        if self.subnet_mask < prefix:
            raise ValueError(f"subnet_mask /{self.subnet_mask} is wider than the VPC {self.cidr}")
        # one subnet per placement class in every AZ
        needed = self.max_azs * len(SubnetType)
        available = 2 ** (self.subnet_mask - prefix)
        if needed > available:
            msg = f"{self.cidr} holds {available} /{self.subnet_mask} subnets, {needed} needed"
            raise ValueError(msg)
        return self

    def subnet_blocks(self) -> Iterator[ipaddress.IPv4Network]:
        """Subnet-sized blocks of the VPC CIDR in address order."""
        return ipaddress.IPv4Network(self.cidr).subnets(new_prefix=self.subnet_mask)


class StackConfig(BaseModel):
    """Validated configuration record for one composition."""

    model_config = {"frozen": True}

    tags: dict[str, str] = Field(default_factory=dict)
    database: DatabaseConfig
    backend: BackendConfig
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    edge: EdgeConfig = Field(default_factory=EdgeConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


class SuppressionSettings(BaseModel):
    """[suppressions] section."""

    model_config = {"frozen": True}

    defaults: bool = True
    stack_wide: bool = True

"""Tests for container topology validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from topoctl.domain.containers import (
    ContainerDependency,
    ContainerHealthCheck,
    ContainerSpec,
    SecretRef,
    validate_task_containers,
)
from topoctl.domain.types import DependencyCondition


def _spec(name: str, *, essential: bool = False, **kwargs: object) -> ContainerSpec:
    return ContainerSpec(name=name, image=f"{name}:latest", essential=essential, **kwargs)


def _dep(container: str, condition: DependencyCondition) -> ContainerDependency:
    return ContainerDependency(container=container, condition=condition)


class TestContainerSpec:
    def test_environment_and_secret_keys_are_disjoint(self) -> None:
        with pytest.raises(ValidationError, match="both environment and secret"):
            ContainerSpec(
                name="app",
                image="app:latest",
                environment={"DB_PASSWORD": "x"},
                secrets={"DB_PASSWORD": SecretRef(secret="creds", field="password")},
            )

    def test_with_environment_returns_copy(self) -> None:
        spec = _spec("app", essential=True, environment={"A": "1"})
        updated = spec.with_environment("B", "2")
        assert updated.environment == {"A": "1", "B": "2"}
        assert spec.environment == {"A": "1"}

    def test_with_environment_rejects_secret_key(self) -> None:
        spec = _spec("app", essential=True, secrets={"TOKEN": SecretRef(secret="s")})
        with pytest.raises(ValueError, match="already receives 'TOKEN'"):
            spec.with_environment("TOKEN", "plain")

    def test_port_range(self) -> None:
        with pytest.raises(ValidationError):
            _spec("app", container_port=70000)


class TestValidateTaskContainers:
    def test_returns_essential_container(self) -> None:
        app = _spec("app", essential=True, depends_on=(_dep("init", DependencyCondition.START),))
        init = _spec("init")
        assert validate_task_containers([app, init]) is app

    def test_requires_exactly_one_essential(self) -> None:
        with pytest.raises(ValueError, match="exactly one essential container, found 0"):
            validate_task_containers([_spec("a"), _spec("b")])
        with pytest.raises(ValueError, match="found 2"):
            validate_task_containers([_spec("a", essential=True), _spec("b", essential=True)])

    def test_duplicate_names(self) -> None:
        with pytest.raises(ValueError, match="Duplicate container names"):
            validate_task_containers([_spec("a", essential=True), _spec("a")])

    def test_unknown_dependency(self) -> None:
        app = _spec("app", essential=True, depends_on=(_dep("ghost", DependencyCondition.START),))
        with pytest.raises(ValueError, match="unknown container 'ghost'"):
            validate_task_containers([app])

    def test_self_dependency(self) -> None:
        app = _spec("app", essential=True, depends_on=(_dep("app", DependencyCondition.START),))
        with pytest.raises(ValueError, match="cannot depend on itself"):
            validate_task_containers([app])

    @pytest.mark.parametrize(
        "condition", [DependencyCondition.COMPLETE, DependencyCondition.SUCCESS]
    )
    def test_essential_cannot_be_completion_target(self, condition: DependencyCondition) -> None:
        app = _spec("app", essential=True)
        sidecar = _spec("sidecar", depends_on=(_dep("app", condition),))
        with pytest.raises(ValueError, match="Essential container 'app'"):
            validate_task_containers([app, sidecar])

    def test_healthy_requires_health_check(self) -> None:
        app = _spec("app", essential=True, depends_on=(_dep("db", DependencyCondition.HEALTHY),))
        db = _spec("db")
        with pytest.raises(ValueError, match="no health check"):
            validate_task_containers([app, db])

    def test_healthy_with_health_check(self) -> None:
        app = _spec("app", essential=True, depends_on=(_dep("db", DependencyCondition.HEALTHY),))
        db = _spec("db", health_check=ContainerHealthCheck(command=("CMD", "true")))
        assert validate_task_containers([app, db]).name == "app"

    def test_cycle(self) -> None:
        app = _spec("app", essential=True, depends_on=(_dep("a", DependencyCondition.START),))
        a = _spec("a", depends_on=(_dep("b", DependencyCondition.START),))
        b = _spec("b", depends_on=(_dep("a", DependencyCondition.START),))
        with pytest.raises(ValueError, match="cycle"):
            validate_task_containers([app, a, b])

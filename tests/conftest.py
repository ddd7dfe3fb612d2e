"""Shared pytest fixtures and test helpers for topoctl tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from topoctl.config.environments import AUTOSCALING_OVERRIDE
from topoctl.config.settings import TopoSettings
from topoctl.domain.types import ResourceKind, Tier
from topoctl.infrastructure.graph.engine import ResourceGraph
from topoctl.services.composer import Synthesis, TopologyComposer
from topoctl.services.telemetry import _current_span, disable_telemetry

STACK = "todo-app-stack"


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep TOPOCTL_* variables and any stray topoctl.toml out of every test."""
    for key in list(os.environ):
        if key.startswith("TOPOCTL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Generator[None]:
    yield
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Generator[None]:
    """CLI invocations reconfigure logging onto the runner's streams; undo that."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    topo_level = logging.getLogger("topoctl").level
    yield
    root.handlers = handlers
    root.setLevel(level)
    logging.getLogger("topoctl").setLevel(topo_level)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def graph() -> ResourceGraph:
    """Empty graph with a VPC to hang resources off."""
    g = ResourceGraph(STACK)
    g.add(STACK, "VPC", ResourceKind.VPC, tier=Tier.NETWORK)
    return g


@pytest.fixture
def composer() -> TopologyComposer:
    return TopologyComposer("todo-app", canary_script="exports.handler = async () => {};")


@pytest.fixture
def dev(composer: TopologyComposer) -> Synthesis:
    """Composed ``dev`` environment (fixed desired count)."""
    return composer.compose("dev")


@pytest.fixture
def autoscaled(composer: TopologyComposer) -> Synthesis:
    """Composed ``prd`` environment switched to autoscaling."""
    return composer.compose("prd", AUTOSCALING_OVERRIDE)


@pytest.fixture
def settings() -> TopoSettings:
    return TopoSettings.from_cli()

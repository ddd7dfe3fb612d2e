"""Render a ResourceGraph into a CloudFormation-shaped template document."""

from __future__ import annotations

import json
from collections.abc import Mapping
from io import StringIO
from typing import Any, Literal, TypeAlias

from ruamel.yaml import YAML

from topoctl.infrastructure.graph.engine import Resource, ResourceGraph

TemplateFormat: TypeAlias = Literal["json", "yaml"]

TEMPLATE_VERSION = "2010-09-09"


def render_template(
    graph: ResourceGraph,
    outputs: Mapping[str, Mapping[str, Any]] | None = None,
    *,
    description: str | None = None,
) -> dict[str, Any]:
    """Build the template mapping for every emitted resource in *graph*.

    Raises:
        CompositionError: the dependency graph contains a cycle.
    """
    # Validates acyclicity before anything is emitted.
    graph.deployment_order()

    template: dict[str, Any] = {"AWSTemplateFormatVersion": TEMPLATE_VERSION}
    if description:
        template["Description"] = description
    template["Resources"] = {
        resource.logical_id: _render_resource(graph, resource) for resource in graph.resources()
    }
    if outputs:
        template["Outputs"] = {name: dict(value) for name, value in outputs.items()}
    return template


def _render_resource(graph: ResourceGraph, resource: Resource) -> dict[str, Any]:
    entry: dict[str, Any] = {"Type": resource.cfn_type}
    properties = dict(resource.properties)
    if resource.tags:
        properties["Tags"] = [{"Key": k, "Value": v} for k, v in sorted(resource.tags.items())]
    if properties:
        entry["Properties"] = properties

    depends_on = [
        graph.get(path).logical_id for path in graph.dependencies(resource.path, explicit_only=True)
    ]
    if depends_on:
        entry["DependsOn"] = sorted(depends_on)
    if resource.deletion_policy:
        entry["DeletionPolicy"] = resource.deletion_policy
        entry["UpdateReplacePolicy"] = resource.deletion_policy

    metadata: dict[str, Any] = {"aws:cdk:path": resource.path}
    if resource.suppressions:
        metadata["cdk_nag"] = {
            "rules_to_suppress": [
                s.to_metadata()
                for _, s in sorted(resource.suppressions.items(), key=lambda item: item[0])
            ]
        }
    entry["Metadata"] = metadata
    return entry


def _new_yaml() -> YAML:
    y = YAML()
    y.default_flow_style = False
    y.width = 4096
    return y


def dump_template(template: Mapping[str, Any], fmt: TemplateFormat = "json") -> str:
    """Serialize *template* as JSON (indented) or block-style YAML."""
    if fmt == "json":
        return json.dumps(template, indent=2) + "\n"
    if fmt == "yaml":
        buf = StringIO()
        _new_yaml().dump(_plain(template), buf)
        return buf.getvalue()
    raise ValueError(f"Unsupported template format: {fmt!r}")


def _plain(value: Any) -> Any:
    """Tuples and enum members become plain lists and strings for the YAML emitter."""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, str):
        return str(value)
    return value

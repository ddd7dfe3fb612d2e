"""ResourceGraph — the in-memory declarative structure produced by composition.

Two NetworkX DiGraphs share the same node keys (hierarchical paths):
- containment: stack root -> scope -> child, a tree walked by visitors
- dependencies: resource -> resource it needs deployed first

Dependency edges are recorded both explicitly (``depends_on``) and
implicitly from ``Ref`` / ``Fn::GetAtt`` tokens found in properties.
A token may only point at a node that already exists, so a tier that
references a not-yet-built dependency fails at declaration time.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

import networkx as nx

from topoctl.domain.errors import CompositionError
from topoctl.domain.types import CFN_TYPES, ResourceKind, Tier

if TYPE_CHECKING:
    from topoctl.domain.suppressions import Suppression

_Graph: TypeAlias = nx.DiGraph

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def logical_id_for(path: str) -> str:
    """Derive a stable logical id from a hierarchical path.

    The stack name is dropped, the remaining segments are concatenated
    alphanumerically, and an 8-character hash of the relative path keeps
    ids unique when two paths collapse to the same letters.
    """
    parts = path.split("/")[1:]
    human = "".join(_NON_ALNUM.sub("", p) for p in parts)[:240]
    digest = hashlib.md5("/".join(parts).encode("utf-8")).hexdigest()[:8].upper()
    return f"{human}{digest}"


@dataclass
class Resource:
    """One node in the resource graph."""

    path: str
    kind: ResourceKind
    logical_id: str
    tier: Tier | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    deletion_policy: str | None = None
    suppressions: dict[str, Suppression] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def cfn_type(self) -> str | None:
        return CFN_TYPES.get(self.kind)

    @property
    def emitted(self) -> bool:
        """Whether the node becomes a resource in the target template."""
        return self.kind is not ResourceKind.STACK

    def attach(self, suppression: Suppression) -> bool:
        """Attach a suppression; returns False if the rule id is already present."""
        if suppression.rule_id in self.suppressions:
            return False
        self.suppressions[suppression.rule_id] = suppression
        return True


class ResourceGraph:
    """Containment tree plus dependency DAG over :class:`Resource` nodes."""

    def __init__(self, stack_name: str) -> None:
        if not stack_name or "/" in stack_name:
            raise CompositionError(f"Invalid stack name: {stack_name!r}")
        self.stack_name = stack_name
        self._tree: _Graph = nx.DiGraph()
        self._deps: _Graph = nx.DiGraph()
        self._by_logical: dict[str, str] = {}
        root = Resource(path=stack_name, kind=ResourceKind.STACK, logical_id=stack_name)
        self._tree.add_node(stack_name, resource=root, order=0)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @property
    def root(self) -> Resource:
        return self.get(self.stack_name)

    def add(
        self,
        scope: str,
        node_id: str,
        kind: ResourceKind,
        *,
        tier: Tier | None = None,
        properties: dict[str, Any] | None = None,
        depends_on: Iterable[str] = (),
        deletion_policy: str | None = None,
    ) -> Resource:
        """Declare a resource under *scope* and record its dependencies.

        Raises:
            CompositionError: unknown scope, duplicate path, a stack-kind
                child, or a token/dependency naming an undeclared node.
        """
        if kind is ResourceKind.STACK:
            raise CompositionError("A stack cannot be nested inside another scope")
        if scope not in self._tree:
            raise CompositionError(f"Scope '{scope}' has not been declared")
        if not node_id or "/" in node_id:
            raise CompositionError(f"Invalid node id {node_id!r} under '{scope}'")
        path = f"{scope}/{node_id}"
        if path in self._tree:
            raise CompositionError(f"Duplicate resource path '{path}'")

        props = dict(properties or {})
        targets = [self._path_for_token(path, lid) for lid in _token_targets(props)]
        explicit = list(depends_on)
        for dep in explicit:
            if dep not in self._tree:
                raise CompositionError(f"'{path}' depends on undeclared '{dep}'")

        resource = Resource(
            path=path,
            kind=kind,
            logical_id=logical_id_for(path),
            tier=tier,
            properties=props,
            deletion_policy=deletion_policy,
        )
        self._tree.add_node(path, resource=resource, order=self._tree.number_of_nodes())
        self._tree.add_edge(scope, path)
        self._deps.add_node(path)
        self._by_logical[resource.logical_id] = path
        for target in targets:
            self._link(path, target, explicit=False)
        for dep in explicit:
            self._link(path, dep, explicit=True)
        return resource

    def update_properties(self, path: str, **changes: Any) -> Resource:
        """Replace top-level properties of an existing node during the pass."""
        resource = self.get(path)
        for lid in _token_targets(changes):
            self._link(path, self._path_for_token(path, lid), explicit=False)
        resource.properties.update(changes)
        return resource

    def add_dependency(self, path: str, depends_on: str) -> None:
        """Record that *path* must be deployed after *depends_on*."""
        self.get(path)
        self.get(depends_on)
        self._link(path, depends_on, explicit=True)

    def _link(self, path: str, target: str, *, explicit: bool) -> None:
        if path == target:
            return
        if self._deps.has_edge(path, target):
            if explicit:
                self._deps.edges[path, target]["explicit"] = True
            return
        self._deps.add_edge(path, target, explicit=explicit)

    def _path_for_token(self, path: str, logical_id: str) -> str:
        target = self._by_logical.get(logical_id)
        if target is None:
            raise CompositionError(f"'{path}' references undeclared resource '{logical_id}'")
        return target

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def ref(self, path: str) -> dict[str, Any]:
        return {"Ref": self.get(path).logical_id}

    def get_att(self, path: str, attribute: str) -> dict[str, Any]:
        return {"Fn::GetAtt": [self.get(path).logical_id, attribute]}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, path: str) -> Resource:
        try:
            return self._tree.nodes[path]["resource"]
        except KeyError:
            raise CompositionError(f"Resource '{path}' has not been declared") from None

    def __contains__(self, path: object) -> bool:
        return path in self._tree

    def __len__(self) -> int:
        """Number of emitted resources (the stack root is not counted)."""
        return self._tree.number_of_nodes() - 1

    def __iter__(self) -> Iterator[Resource]:
        return self.walk()

    def children(self, path: str) -> list[Resource]:
        self.get(path)
        kids = sorted(self._tree.successors(path), key=lambda p: self._tree.nodes[p]["order"])
        return [self._tree.nodes[p]["resource"] for p in kids]

    def descendants(self, path: str) -> list[Resource]:
        """Every node beneath *path* in declaration order."""
        self.get(path)
        below = sorted(nx.descendants(self._tree, path), key=lambda p: self._tree.nodes[p]["order"])
        return [self._tree.nodes[p]["resource"] for p in below]

    def walk(self) -> Iterator[Resource]:
        """Containment preorder from the stack root, each node exactly once."""
        stack = [self.stack_name]
        while stack:
            path = stack.pop()
            yield self._tree.nodes[path]["resource"]
            kids = sorted(
                self._tree.successors(path),
                key=lambda p: self._tree.nodes[p]["order"],
                reverse=True,
            )
            stack.extend(kids)

    def resources(self, kind: ResourceKind | None = None) -> list[Resource]:
        """Emitted resources, optionally filtered by kind, in walk order."""
        return [r for r in self.walk() if r.emitted and (kind is None or r.kind is kind)]

    def count(self, kind: ResourceKind) -> int:
        return len(self.resources(kind))

    def dependencies(self, path: str, *, explicit_only: bool = False) -> list[str]:
        """Paths that *path* depends on, sorted."""
        self.get(path)
        return sorted(
            target
            for _, target, data in self._deps.out_edges(path, data=True)
            if data["explicit"] or not explicit_only
        )

    def deployment_order(self) -> list[str]:
        """Resource paths ordered so every dependency precedes its dependents.

        Ties are broken by path so the order is deterministic.
        """
        try:
            ordered = list(nx.lexicographical_topological_sort(self._deps.reverse(copy=False)))
        except nx.NetworkXUnfeasible as exc:
            cycle = nx.find_cycle(self._deps)
            raise CompositionError(f"Dependency cycle: {cycle}") from exc
        return ordered

    def stats(self) -> dict[str, int]:
        """Resource counts keyed by kind value."""
        counts: dict[str, int] = {}
        for resource in self.resources():
            counts[str(resource.kind)] = counts.get(str(resource.kind), 0) + 1
        return dict(sorted(counts.items()))


def _token_targets(value: Any) -> list[str]:
    """Collect logical ids referenced by Ref / Fn::GetAtt tokens in *value*."""
    found: list[str] = []
    if isinstance(value, dict):
        if set(value) == {"Ref"} and isinstance(value["Ref"], str):
            if not value["Ref"].startswith("AWS::"):
                found.append(value["Ref"])
            return found
        if set(value) == {"Fn::GetAtt"}:
            found.append(value["Fn::GetAtt"][0])
            return found
        for item in value.values():
            found.extend(_token_targets(item))
    elif isinstance(value, (list, tuple)):
        for item in value:
            found.extend(_token_targets(item))
    return found

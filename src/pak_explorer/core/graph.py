"""Directed dependency graph over canonical asset ids.

The graph is built once from a finished catalog and never changes afterwards.
Cycles are legitimate data; every traversal that goes beyond direct neighbours
carries a visited set.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Container, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pak_explorer.core.catalog import AssetCatalog, bare_name
from pak_explorer.models import AssetRecord

logger = logging.getLogger(__name__)

SENTINEL_PREFIX = "external::"


def sentinel_id(reference: str, *taken: Container[str]) -> str:
    """Node id for an unresolved reference, suffixed when it would shadow a real asset id."""
    candidate = f"{SENTINEL_PREFIX}{reference}"
    n = 1
    while any(candidate in ids for ids in taken):
        n += 1
        candidate = f"{SENTINEL_PREFIX}{reference}#{n}"
    return candidate


@dataclass(frozen=True, order=True)
class DependencyEdge:
    source: str
    target: str

    @property
    def is_self_reference(self) -> bool:
        return self.source == self.target


@dataclass(frozen=True)
class DependencyTree:
    asset_id: str
    depth: int
    children: tuple[DependencyTree, ...] = ()
    is_circular: bool = False
    is_self_reference: bool = False
    is_external: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "depth": self.depth,
            "is_circular": self.is_circular,
            "is_self_reference": self.is_self_reference,
            "is_external": self.is_external,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class GraphStatistics:
    total_edges: int
    resolved_edges: int
    unresolved_edges: int
    self_references: list[str] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)
    most_referenced: list[tuple[str, int]] = field(default_factory=list)
    max_depth: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_edges": self.total_edges,
            "resolved_edges": self.resolved_edges,
            "unresolved_edges": self.unresolved_edges,
            "self_references": self.self_references,
            "cycles": self.cycles,
            "orphans": self.orphans,
            "most_referenced": [{"asset_id": a, "count": c} for a, c in self.most_referenced],
            "max_depth": self.max_depth,
        }


class DependencyGraph:
    def __init__(
        self,
        nodes: Iterable[str] = (),
        edges: Iterable[DependencyEdge] = (),
        unresolved: Mapping[str, str] | None = None,
    ) -> None:
        self._nodes: tuple[str, ...] = tuple(nodes)
        self._node_set = frozenset(self._nodes)
        self._unresolved: dict[str, str] = dict(unresolved or {})

        forward: dict[str, dict[str, None]] = {}
        reverse: dict[str, dict[str, None]] = {}
        ordered: list[DependencyEdge] = []
        seen: set[DependencyEdge] = set()
        for edge in edges:
            if edge in seen:
                continue
            seen.add(edge)
            ordered.append(edge)
            forward.setdefault(edge.source, {})[edge.target] = None
            reverse.setdefault(edge.target, {})[edge.source] = None

        self._edges: tuple[DependencyEdge, ...] = tuple(ordered)
        self._edge_set = frozenset(seen)
        self._forward = {k: tuple(v) for k, v in forward.items()}
        self._reverse = {k: tuple(v) for k, v in reverse.items()}

    @property
    def nodes(self) -> tuple[str, ...]:
        return self._nodes

    @property
    def edges(self) -> tuple[DependencyEdge, ...]:
        return self._edges

    @property
    def edge_set(self) -> frozenset[DependencyEdge]:
        return self._edge_set

    @property
    def unresolved(self) -> dict[str, str]:
        """Sentinel node id -> the reference string that could not be resolved."""
        return dict(self._unresolved)

    def __len__(self) -> int:
        return len(self._edges)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_set or node_id in self._unresolved

    def is_external(self, node_id: str) -> bool:
        return node_id in self._unresolved

    def dependencies_of(self, node_id: str) -> set[str]:
        return set(self._forward.get(node_id, ()))

    def dependents_of(self, node_id: str) -> set[str]:
        return set(self._reverse.get(node_id, ()))

    def ordered_dependencies(self, node_id: str) -> list[str]:
        """Direct dependencies in the order the references were recorded."""
        return list(self._forward.get(node_id, ()))

    def _closure(self, start: str, adjacency: Mapping[str, tuple[str, ...]], visited: set[str] | None) -> list[str]:
        visited = set() if visited is None else visited
        visited.add(start)
        result: list[str] = []
        stack = list(reversed(adjacency.get(start, ())))
        while stack:
            node = stack.pop()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            stack.extend(reversed(adjacency.get(node, ())))
        return result

    def transitive_dependencies(self, node_id: str, visited: set[str] | None = None) -> list[str]:
        """Everything reachable from ``node_id``, depth-first, excluding ``node_id`` itself."""
        return self._closure(node_id, self._forward, visited)

    def transitive_dependents(self, node_id: str, visited: set[str] | None = None) -> list[str]:
        return self._closure(node_id, self._reverse, visited)

    def dependency_tree(self, node_id: str, max_depth: int = 5) -> DependencyTree:
        def _build(current: str, depth: int, path: set[str]) -> DependencyTree:
            children: list[DependencyTree] = []
            if depth < max_depth:
                path.add(current)
                for target in self._forward.get(current, ()):
                    if target == current:
                        children.append(DependencyTree(target, depth + 1, is_circular=True, is_self_reference=True))
                    elif target in path:
                        children.append(DependencyTree(target, depth + 1, is_circular=True))
                    else:
                        children.append(_build(target, depth + 1, path))
                path.discard(current)
            return DependencyTree(current, depth, tuple(children), is_external=self.is_external(current))

        return _build(node_id, 0, set())

    def self_references(self) -> list[str]:
        return [edge.source for edge in self._edges if edge.is_self_reference]

    def find_cycles(self) -> list[list[str]]:
        """Cycles found as back edges of a depth-first walk; self references show up as one-node cycles."""
        cycles: list[list[str]] = []
        visited: set[str] = set()
        for start in self._nodes:
            if start in visited:
                continue
            visited.add(start)
            path = [start]
            on_path = {start: 0}
            stack = [(start, iter(self._forward.get(start, ())))]
            while stack:
                node, targets = stack[-1]
                for target in targets:
                    if target in on_path:
                        cycles.append(path[on_path[target] :])
                    elif target not in visited:
                        visited.add(target)
                        on_path[target] = len(path)
                        path.append(target)
                        stack.append((target, iter(self._forward.get(target, ()))))
                        break
                else:
                    stack.pop()
                    path.pop()
                    del on_path[node]
        return cycles

    def orphans(self) -> list[str]:
        return [n for n in self._nodes if n not in self._forward and n not in self._reverse]

    def most_referenced(self, limit: int = 10) -> list[tuple[str, int]]:
        counts = Counter(edge.target for edge in self._edges)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]

    def _depths(self) -> dict[str, int]:
        """Longest chain length (in nodes) starting at each node, ignoring edges that close a cycle."""
        depths: dict[str, int] = {}
        for start in (*self._nodes, *self._unresolved):
            if start in depths:
                continue
            on_stack = {start}
            stack = [(start, iter(self._forward.get(start, ())))]
            best: dict[str, int] = {start: 0}
            while stack:
                node, targets = stack[-1]
                for target in targets:
                    if target in on_stack:
                        continue
                    if target in depths:
                        best[node] = max(best[node], depths[target])
                        continue
                    on_stack.add(target)
                    best[target] = 0
                    stack.append((target, iter(self._forward.get(target, ()))))
                    break
                else:
                    stack.pop()
                    on_stack.discard(node)
                    depths[node] = best[node] + 1
                    if stack:
                        parent = stack[-1][0]
                        best[parent] = max(best[parent], depths[node])
        return depths

    def max_depth(self, node_id: str | None = None) -> int:
        if node_id is not None and not self.has_node(node_id):
            return 0
        depths = self._depths()
        if node_id is not None:
            return depths.get(node_id, 0)
        return max(depths.values(), default=0)

    def statistics(self, top: int = 10) -> GraphStatistics:
        unresolved_edges = sum(1 for edge in self._edges if self.is_external(edge.target))
        return GraphStatistics(
            total_edges=len(self._edges),
            resolved_edges=len(self._edges) - unresolved_edges,
            unresolved_edges=unresolved_edges,
            self_references=self.self_references(),
            cycles=self.find_cycles(),
            orphans=self.orphans(),
            most_referenced=self.most_referenced(top),
            max_depth=self.max_depth(),
        )

    def validate(self) -> list[str]:
        issues = [f"Self-reference: {node} depends on itself" for node in self.self_references()]
        issues.extend(
            f"Circular dependency: {' -> '.join([*cycle, cycle[0]])}" for cycle in self.find_cycles() if len(cycle) > 1
        )
        issues.extend(f"Unresolved reference: {reference}" for reference in self._unresolved.values())
        return issues

    def as_mapping(self, node_id: str | None = None) -> dict[str, list[str]]:
        if node_id is not None:
            return {node_id: self.ordered_dependencies(node_id)}
        return {source: list(targets) for source, targets in self._forward.items()}


def _prefer_container(candidates: list[AssetRecord], source: AssetRecord) -> AssetRecord | None:
    if len(candidates) == 1:
        return candidates[0]
    local = [c for c in candidates if c.container is source.container or c.container.path == source.container.path]
    if len(local) == 1:
        return local[0]
    return None


def resolve_reference(catalog: AssetCatalog, source: AssetRecord, reference: str) -> str | None:
    """Map a reference string recorded on ``source`` to a canonical id, or None when it cannot be resolved."""
    if reference in catalog:
        return reference

    path = reference.replace("\\", "/")
    mount = source.container.mount_point.replace("\\", "/")
    candidates_paths = [path, path.lstrip("/")]
    if mount and path.startswith(mount):
        candidates_paths.append(path[len(mount) :].lstrip("/"))
    for candidate_path in candidates_paths:
        by_path = catalog.by_path(candidate_path)
        if by_path:
            match = _prefer_container(by_path, source)
            if match is not None:
                return match.canonical_id

    by_name = catalog.by_name(bare_name(path))
    if by_name:
        match = _prefer_container(by_name, source)
        if match is not None:
            return match.canonical_id
    return None


def build_graph(catalog: AssetCatalog) -> DependencyGraph:
    """Resolve every recorded reference in one pass over the completed catalog."""
    edges: list[DependencyEdge] = []
    unresolved: dict[str, str] = {}
    sentinels: dict[str, str] = {}
    for record in catalog:
        for reference in record.entry.references:
            target = resolve_reference(catalog, record, reference)
            if target is None:
                target = sentinels.get(reference)
            if target is None:
                target = sentinel_id(reference, catalog, unresolved)
                sentinels[reference] = target
                unresolved[target] = reference
                logger.debug("Unresolved reference %r from %s", reference, record.canonical_id)
            edges.append(DependencyEdge(record.canonical_id, target))

    graph = DependencyGraph(catalog.ids, edges, unresolved)
    logger.info(
        "Built dependency graph: %d edges, %d unresolved target(s)",
        len(graph),
        len(unresolved),
    )
    return graph

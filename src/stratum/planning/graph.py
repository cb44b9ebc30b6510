"""Dependency graph builder.

Derives a deterministic topological order over resource descriptors.
Ties between descriptors whose dependencies are all satisfied are broken by
ascending identifier, so identical input always yields the identical plan.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Sequence

from stratum.core.errors import ConfigurationError, CycleError
from stratum.domain.models import ResourceDescriptor


@dataclass(frozen=True)
class DeploymentPlan:
    """Immutable, dependency-respecting order over descriptors."""

    descriptors: tuple[ResourceDescriptor, ...]
    _positions: dict[str, int] = field(init=False, repr=False, compare=False)
    _dependents: dict[str, tuple[str, ...]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        positions = {d.id: index for index, d in enumerate(self.descriptors)}
        dependents: dict[str, list[str]] = {d.id: [] for d in self.descriptors}
        for descriptor in self.descriptors:
            for dependency in descriptor.depends_on:
                if dependency in dependents:
                    dependents[dependency].append(descriptor.id)
        object.__setattr__(self, "_positions", positions)
        object.__setattr__(
            self,
            "_dependents",
            {key: tuple(sorted(value)) for key, value in dependents.items()},
        )

    def __iter__(self) -> Iterator[ResourceDescriptor]:
        return iter(self.descriptors)

    def __len__(self) -> int:
        return len(self.descriptors)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._positions

    @property
    def ids(self) -> list[str]:
        return [d.id for d in self.descriptors]

    def position(self, resource_id: str) -> int:
        return self._positions[resource_id]

    def get(self, resource_id: str) -> ResourceDescriptor:
        return self.descriptors[self._positions[resource_id]]

    def dependencies(self, resource_id: str) -> tuple[str, ...]:
        return tuple(sorted(self.get(resource_id).depends_on))

    def dependents(self, resource_id: str) -> tuple[str, ...]:
        return self._dependents[resource_id]

    def reversed_ids(self) -> list[str]:
        return [d.id for d in reversed(self.descriptors)]


def build_plan(descriptors: Iterable[ResourceDescriptor]) -> DeploymentPlan:
    """Order ``descriptors`` so every dependency precedes its dependents.

    Raises:
        ConfigurationError: duplicate ids or unknown dependency references
        CycleError: the dependency graph contains a cycle (including self-loops)
    """
    by_id: dict[str, ResourceDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.id in by_id:
            raise ConfigurationError(
                f"Duplicate resource id '{descriptor.id}'",
                details={"resource_id": descriptor.id},
            )
        by_id[descriptor.id] = descriptor

    for descriptor in by_id.values():
        missing = sorted(descriptor.depends_on - by_id.keys())
        if missing:
            raise ConfigurationError(
                f"Resource '{descriptor.id}' depends on unknown resources: {', '.join(missing)}",
                details={"resource_id": descriptor.id},
            )

    order = topological_order({rid: d.depends_on for rid, d in by_id.items()})
    return DeploymentPlan(descriptors=tuple(by_id[rid] for rid in order))


def topological_order(
    nodes: Mapping[str, Iterable[str]],
    *,
    ignore_missing: bool = False,
) -> list[str]:
    """Kahn's algorithm with a min-heap for deterministic tie-breaking.

    Args:
        nodes: Mapping of node id to the ids it depends on
        ignore_missing: Drop edges to ids absent from ``nodes`` instead of
            raising (used for recorded state where dependencies may already
            be gone)
    """
    deps: dict[str, set[str]] = {}
    for node, node_deps in nodes.items():
        wanted = set(node_deps)
        missing = wanted - nodes.keys()
        if missing and not ignore_missing:
            raise ConfigurationError(
                f"Resource '{node}' depends on unknown resources: {', '.join(sorted(missing))}",
                details={"resource_id": node},
            )
        deps[node] = wanted & nodes.keys()

    dependents: dict[str, list[str]] = {node: [] for node in deps}
    in_degree = {node: len(node_deps) for node, node_deps in deps.items()}
    for node, node_deps in deps.items():
        for dependency in node_deps:
            dependents[dependency].append(node)

    ready = [node for node, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    order: list[str] = []
    while ready:
        node = heapq.heappop(ready)
        order.append(node)
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(deps):
        remaining = {node: deps[node] for node in deps if in_degree[node] > 0}
        raise CycleError(find_cycle(remaining))
    return order


def find_cycle(remaining: Mapping[str, set[str]]) -> list[str]:
    """Return one cycle among nodes left over after a topological sort.

    Every leftover node still waits on another leftover node, so walking
    dependencies from any of them must revisit a node.
    """
    current = min(remaining)
    path: list[str] = []
    seen: dict[str, int] = {}
    while current not in seen:
        seen[current] = len(path)
        path.append(current)
        current = min(dep for dep in remaining[current] if dep in remaining)
    cycle = path[seen[current]:]
    return _rotate_to_smallest(cycle)


def _rotate_to_smallest(cycle: Sequence[str]) -> list[str]:
    start = cycle.index(min(cycle))
    return [*cycle[start:], *cycle[:start]]

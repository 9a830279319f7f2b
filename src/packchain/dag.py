# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List

from .errors import DependencyError, SortError
from .model import BuildItem


def validate_dependencies(items: List[BuildItem]) -> None:
    """
    Check that every depends_on resolves and that no chain loops back.

    Each item has at most one outgoing edge, so a cycle check is a walk down
    a single linked list per start item, watching for a repeated name.
    """
    by_name: Dict[str, BuildItem] = {item.name: item for item in items}

    for item in items:
        if item.depends_on and item.depends_on not in by_name:
            raise DependencyError(
                f'Dependency "{item.depends_on}" not found for item "{item.name}". '
                f"Known items: {sorted(by_name)}"
            )

    # Names already proven to reach a root without looping
    safe: set[str] = set()
    for item in items:
        path: List[str] = []
        on_path: set[str] = set()
        current: str | None = item.name
        while current is not None and current not in safe:
            if current in on_path:
                loop = path[path.index(current):] + [current]
                raise DependencyError(
                    f'Circular dependency detected involving "{current}": {" -> ".join(loop)}'
                )
            path.append(current)
            on_path.add(current)
            current = by_name[current].depends_on
        safe.update(path)


def build_graph(items: List[BuildItem]) -> Dict[str, List[str]]:
    """item name -> list of names it depends on (0 or 1 entries)."""
    return {item.name: [item.depends_on] if item.depends_on else [] for item in items}


def topological_sort(graph: Dict[str, List[str]], items: List[BuildItem]) -> List[BuildItem]:
    """
    Kahn's algorithm over dependency edges.

    A node's in-degree counts its unresolved dependencies. Zero in-degree nodes
    are queued in discovery (config) order, so independent items keep the order
    they were written in.
    """
    by_name = {item.name: item for item in items}
    indeg: Dict[str, int] = {name: 0 for name in graph}
    dependents: Dict[str, List[str]] = {name: [] for name in graph}

    for name, deps in graph.items():
        for dep in deps:
            if dep in indeg:
                indeg[name] += 1
                dependents[dep].append(name)

    q = deque(name for name, d in indeg.items() if d == 0)
    ordered: List[BuildItem] = []

    while q:
        node = q.popleft()
        ordered.append(by_name[node])
        for child in dependents[node]:
            indeg[child] -= 1
            if indeg[child] == 0:
                q.append(child)

    if len(ordered) != len(items):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise SortError(f"Topological sort failed (cycle detected). Stuck items: {remaining}")

    return ordered

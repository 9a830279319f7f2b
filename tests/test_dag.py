from __future__ import annotations

import pytest

from packchain.dag import build_graph, topological_sort, validate_dependencies
from packchain.errors import DependencyError, SortError
from packchain.model import BuildItem, ItemType


def _item(name: str, depends_on: str | None = None, kind: ItemType = ItemType.PACKAGE) -> BuildItem:
    return BuildItem(name=name, type=kind, dir=f"/work/{name}", commands=[], depends_on=depends_on)


def _order(items: list[BuildItem]) -> list[str]:
    validate_dependencies(items)
    return [item.name for item in topological_sort(build_graph(items), items)]


def test_dependencies_come_before_dependents() -> None:
    items = [_item("app", "ui", ItemType.APP), _item("ui", "core"), _item("core")]

    assert _order(items) == ["core", "ui", "app"]


def test_independent_items_keep_config_order() -> None:
    items = [_item("b"), _item("a"), _item("c", "a"), _item("d")]

    assert _order(items) == ["b", "a", "d", "c"]


def test_build_graph_has_at_most_one_edge_per_item() -> None:
    graph = build_graph([_item("a"), _item("b", "a")])

    assert graph == {"a": [], "b": ["a"]}


def test_unknown_dependency_is_reported_with_known_items() -> None:
    items = [_item("a"), _item("b", "ghost")]

    with pytest.raises(DependencyError, match="Dependency \"ghost\" not found for item \"b\""):
        validate_dependencies(items)


def test_cycle_is_reported_with_path() -> None:
    items = [_item("a", "c"), _item("b", "a"), _item("c", "b")]

    with pytest.raises(DependencyError, match="Circular dependency") as exc:
        validate_dependencies(items)
    assert "a -> c -> b -> a" in str(exc.value)


def test_self_dependency_is_a_cycle() -> None:
    with pytest.raises(DependencyError, match="Circular dependency"):
        validate_dependencies([_item("a", "a")])


def test_topological_sort_fails_on_unvalidated_cycle() -> None:
    items = [_item("x"), _item("a", "b"), _item("b", "a")]

    with pytest.raises(SortError, match=r"Stuck items: \['a', 'b'\]"):
        topological_sort(build_graph(items), items)

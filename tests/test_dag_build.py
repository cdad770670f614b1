from __future__ import annotations

from taskrun.dag.build import build_adjacency


def test_build_adjacency_includes_leaf_nodes_and_correct_in_degree() -> None:
    graph = {
        "root": [],
        "child_a": ["root"],
        "child_b": ["root"],
        "leaf": ["child_a", "child_b"],
    }

    dependents, in_degree = build_adjacency(graph, list(graph))
    assert dependents["root"] == ["child_a", "child_b"]
    assert dependents["leaf"] == []
    assert in_degree == {"root": 0, "child_a": 1, "child_b": 1, "leaf": 2}


def test_build_adjacency_ignores_dependencies_outside_selection() -> None:
    graph = {"a": [], "b": ["a"], "c": ["b", "a"]}

    dependents, in_degree = build_adjacency(graph, ["b", "c"])
    assert dependents == {"b": ["c"], "c": []}
    assert in_degree == {"b": 0, "c": 1}

"""Build graph structures from task definitions."""

from __future__ import annotations

from collections.abc import Mapping, Sequence


def build_adjacency(
    tasks: Mapping[str, Sequence[str]], names: Sequence[str]
) -> tuple[dict[str, list[str]], dict[str, int]]:
    """Return dependents adjacency and in-degree for the subgraph of ``names``.

    Dependencies outside ``names`` are not counted.
    """
    selected = set(names)
    dependents: dict[str, list[str]] = {name: [] for name in names}
    in_degree: dict[str, int] = {}

    for name in names:
        deps = [dep for dep in dict.fromkeys(tasks[name]) if dep in selected]
        in_degree[name] = len(deps)
        for dep in deps:
            dependents[dep].append(name)

    return dependents, in_degree

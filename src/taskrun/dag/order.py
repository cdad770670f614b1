"""Execution order resolution."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence

from taskrun.config.schema import RunConfig
from taskrun.dag.validate import assert_acyclic, assert_dependencies_exist
from taskrun.util.errors import CircularDependencyError, TaskNotFoundError


def execution_order(tasks: Mapping[str, Sequence[str]], requested: Sequence[str]) -> list[str]:
    """Return requested tasks and their dependencies, dependencies first.

    Depth-first from each requested name in request order, visiting
    dependencies in declared order, so the result is deterministic for a
    given graph and request.
    """
    order: list[str] = []
    placed: set[str] = set()

    for name in requested:
        if name in placed:
            continue
        if name not in tasks:
            raise TaskNotFoundError(name)
        in_progress = {name}
        stack: list[tuple[str, Iterator[str]]] = [(name, iter(tasks[name]))]

        while stack:
            node, deps = stack[-1]
            for dep in deps:
                if dep in placed:
                    continue
                if dep not in tasks:
                    raise TaskNotFoundError(dep)
                if dep in in_progress:
                    path = [entry for entry, _ in stack]
                    raise CircularDependencyError(dep, path[path.index(dep) :] + [dep])
                in_progress.add(dep)
                stack.append((dep, iter(tasks[dep])))
                break
            else:
                stack.pop()
                in_progress.discard(node)
                placed.add(node)
                order.append(node)

    return order


def get_execution_order(config: RunConfig, requested: Sequence[str]) -> list[str]:
    """Validate the whole task graph, then resolve ``requested``.

    Missing dependencies and cycles are reported even when the requested
    tasks cannot reach them.
    """
    deps = config.dependency_map()
    assert_dependencies_exist(deps)
    assert_acyclic(deps)
    return execution_order(deps, requested)

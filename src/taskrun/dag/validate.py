"""DAG validation helpers."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence

from taskrun.util.errors import CircularDependencyError, DependencyNotFoundError


def assert_acyclic(tasks: Mapping[str, Sequence[str]]) -> None:
    """Validate graph has no cycle using an iterative depth-first search.

    Every task is used as a root in declaration order. The error names the task
    whose re-entry closed the cycle, which is not necessarily where the cycle
    "starts". Unknown dependencies are skipped; see assert_dependencies_exist.
    """
    visited: set[str] = set()

    for root in tasks:
        if root in visited:
            continue
        visited.add(root)
        in_progress = {root}
        path = [root]
        stack: list[tuple[str, Iterator[str]]] = [(root, iter(tasks[root]))]

        while stack:
            node, deps = stack[-1]
            for dep in deps:
                if dep not in tasks:
                    continue
                if dep in in_progress:
                    cycle = path[path.index(dep) :] + [dep]
                    raise CircularDependencyError(dep, cycle)
                if dep in visited:
                    continue
                visited.add(dep)
                in_progress.add(dep)
                path.append(dep)
                stack.append((dep, iter(tasks[dep])))
                break
            else:
                stack.pop()
                path.pop()
                in_progress.discard(node)


def assert_dependencies_exist(tasks: Mapping[str, Sequence[str]]) -> None:
    for task_name, deps in tasks.items():
        for dep in deps:
            if dep not in tasks:
                raise DependencyNotFoundError(dep, task_name)

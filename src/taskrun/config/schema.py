from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from taskrun.util.errors import TaskNotFoundError

ExecutionMode = Literal["auto", "parallel", "sequential"]
EXECUTION_MODE_VALUES: set[str] = {"auto", "parallel", "sequential"}


@dataclass(slots=True)
class TaskSpec:
    name: str
    commands: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    mode: ExecutionMode = "auto"
    working_dir: str | None = None
    timeout_sec: float | None = None
    continue_on_error: bool = False
    hidden: bool = False
    description: str | None = None

    @property
    def is_orchestrator(self) -> bool:
        """Task without commands that only aggregates its dependencies."""
        return not self.commands and bool(self.dependencies)


@dataclass(slots=True)
class RunConfig:
    tasks: dict[str, TaskSpec]
    env: dict[str, str] = field(default_factory=dict)
    default_timeout_sec: float | None = None
    default_working_dir: str | None = None

    def get_task(self, name: str) -> TaskSpec:
        try:
            return self.tasks[name]
        except KeyError:
            raise TaskNotFoundError(name) from None

    def visible_tasks(self) -> list[str]:
        return [name for name, task in self.tasks.items() if not task.hidden]

    def dependency_map(self) -> dict[str, list[str]]:
        return {name: task.dependencies for name, task in self.tasks.items()}

    def effective_timeout(self, task: TaskSpec) -> float | None:
        if task.timeout_sec is not None:
            return task.timeout_sec
        return self.default_timeout_sec

    def effective_working_dir(self, task: TaskSpec) -> str | None:
        if task.working_dir is not None:
            return task.working_dir
        return self.default_working_dir

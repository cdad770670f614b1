"""Application-level error types."""

from __future__ import annotations


class TaskRunnerError(Exception):
    """Base error for the task runner."""


class ConfigError(TaskRunnerError):
    """Raised when configuration loading/validation fails."""


class ConfigNotFoundError(ConfigError):
    """Raised when no configuration file can be located."""


class GraphError(TaskRunnerError):
    """Raised when the task graph is structurally invalid."""


class TaskNotFoundError(GraphError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Task '{name}' not found")
        self.name = name


class CircularDependencyError(GraphError):
    def __init__(self, task: str, cycle: list[str] | None = None) -> None:
        message = f"Circular dependency detected in task '{task}'"
        if cycle:
            message += f" ({' -> '.join(cycle)})"
        super().__init__(message)
        self.task = task
        self.cycle = cycle or []


class DependencyNotFoundError(GraphError):
    def __init__(self, dependency: str, task: str) -> None:
        super().__init__(f"Dependency '{dependency}' not found for task '{task}'")
        self.dependency = dependency
        self.task = task


class NoTasksSpecifiedError(TaskRunnerError):
    def __init__(self) -> None:
        super().__init__("No tasks specified")


class TaskExecutionFailedError(TaskRunnerError):
    """Raised when one task, or a whole run, finished with failures."""

    def __init__(self, detail: str, failed: list[str] | None = None) -> None:
        super().__init__(f"Task execution failed: {detail}")
        self.detail = detail
        self.failed = failed or []

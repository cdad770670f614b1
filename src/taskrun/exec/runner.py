from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from taskrun.config.schema import EXECUTION_MODE_VALUES, ExecutionMode, RunConfig
from taskrun.dag.build import build_adjacency
from taskrun.dag.order import get_execution_order
from taskrun.exec.command import CommandResult, run_command, timed_out_result
from taskrun.util.env import expand_env_vars, merge_env
from taskrun.util.errors import NoTasksSpecifiedError, TaskExecutionFailedError
from taskrun.util.time import duration_sec, monotonic

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskOutcome:
    name: str
    success: bool
    commands: list[CommandResult] = field(default_factory=list)
    skipped_commands: int = 0
    duration_sec: float = 0.0
    error: str | None = None

    @property
    def timed_out(self) -> bool:
        return any(result.timed_out for result in self.commands)


@dataclass(slots=True)
class RunReport:
    order: list[str]
    outcomes: dict[str, TaskOutcome]
    skipped: list[str] = field(default_factory=list)
    duration_sec: float = 0.0

    @property
    def failed(self) -> list[str]:
        return [
            name for name in self.order if name in self.outcomes and not self.outcomes[name].success
        ]

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped

    def raise_for_failures(self) -> None:
        failed = self.failed
        if failed:
            raise TaskExecutionFailedError(f"{len(failed)} tasks failed: {failed}", failed)
        if self.skipped:
            raise TaskExecutionFailedError(
                f"{len(self.skipped)} tasks skipped: {self.skipped}", list(self.skipped)
            )


def _resolve_cwd(task_dir: str | None, env: Mapping[str, str]) -> str | None:
    if task_dir is None:
        return None
    return expand_env_vars(task_dir, env)


async def execute_single_task(
    config: RunConfig,
    name: str,
    *,
    base_env: Mapping[str, str] | None = None,
) -> TaskOutcome:
    """Run every command of one task and report how it went.

    The environment is ``base_env`` (default: the current process environment)
    overlaid with the run-wide and then the task-level variables. The timeout
    bounds the whole task, so each command only gets what is left of it.
    """
    task = config.get_task(name)
    started = monotonic()

    env = merge_env(os.environ if base_env is None else base_env, config.env, task.env)
    cwd = _resolve_cwd(config.effective_working_dir(task), env)
    timeout = config.effective_timeout(task)
    deadline = None if timeout is None else started + timeout

    if not task.commands:
        if not task.dependencies:
            logger.warning("task %s has no commands and no dependencies; nothing to run", name)
        return TaskOutcome(name=name, success=True, duration_sec=duration_sec(started, monotonic()))

    logger.info("task %s started (%d commands, mode=%s)", name, len(task.commands), task.mode)
    results: list[CommandResult] = []
    skipped_commands = 0
    for index, command in enumerate(task.commands):
        expanded = expand_env_vars(command, env)
        if deadline is None:
            result = await run_command(expanded, env=env, cwd=cwd, timeout_sec=None)
        else:
            remaining = deadline - monotonic()
            if remaining <= 0:
                result = timed_out_result(expanded, timeout)
            else:
                result = await run_command(expanded, env=env, cwd=cwd, timeout_sec=remaining)
            if result.timed_out:
                result.error = f"Task '{name}' timed out after {timeout:g} seconds"
        results.append(result)

        if not result.ok and not task.continue_on_error:
            skipped_commands = len(task.commands) - index - 1
            break

    success = skipped_commands == 0 and all(result.ok for result in results)
    error = next((result.error for result in results if not result.ok), None)
    outcome = TaskOutcome(
        name=name,
        success=success,
        commands=results,
        skipped_commands=skipped_commands,
        duration_sec=duration_sec(started, monotonic()),
        error=error,
    )
    if success:
        logger.info("task %s completed in %.2fs", name, outcome.duration_sec)
    else:
        logger.info("task %s failed in %.2fs: %s", name, outcome.duration_sec, error)
    return outcome


def _failure_outcome(name: str, exc: BaseException) -> TaskOutcome:
    return TaskOutcome(name=name, success=False, error=f"runner exception: {exc}")


async def _run_sequential(
    config: RunConfig,
    order: Sequence[str],
    *,
    continue_on_error: bool,
    base_env: Mapping[str, str],
) -> tuple[dict[str, TaskOutcome], list[str]]:
    outcomes: dict[str, TaskOutcome] = {}
    skipped: list[str] = []
    blocked: set[str] = set()
    stopped = False

    for name in order:
        if stopped:
            skipped.append(name)
            continue
        task = config.get_task(name)
        if any(dep in blocked for dep in task.dependencies):
            logger.warning("skipping %s: a dependency did not succeed", name)
            skipped.append(name)
            blocked.add(name)
            continue

        outcome = await execute_single_task(config, name, base_env=base_env)
        outcomes[name] = outcome
        if not outcome.success:
            blocked.add(name)
            if not continue_on_error:
                stopped = True

    if stopped and skipped:
        logger.warning("run stopped after failure; skipped %s", skipped)
    return outcomes, skipped


async def _run_parallel(
    config: RunConfig,
    order: Sequence[str],
    *,
    continue_on_error: bool,
    max_parallel: int | None,
    base_env: Mapping[str, str],
) -> tuple[dict[str, TaskOutcome], list[str]]:
    dependents, dep_remaining = build_adjacency(config.dependency_map(), order)
    ready = [name for name in order if dep_remaining[name] == 0]
    pending = set(order)
    running: dict[str, asyncio.Task[TaskOutcome]] = {}
    sem = asyncio.Semaphore(max_parallel) if max_parallel is not None else None
    outcomes: dict[str, TaskOutcome] = {}
    skipped: list[str] = []
    blocked: set[str] = set()
    stopped = False

    def _release(name: str) -> None:
        for child in dependents[name]:
            dep_remaining[child] -= 1
            if dep_remaining[child] == 0:
                ready.append(child)

    def _skip(name: str, reason: str) -> None:
        logger.warning("skipping %s: %s", name, reason)
        pending.discard(name)
        skipped.append(name)
        blocked.add(name)
        _release(name)

    async def _run_one(name: str) -> TaskOutcome:
        if sem is None:
            return await execute_single_task(config, name, base_env=base_env)
        async with sem:
            return await execute_single_task(config, name, base_env=base_env)

    try:
        while pending or running:
            while ready:
                name = ready.pop(0)
                if name not in pending:
                    continue
                if stopped:
                    _skip(name, "run stopped after failure")
                    continue
                if any(dep in blocked for dep in config.get_task(name).dependencies):
                    _skip(name, "a dependency did not succeed")
                    continue
                pending.discard(name)
                running[name] = asyncio.create_task(_run_one(name))

            if not running:
                for name in order:
                    if name in pending:
                        logger.warning("skipping %s: unresolvable dependencies", name)
                        skipped.append(name)
                pending.clear()
                break

            done, _ = await asyncio.wait(running.values(), return_when=asyncio.FIRST_COMPLETED)
            finished = [name for name, fut in running.items() if fut in done]
            for name in finished:
                fut = running.pop(name)
                try:
                    outcome = fut.result()
                except Exception as exc:
                    logger.exception("task %s raised inside the runner", name)
                    outcome = _failure_outcome(name, exc)
                outcomes[name] = outcome
                if not outcome.success:
                    blocked.add(name)
                    if not continue_on_error:
                        stopped = True
                _release(name)
    finally:
        for fut in running.values():
            fut.cancel()
        if running:
            await asyncio.gather(*running.values(), return_exceptions=True)

    position = {name: idx for idx, name in enumerate(order)}
    skipped.sort(key=position.__getitem__)
    return outcomes, skipped


async def run_tasks(
    config: RunConfig,
    order: Sequence[str],
    *,
    mode: ExecutionMode = "auto",
    continue_on_error: bool = False,
    max_parallel: int | None = None,
) -> RunReport:
    """Execute ``order`` (dependencies first) and collect one outcome per task.

    ``parallel`` starts each task as soon as its dependencies have succeeded;
    ``sequential`` and ``auto`` run one task at a time. Tasks that never ran
    are listed in ``RunReport.skipped`` and absent from ``outcomes``.
    """
    if not order:
        raise NoTasksSpecifiedError()
    if mode not in EXECUTION_MODE_VALUES:
        raise ValueError(f"unknown execution mode: {mode}")
    if max_parallel is not None and max_parallel < 1:
        raise ValueError("max_parallel must be >= 1")
    for name in order:
        config.get_task(name)

    base_env = dict(os.environ)
    started = monotonic()
    logger.info("executing %d tasks (mode=%s)", len(order), mode)

    if mode == "parallel":
        outcomes, skipped = await _run_parallel(
            config,
            order,
            continue_on_error=continue_on_error,
            max_parallel=max_parallel,
            base_env=base_env,
        )
    else:
        outcomes, skipped = await _run_sequential(
            config, order, continue_on_error=continue_on_error, base_env=base_env
        )

    ordered = {name: outcomes[name] for name in order if name in outcomes}
    return RunReport(
        order=list(order),
        outcomes=ordered,
        skipped=skipped,
        duration_sec=duration_sec(started, monotonic()),
    )


async def run(
    config: RunConfig,
    requested: Sequence[str],
    *,
    mode: ExecutionMode = "auto",
    continue_on_error: bool = False,
    max_parallel: int | None = None,
) -> RunReport:
    order = get_execution_order(config, requested)
    return await run_tasks(
        config,
        order,
        mode=mode,
        continue_on_error=continue_on_error,
        max_parallel=max_parallel,
    )

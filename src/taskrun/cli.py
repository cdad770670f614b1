from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskrun.config.loader import find_default_config, load_config
from taskrun.config.schema import ExecutionMode, RunConfig, TaskSpec
from taskrun.dag.order import get_execution_order
from taskrun.exec.runner import RunReport, run_tasks
from taskrun.report.summarize import build_summary
from taskrun.util.errors import (
    ConfigError,
    GraphError,
    NoTasksSpecifiedError,
    TaskExecutionFailedError,
)

app = typer.Typer(help="A task runner for development workflows with dependency management")
console = Console()

_STATUS_STYLE = {"SUCCESS": "green", "FAILED": "red", "SKIPPED": "yellow"}


def _exit_code_for_report(report: RunReport) -> int:
    return 0 if report.ok else 1


def _load_config_or_exit(ctx: typer.Context) -> RunConfig:
    config_path: Path | None = ctx.obj.get("config") if ctx.obj else None
    try:
        path = config_path if config_path is not None else find_default_config(Path.cwd())
        return load_config(path)
    except (ConfigError, GraphError) as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(2) from exc


def _print_task_details(config: RunConfig, task: TaskSpec) -> None:
    console.print(f"  [green]•[/green] [bold]{escape(task.name)}[/bold]")
    if task.description:
        console.print(f"    Description: {escape(task.description)}")
    console.print("    Commands:")
    if not task.commands:
        console.print("      (none)")
    for idx, command in enumerate(task.commands, start=1):
        console.print(f"      {idx}. {escape(command)}")
    if task.dependencies:
        console.print(f"    Dependencies: {escape(', '.join(task.dependencies))}")
    if task.env:
        console.print("    Environment:")
        for key, value in task.env.items():
            console.print(f"      {escape(key)}={escape(value)}")
    if task.mode == "parallel":
        console.print("    Execution: [blue]Parallel[/blue]")
    elif task.mode == "sequential":
        console.print("    Execution: [yellow]Sequential[/yellow]")

    timeout = config.effective_timeout(task)
    if timeout is not None:
        suffix = "" if task.timeout_sec is not None else " (from default)"
        console.print(f"    Timeout: {timeout:g}s{suffix}")
    working_dir = config.effective_working_dir(task)
    if working_dir is not None:
        suffix = "" if task.working_dir is not None else " (from default)"
        console.print(f"    Working Directory: {escape(working_dir)}{suffix}")
    if task.continue_on_error:
        console.print("    Continue on error: [yellow]Yes[/yellow]")


def _print_report(report: RunReport) -> None:
    summary: dict[str, Any] = build_summary(report)
    table = Table(title="Execution Results")
    table.add_column("task")
    table.add_column("status")
    table.add_column("commands", justify="right")
    table.add_column("duration_sec", justify="right")
    table.add_column("error")
    for row in summary["tasks"]:
        status = row["status"]
        style = _STATUS_STYLE.get(status, "white")
        table.add_row(
            escape(row["name"]),
            f"[{style}]{status}[/{style}]",
            str(row["commands_run"]),
            "-" if row["duration_sec"] is None else f"{row['duration_sec']:.2f}",
            "" if row["error"] is None else escape(row["error"]),
        )
    console.print(table)
    totals = summary["totals"]
    console.print(
        f"{totals['succeeded']} successful, {totals['failed']} failed, "
        f"{totals['skipped']} skipped in {report.duration_sec:.2f}s"
    )


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[Path | None, typer.Option("--config", "-c")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config}


@app.command("list")
def list_tasks(
    ctx: typer.Context,
    details: Annotated[bool, typer.Option("--details", "-d")] = False,
) -> None:
    config = _load_config_or_exit(ctx)
    names = config.visible_tasks()
    if not names:
        console.print("[yellow]No tasks found in configuration[/yellow]")
        return

    if details:
        console.print("Available tasks:")
        for name in names:
            console.print()
            _print_task_details(config, config.tasks[name])
        return

    table = Table(title="Available tasks")
    table.add_column("task")
    table.add_column("description")
    for name in names:
        table.add_row(escape(name), escape(config.tasks[name].description or ""))
    console.print(table)


@app.command()
def info(ctx: typer.Context, task: Annotated[str, typer.Argument()]) -> None:
    config = _load_config_or_exit(ctx)
    try:
        spec = config.get_task(task)
    except GraphError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(2) from exc
    console.print(f"Task: [bold]{escape(task)}[/bold]")
    _print_task_details(config, spec)


@app.command()
def run(
    ctx: typer.Context,
    tasks: Annotated[list[str] | None, typer.Argument()] = None,
    parallel: Annotated[bool, typer.Option("--parallel", "-p")] = False,
    sequential: Annotated[bool, typer.Option("--sequential", "-s")] = False,
    continue_on_error: Annotated[bool, typer.Option("--continue-on-error")] = False,
    max_parallel: Annotated[int | None, typer.Option("--max-parallel", min=1)] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run")] = False,
) -> None:
    if parallel and sequential:
        console.print("[red]Error:[/red] --parallel and --sequential are mutually exclusive")
        raise typer.Exit(2)
    mode: ExecutionMode = "parallel" if parallel else "sequential" if sequential else "auto"

    config = _load_config_or_exit(ctx)
    try:
        order = get_execution_order(config, tasks or [])
        if not order:
            raise NoTasksSpecifiedError()
    except (GraphError, NoTasksSpecifiedError) as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(2) from exc

    if dry_run:
        table = Table(title="Dry Run - Execution Order")
        table.add_column("#")
        table.add_column("task")
        for idx, name in enumerate(order, start=1):
            table.add_row(str(idx), escape(name))
        console.print(table)
        raise typer.Exit(0)

    console.print(f"Executing {len(order)} tasks...")
    report = asyncio.run(
        run_tasks(
            config,
            order,
            mode=mode,
            continue_on_error=continue_on_error,
            max_parallel=max_parallel,
        )
    )
    _print_report(report)
    try:
        report.raise_for_failures()
    except TaskExecutionFailedError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
    raise typer.Exit(_exit_code_for_report(report))


@app.command()
def validate(ctx: typer.Context) -> None:
    config = _load_config_or_exit(ctx)
    console.print(f"[green]✓[/green] Configuration file is valid! ({len(config.tasks)} tasks)")


if __name__ == "__main__":
    app()

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from taskrun.exec.timeout import kill_process, terminate_process
from taskrun.util.time import duration_sec, monotonic

logger = logging.getLogger(__name__)

POLL_INTERVAL_SEC = 0.1
START_FAILED_EXIT_CODE = 127


@dataclass(slots=True)
class CommandResult:
    command: str
    exit_code: int | None
    timed_out: bool
    start_failed: bool
    duration_sec: float
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.start_failed


def split_command(command: str) -> list[str]:
    """Split on whitespace into program and arguments.

    Quotes and escapes are not interpreted: ``echo "a b"`` yields three tokens.
    """
    return command.split()


def _start_failed(command: str, started: float, error: str) -> CommandResult:
    return CommandResult(
        command=command,
        exit_code=START_FAILED_EXIT_CODE,
        timed_out=False,
        start_failed=True,
        duration_sec=duration_sec(started, monotonic()),
        error=error,
    )


def timed_out_result(command: str, timeout_sec: float, elapsed: float = 0.0) -> CommandResult:
    return CommandResult(
        command=command,
        exit_code=None,
        timed_out=True,
        start_failed=False,
        duration_sec=round(elapsed, 3),
        error=f"Command timed out after {timeout_sec:g} seconds",
    )


async def run_command(
    command: str,
    *,
    env: dict[str, str],
    cwd: str | None,
    timeout_sec: float | None,
) -> CommandResult:
    """Run one command as a child process sharing our stdout/stderr."""
    started = monotonic()
    argv = split_command(command)
    if not argv:
        return _start_failed(command, started, "empty command")

    logger.debug("spawning %s (cwd=%s, timeout=%s)", argv, cwd, timeout_sec)
    try:
        proc = await asyncio.create_subprocess_exec(*argv, cwd=cwd, env=env)
    except (OSError, ValueError) as exc:
        logger.warning("failed to start %r: %s", command, exc)
        return _start_failed(command, started, f"failed to start process: {exc}")

    timed_out = False
    try:
        if timeout_sec is None:
            await proc.wait()
        else:
            while proc.returncode is None:
                elapsed = monotonic() - started
                if elapsed >= timeout_sec:
                    timed_out = True
                    await kill_process(proc)
                    break
                await asyncio.sleep(min(POLL_INTERVAL_SEC, timeout_sec - elapsed))
    except asyncio.CancelledError:
        await terminate_process(proc)
        raise

    if timed_out:
        assert timeout_sec is not None
        logger.warning("%r timed out after %gs", command, timeout_sec)
        return timed_out_result(command, timeout_sec, monotonic() - started)

    exit_code = await proc.wait()
    return CommandResult(
        command=command,
        exit_code=exit_code,
        timed_out=False,
        start_failed=False,
        duration_sec=duration_sec(started, monotonic()),
        error=None if exit_code == 0 else f"Command failed with exit code: {exit_code}",
    )

from __future__ import annotations

import asyncio
from contextlib import suppress


async def terminate_process(proc: asyncio.subprocess.Process, grace_sec: float = 1.0) -> None:
    """Stop ``proc`` and reap it, escalating to SIGKILL after ``grace_sec``."""
    if proc.returncode is not None:
        return
    with suppress(ProcessLookupError):
        proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace_sec)
    except TimeoutError:
        with suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()


async def kill_process(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL ``proc`` immediately and reap it."""
    if proc.returncode is not None:
        return
    with suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()

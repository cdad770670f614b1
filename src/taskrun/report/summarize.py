from __future__ import annotations

from typing import Any

from taskrun.exec.runner import RunReport


def build_summary(report: RunReport) -> dict[str, Any]:
    task_rows: list[dict[str, object]] = []
    succeeded = 0

    for name in report.order:
        outcome = report.outcomes.get(name)
        if outcome is None:
            if name not in report.skipped:
                continue
            task_rows.append(
                {
                    "name": name,
                    "status": "SKIPPED",
                    "commands_run": 0,
                    "duration_sec": None,
                    "timed_out": False,
                    "error": None,
                }
            )
            continue
        if outcome.success:
            succeeded += 1
        task_rows.append(
            {
                "name": name,
                "status": "SUCCESS" if outcome.success else "FAILED",
                "commands_run": len(outcome.commands),
                "duration_sec": outcome.duration_sec,
                "timed_out": outcome.timed_out,
                "error": outcome.error,
            }
        )

    return {
        "tasks": task_rows,
        "totals": {
            "succeeded": succeeded,
            "failed": len(report.failed),
            "skipped": len(report.skipped),
        },
        "duration_sec": report.duration_sec,
        "ok": report.ok,
    }

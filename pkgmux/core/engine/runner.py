"""
Job runner: executes an InstallJob group by group.

The SINGLE PLACE where install commands are spawned. Package managers
prompt on the terminal, so commands inherit stdin/stdout/stderr rather
than being captured. Each group gets its own elevation prefix (one
password prompt per backend at most); a failed group does not stop the
rest unless ``stop_on_failure`` is set.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pkgmux.core.models.plan import InstallJob

logger = logging.getLogger(__name__)

GroupStatus = Literal["ok", "failed", "skipped"]


@dataclass
class GroupResult:
    """Outcome of one group's install command."""

    backend: str
    argv: list[str]
    status: GroupStatus = "ok"
    returncode: int | None = None
    error: str | None = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "argv": self.argv,
            "status": self.status,
            "returncode": self.returncode,
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass
class JobReport:
    """Result of running a whole job."""

    results: list[GroupResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.status == "ok")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")

    @property
    def status(self) -> str:
        if self.failed == 0 and self.skipped == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    @property
    def succeeded_backends(self) -> list[str]:
        return [r.backend for r in self.results if r.status == "ok"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.to_dict() for r in self.results],
        }


def _is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def run_job(
    job: InstallJob,
    *,
    elevation_command: str = "sudo",
    stop_on_failure: bool = False,
    run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> JobReport:
    """Run every group of ``job`` in order.

    Args:
        job: The plan to execute.
        elevation_command: Prefix for groups that need root. Dropped
            when already running as root.
        stop_on_failure: Mark remaining groups skipped after a failure.
        run: ``subprocess.run`` replacement (tests).

    Returns:
        JobReport with one GroupResult per group.
    """
    report = JobReport()
    prefix = "" if _is_root() else elevation_command
    halted = False

    for group in job.groups:
        argv = group.command.full_argv(prefix)
        result = GroupResult(backend=group.instance.key, argv=argv)
        report.results.append(result)

        if halted:
            result.status = "skipped"
            continue

        logger.info("Running %s", group.command.display(prefix))
        start = time.monotonic()
        try:
            proc = run(argv, check=False)
        except OSError as e:
            result.status = "failed"
            result.error = f"cannot execute {argv[0]}: {e}"
        else:
            result.returncode = proc.returncode
            if proc.returncode != 0:
                result.status = "failed"
                result.error = f"Command failed (exit {proc.returncode})"
        result.elapsed_ms = int((time.monotonic() - start) * 1000)

        if result.status == "failed":
            logger.warning("%s: %s", result.backend, result.error)
            halted = stop_on_failure

    return report

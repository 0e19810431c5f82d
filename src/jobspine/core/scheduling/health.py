"""Scheduler health checks.

Operators observe the scheduler through ``snapshot()`` and logs.  This
module turns a snapshot into a report a health endpoint can return:

    1. Scheduler running: has start() been called without shutdown()?
    2. Overdue jobs: next_fire_time far in the past while not running,
       which means a loop died or the event loop is starved
    3. Failure rate: more than 10% failures over more than 10 runs
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .scheduler import JobScheduler


@dataclass
class SchedulerHealthReport:
    """Complete scheduler health report."""

    healthy: bool
    checks: dict[str, bool] = field(default_factory=dict)
    jobs: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "healthy": self.healthy,
            "checks": self.checks,
            "jobs": self.jobs,
            "warnings": self.warnings,
            "errors": self.errors,
        }


def check_scheduler_health(
    scheduler: JobScheduler,
    stall_threshold_seconds: float = 60.0,
    failure_rate_threshold: float = 0.1,
    min_runs_for_rate: int = 10,
    clock: Callable[[], datetime] | None = None,
) -> SchedulerHealthReport:
    """Build a health report from the scheduler's current snapshot.

    Args:
        scheduler: JobScheduler to check
        stall_threshold_seconds: How overdue a job may be before warning
        failure_rate_threshold: Failure fraction that triggers a warning
        min_runs_for_rate: Runs required before the rate is judged
        clock: Current-time source (default: UTC now)

    Returns:
        SchedulerHealthReport
    """
    now = (clock or (lambda: datetime.now(UTC)))()
    report = SchedulerHealthReport(healthy=True)

    report.checks["scheduler_running"] = scheduler.is_running
    if not scheduler.is_running:
        report.healthy = False
        report.errors.append("Scheduler is not running")

    statuses = scheduler.snapshot()
    report.jobs["total"] = len(statuses)
    report.jobs["enabled"] = sum(1 for s in statuses if s.enabled)
    report.jobs["running"] = sum(1 for s in statuses if s.running)
    report.jobs["runs"] = sum(s.run_count for s in statuses)
    report.jobs["failures"] = sum(s.fail_count for s in statuses)

    overdue = []
    for status in statuses:
        if not status.enabled or status.running or status.next_fire_time is None:
            continue
        lag = (now - status.next_fire_time).total_seconds()
        if lag > stall_threshold_seconds:
            overdue.append(status.id)
            report.warnings.append(f"Job {status.id} is {lag:.0f}s overdue")
    report.checks["no_overdue_jobs"] = not overdue

    high_failure = []
    for status in statuses:
        if status.run_count > min_runs_for_rate:
            rate = status.fail_count / status.run_count
            if rate > failure_rate_threshold:
                high_failure.append(status.id)
                report.warnings.append(
                    f"High failure rate for {status.id}: {status.fail_count}/{status.run_count} "
                    f"({rate * 100:.1f}%)"
                )
    report.checks["failure_rate_ok"] = not high_failure

    if report.errors:
        report.healthy = False

    return report

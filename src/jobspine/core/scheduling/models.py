"""Job and schedule data model.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB MODEL                                                                    │
│                                                                               │
│  JobDefinition (static, validated once)                                       │
│     ├── id, mode, lock_ttl_ms, enabled                                        │
│     ├── schedule ──► CronSchedule(expression)                                 │
│     │               FixedRateSchedule(interval_ms, initial_delay_ms)          │
│     └── factory(dependencies) ──► JobExecutor                                 │
│                                                                               │
│  JobStatus (frozen, replaced wholesale by the job's own loop)                 │
│     last_fire_time, last_duration_ms, last_result, next_fire_time,            │
│     run_count, success_count, fail_count, running                             │
│                                                                               │
│  JobContext (fresh per execution)                                             │
│     job_id, fire_time, dependencies, logger                                   │
└──────────────────────────────────────────────────────────────────────────────┘

Both schedule kinds implement the same two-method strategy
(``first_fire_time`` / ``next_fire_time``) so the scheduler loop is written
once.  ``FixedRateSchedule`` keeps its historical name but has fixed-delay
semantics: the next fire is measured from the end of the previous run.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from jobspine.core.errors import ScheduleError

from .cron import CronFields, next_fire_time, parse_cron

if TYPE_CHECKING:
    from .protocol import DependencyProvider, JobExecutor


DEFAULT_LOCK_TTL_MS = 30_000


class ExecutionMode(str, Enum):
    """How a job is coordinated across processes."""

    SINGLE_NODE = "SINGLE_NODE"  # one process per tick, via LockManager
    ALL_NODES = "ALL_NODES"  # every process, no lock


class JobResult(str, Enum):
    """Outcome of the most recent tick."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# === Schedules ===


@dataclass(frozen=True)
class CronSchedule:
    """Fire on a five-field cron calendar (UTC)."""

    expression: str
    _fields: CronFields = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # parse eagerly so bad expressions fail at registration
        object.__setattr__(self, "_fields", parse_cron(self.expression))

    @property
    def kind(self) -> str:
        return "cron"

    def first_fire_time(self, now: datetime) -> datetime | None:
        return next_fire_time(self._fields, now)

    def next_fire_time(self, now: datetime) -> datetime | None:
        return next_fire_time(self._fields, now)

    def describe(self) -> str:
        return f"cron({self.expression})"


@dataclass(frozen=True)
class FixedRateSchedule:
    """Fire every ``interval_ms`` after the previous run returns.

    Despite the name this is fixed-delay: slow executions push later fires
    back rather than being compensated.
    """

    interval_ms: int
    initial_delay_ms: int = 0

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ScheduleError(f"interval_ms must be > 0, got {self.interval_ms}")
        if self.initial_delay_ms < 0:
            raise ScheduleError(f"initial_delay_ms must be >= 0, got {self.initial_delay_ms}")

    @property
    def kind(self) -> str:
        return "fixed_rate"

    def first_fire_time(self, now: datetime) -> datetime | None:
        return now + timedelta(milliseconds=self.initial_delay_ms)

    def next_fire_time(self, now: datetime) -> datetime | None:
        return now + timedelta(milliseconds=self.interval_ms)

    def describe(self) -> str:
        return f"fixed_rate({self.interval_ms}ms, initial_delay={self.initial_delay_ms}ms)"


Schedule = CronSchedule | FixedRateSchedule


# === Definitions ===


JobFactory = Callable[["DependencyProvider"], "JobExecutor"]


@dataclass(frozen=True)
class JobDefinition:
    """Static description of one job, created once at startup."""

    id: str
    schedule: Schedule
    factory: JobFactory
    mode: ExecutionMode = ExecutionMode.SINGLE_NODE
    lock_ttl_ms: int = DEFAULT_LOCK_TTL_MS
    enabled: bool = True
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ScheduleError("Job id must be a non-empty string")
        if not isinstance(self.schedule, (CronSchedule, FixedRateSchedule)):
            raise ScheduleError(
                f"Job '{self.id}' has unsupported schedule type {type(self.schedule).__name__}"
            )
        if self.lock_ttl_ms <= 0:
            raise ScheduleError(f"Job '{self.id}' lock_ttl_ms must be > 0, got {self.lock_ttl_ms}")
        if not callable(self.factory):
            raise ScheduleError(f"Job '{self.id}' factory must be callable")
        if not isinstance(self.mode, ExecutionMode):
            object.__setattr__(self, "mode", ExecutionMode(self.mode))

    @property
    def lock_key(self) -> str:
        return f"job:{self.id}"

    @property
    def lock_ttl_seconds(self) -> float:
        return self.lock_ttl_ms / 1000.0


# === Status ===


@dataclass(frozen=True)
class JobStatus:
    """Point-in-time status of a job.

    Instances are immutable; the scheduler replaces a job's record as a
    whole, so a reader never sees ``last_result=SUCCESS`` alongside a stale
    ``run_count``.
    """

    id: str
    enabled: bool
    schedule: Schedule
    mode: ExecutionMode
    last_fire_time: datetime | None = None
    last_duration_ms: int | None = None
    last_result: JobResult | None = None
    next_fire_time: datetime | None = None
    run_count: int = 0
    success_count: int = 0
    fail_count: int = 0
    running: bool = False

    @classmethod
    def initial(cls, definition: JobDefinition) -> JobStatus:
        return cls(
            id=definition.id,
            enabled=definition.enabled,
            schedule=definition.schedule,
            mode=definition.mode,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "enabled": self.enabled,
            "schedule": self.schedule.describe(),
            "mode": self.mode.value,
            "last_fire_time": self.last_fire_time.isoformat() if self.last_fire_time else None,
            "last_duration_ms": self.last_duration_ms,
            "last_result": self.last_result.value if self.last_result else None,
            "next_fire_time": self.next_fire_time.isoformat() if self.next_fire_time else None,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "running": self.running,
        }


# === Execution context ===


@dataclass(frozen=True)
class JobContext:
    """Per-execution context handed to ``JobExecutor.run``."""

    job_id: str
    fire_time: datetime
    dependencies: DependencyProvider
    logger: Any

    def get(self, key: Any) -> Any:
        """Shortcut for ``ctx.dependencies.get(key)``."""
        return self.dependencies.get(key)

"""Job scheduling for jobspine.

Manifesto:
    Recurring work inside a service needs more than ``asyncio.sleep()`` in
    a loop.  It needs isolation (one broken job must not stop the others),
    cluster coordination (a SINGLE_NODE job runs once per tick across all
    instances), observable status, and a shutdown that cannot hang.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOBSPINE SCHEDULER                                                           │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from jobspine.core.scheduling import (                             │   │
│  │       JobRegistry, ExecutionMode, InMemoryLockManager,               │   │
│  │       create_scheduler,                                              │   │
│  │   )                                                                  │   │
│  │                                                                      │   │
│  │   registry = JobRegistry()                                           │   │
│  │                                                                      │   │
│  │   @registry.job("expire-tokens", cron="*/5 * * * *")                 │   │
│  │   class ExpireTokens:                                                │   │
│  │       async def run(self, ctx):                                      │   │
│  │           await ctx.get(TokenStore).expire()                         │   │
│  │                                                                      │   │
│  │   scheduler = create_scheduler(registry,                             │   │
│  │                                lock_manager=InMemoryLockManager())   │   │
│  │   scheduler.start()                                                  │   │
│  │   ...                                                                │   │
│  │   await scheduler.shutdown()                                         │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Modules:                                                                     │
│  - cron:          5-field cron evaluator (UTC, DOM AND DOW)                   │
│  - models:        JobDefinition, schedules, JobStatus, JobContext             │
│  - protocol:      LockManager / Lock / JobExecutor / listener ports           │
│  - lock_manager:  in-memory and SQL-table lock managers                       │
│  - registry:      JobRegistry and the @registry.job decorator                 │
│  - scheduler:     JobScheduler (start / trigger / snapshot / shutdown)        │
│  - config:        TOML overrides                                              │
│  - health:        health report from a snapshot                               │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Running a SINGLE_NODE job without a lock manager
    ✅ ``lock_manager=`` or ``mode=ExecutionMode.ALL_NODES``
    ❌ Blocking the event loop inside ``run()``
    ✅ ``await asyncio.to_thread(...)`` for blocking work
    ❌ Wiring settings, overrides and scheduler by hand
    ✅ ``create_scheduler(registry, ...)``

Tags:
    jobspine, scheduling, cron, distributed-locks, asyncio
"""

from __future__ import annotations

from collections.abc import Iterable

from jobspine.core.logging import get_logger
from jobspine.core.settings import JobsSettings

from .config import JobOverride, JobsFile, apply_overrides, load_jobs_config, merge_override
from .cron import CronFields, iter_fire_times, next_fire_time, parse_cron, validate_cron
from .health import SchedulerHealthReport, check_scheduler_health
from .lock_manager import InMemoryLockManager, SqlLockManager
from .models import (
    CronSchedule,
    ExecutionMode,
    FixedRateSchedule,
    JobContext,
    JobDefinition,
    JobResult,
    JobStatus,
    Schedule,
)
from .protocol import (
    DependencyProvider,
    JobExecutionListener,
    JobExecutor,
    Lock,
    LockManager,
    MappingDependencies,
    NoopListener,
)
from .registry import JobRegistry, build_schedule
from .scheduler import JobScheduler

__all__ = [
    # Cron
    "CronFields",
    "parse_cron",
    "validate_cron",
    "next_fire_time",
    "iter_fire_times",
    # Models
    "ExecutionMode",
    "JobResult",
    "CronSchedule",
    "FixedRateSchedule",
    "Schedule",
    "JobDefinition",
    "JobStatus",
    "JobContext",
    # Ports
    "Lock",
    "LockManager",
    "JobExecutor",
    "JobExecutionListener",
    "NoopListener",
    "DependencyProvider",
    "MappingDependencies",
    # Locks
    "InMemoryLockManager",
    "SqlLockManager",
    # Registry
    "JobRegistry",
    "build_schedule",
    # Scheduler
    "JobScheduler",
    "create_scheduler",
    # Config
    "JobOverride",
    "JobsFile",
    "load_jobs_config",
    "apply_overrides",
    "merge_override",
    # Health
    "check_scheduler_health",
    "SchedulerHealthReport",
]


def create_scheduler(
    jobs: Iterable[JobDefinition],
    *,
    settings: JobsSettings | None = None,
    lock_manager: LockManager | None = None,
    listener: JobExecutionListener | None = None,
    dependencies: DependencyProvider | None = None,
) -> JobScheduler:
    """Factory function to create a fully configured scheduler.

    Loads settings from the environment, applies TOML overrides from
    ``settings.config_file`` and logs a ``job.init`` summary.

    Args:
        jobs: JobRegistry or iterable of definitions
        settings: JobsSettings (default: read from environment)
        lock_manager: Lock manager for SINGLE_NODE jobs
        listener: Lifecycle callbacks
        dependencies: Provider for job factories

    Returns:
        Configured JobScheduler (not yet started)
    """
    settings = settings or JobsSettings()
    definitions = list(jobs)

    config = load_jobs_config(settings.config_file) if settings.config_file else None
    definitions = apply_overrides(definitions, config)

    enabled = settings.enabled
    if config is not None and config.enabled is not None:
        enabled = config.enabled

    log = get_logger("jobspine.jobs")
    if settings.instance_id:
        log = log.bind(instance_id=settings.instance_id)

    log.info(
        "job.init",
        total=len(definitions),
        enabled=sum(1 for d in definitions if d.enabled),
        single_node=sum(1 for d in definitions if d.mode is ExecutionMode.SINGLE_NODE),
        all_nodes=sum(1 for d in definitions if d.mode is ExecutionMode.ALL_NODES),
        global_enabled=enabled,
    )

    return JobScheduler(
        definitions,
        lock_manager=lock_manager,
        listener=listener,
        dependencies=dependencies,
        enabled=enabled,
        shutdown_timeout=settings.shutdown_timeout_seconds,
        logger=log,
    )

"""Job scheduler - one supervised asyncio loop per job.

Manifesto:
    Each job gets its own loop so a slow or broken job can never delay or
    kill its neighbours.  A tick is guarded three ways: the enabled
    switches (scheduled ticks only), a per-job reentrancy flag (no overlap
    inside one process) and, for SINGLE_NODE jobs, a non-blocking lock (no
    overlap across processes).  Contention resolves instantly to SKIPPED,
    so tick latency is bounded by the job itself, never by the lock.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB SCHEDULER                                                                │
│                                                                               │
│   start() ──► one task per enabled job (supervised set)                      │
│                                                                               │
│   _run_loop(job):                                                             │
│      fire_at = schedule.first_fire_time(now)                                  │
│      loop:                                                                    │
│        None? ──► log job.cron.no-next, loop ends                              │
│        sleep until fire_at            (cancellable)                           │
│        _execute(job)                                                          │
│        fire_at = schedule.next_fire_time(now)   ◄── measured after the run   │
│                                                                               │
│   _execute(job):                                                              │
│      1. scheduled tick and disabled?       ──► return                         │
│      2. already running?                   ──► return                         │
│      3. running = True                                                        │
│      4. SINGLE_NODE: try_lock("job:<id>")  ──► None: SKIPPED                  │
│      5. executor.run(JobContext)                                              │
│      6. SUCCESS  / 7. FAILED (contained) / 8. CancelledError re-raised        │
│      9. release lock   10. running = False      (finally)                     │
│                                                                               │
│   trigger(id) ──► one manual _execute task (skips step 1)                    │
│   snapshot()  ──► immutable JobStatus list                                   │
│   shutdown(t) ──► cancel all tasks, wait up to t, return                     │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    jobspine, scheduling, asyncio, supervision, distributed-locks
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from jobspine.core.errors import ConfigError, DuplicateJobError, JobNotFoundError, LockNotBoundError
from jobspine.core.logging import get_logger

from .models import ExecutionMode, JobContext, JobDefinition, JobResult, JobStatus
from .protocol import (
    DependencyProvider,
    JobExecutionListener,
    Lock,
    LockManager,
    MappingDependencies,
    NoopListener,
)

DEFAULT_SHUTDOWN_TIMEOUT = 30.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobScheduler:
    """Runs job definitions on their schedules.

    Example:
        >>> registry = JobRegistry()
        >>> @registry.job("heartbeat", fixed_rate_ms=5_000, mode=ExecutionMode.ALL_NODES)
        ... class Heartbeat:
        ...     async def run(self, ctx):
        ...         ctx.logger.info("heartbeat.tick")
        >>>
        >>> scheduler = JobScheduler(registry, lock_manager=InMemoryLockManager())
        >>> scheduler.start()          # inside a running event loop
        >>> ...
        >>> await scheduler.shutdown(timeout=10)
    """

    def __init__(
        self,
        jobs: Iterable[JobDefinition],
        *,
        lock_manager: LockManager | None = None,
        listener: JobExecutionListener | None = None,
        dependencies: DependencyProvider | None = None,
        enabled: bool = True,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
        logger: Any = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            jobs: Job definitions (a JobRegistry or any iterable)
            lock_manager: Required only if a SINGLE_NODE job actually ticks
            listener: Lifecycle callbacks (default: no-op)
            dependencies: Provider passed to job factories and contexts
            enabled: Global switch; False makes scheduled ticks skip silently
            shutdown_timeout: Default wait for shutdown(), in seconds
            clock: Returns the current aware UTC datetime
            logger: structlog logger (default: ``jobspine.jobs``)
        """
        self._definitions: dict[str, JobDefinition] = {}
        for definition in jobs:
            if definition.id in self._definitions:
                raise DuplicateJobError(definition.id)
            self._definitions[definition.id] = definition

        self._lock_manager = lock_manager
        self._listener = listener or NoopListener()
        self._dependencies = dependencies or MappingDependencies()
        self._enabled = enabled
        self._shutdown_timeout = shutdown_timeout
        self._clock = clock
        self._log = logger or get_logger("jobspine.jobs")

        # One record per job; replaced wholesale, never mutated in place
        self._statuses: dict[str, JobStatus] = {
            job_id: JobStatus.initial(definition)
            for job_id, definition in self._definitions.items()
        }
        self._job_loggers = {
            job_id: self._log.bind(job_id=job_id) for job_id in self._definitions
        }
        self._tasks: set[asyncio.Task[Any]] = set()
        self._running = False
        # bumped by start() and shutdown(); a loop runs only while it matches
        self._generation = 0

    # === Lifecycle ===

    def start(self) -> None:
        """Spawn one scheduling loop per enabled job.

        Must be called while an event loop is running.
        """
        if self._running:
            self._log.warning("job.scheduler.already-started")
            return

        asyncio.get_running_loop()
        enabled_jobs = [d for d in self._definitions.values() if d.enabled]
        self._running = True
        self._generation += 1

        self._log.info(
            "job.scheduler.start",
            total=len(self._definitions),
            enabled=len(enabled_jobs),
            global_enabled=self._enabled,
        )
        for definition in enabled_jobs:
            self._spawn(
                self._run_loop(definition, self._generation),
                name=f"jobspine:{definition.id}",
            )

    async def shutdown(self, timeout: float | None = None) -> None:
        """Cancel every loop and in-flight tick, waiting up to ``timeout``.

        Sleeping loops exit immediately.  Running jobs get cooperative
        cancellation only; if they ignore it, this still returns once the
        timeout elapses.

        Args:
            timeout: Seconds to wait (default: the configured shutdown_timeout)
        """
        timeout = self._shutdown_timeout if timeout is None else timeout
        self._generation += 1

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()

        pending: set[asyncio.Task[Any]] = set()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)

        self._running = False
        self._log.info(
            "job.scheduler.shutdown",
            cancelled=len(tasks),
            pending=len(pending),
            timeout=timeout,
        )

    @property
    def is_running(self) -> bool:
        """True between start() and shutdown()."""
        return self._running

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def definitions(self) -> list[JobDefinition]:
        return list(self._definitions.values())

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    # === Manual operations ===

    def trigger(self, job_id: str) -> asyncio.Task[JobResult | None]:
        """Run one tick of ``job_id`` now.

        Ignores the enabled switches but still honours the reentrancy guard
        and, for SINGLE_NODE jobs, the lock.

        Returns:
            The task running the tick; its result is the JobResult, or None
            if the tick was skipped because the job was already running.

        Raises:
            JobNotFoundError: unknown job id
            LockNotBoundError: SINGLE_NODE job and no lock manager
        """
        definition = self._definitions.get(job_id)
        if definition is None:
            raise JobNotFoundError(job_id)
        if definition.mode is ExecutionMode.SINGLE_NODE and self._lock_manager is None:
            raise LockNotBoundError(job_id)

        self._job_loggers[job_id].debug("job.triggered")
        return self._spawn(
            self._execute(definition, manual=True),
            name=f"jobspine:{job_id}:trigger",
        )

    # === Status ===

    def snapshot(self) -> list[JobStatus]:
        """Current status of every job (immutable copies)."""
        return list(self._statuses.values())

    def status(self, job_id: str) -> JobStatus:
        try:
            return self._statuses[job_id]
        except KeyError:
            raise JobNotFoundError(job_id) from None

    # === Internals ===

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log.error(
                "job.task.crashed",
                task=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    def _update(self, job_id: str, **changes: Any) -> JobStatus:
        status = replace(self._statuses[job_id], **changes)
        self._statuses[job_id] = status
        return status

    async def _sleep_until(self, fire_at: datetime) -> None:
        delay = (fire_at - self._clock()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)

    async def _run_loop(self, definition: JobDefinition, generation: int) -> None:
        log = self._job_loggers[definition.id]
        schedule = definition.schedule

        try:
            fire_at = schedule.first_fire_time(self._clock())
            while generation == self._generation:
                if fire_at is None:
                    log.warning("job.cron.no-next", schedule=schedule.describe())
                    self._update(definition.id, next_fire_time=None)
                    return

                self._update(definition.id, next_fire_time=fire_at)
                await self._sleep_until(fire_at)
                if generation != self._generation:
                    return

                self._update(definition.id, next_fire_time=schedule.next_fire_time(self._clock()))
                await self._execute(definition, manual=False)

                # an early wake-up must not make cron match the same minute twice
                fire_at = schedule.next_fire_time(max(self._clock(), fire_at))
        except ConfigError as e:
            log.error("job.scheduler.config-error", **e.to_dict())
        except Exception as e:
            log.exception("job.loop.crashed", error=str(e))

    async def _execute(self, definition: JobDefinition, *, manual: bool) -> JobResult | None:
        job_id = definition.id
        log = self._job_loggers[job_id]

        if not manual and not (self._enabled and definition.enabled):
            return None

        if self._statuses[job_id].running:
            log.debug("job.overlap", manual=manual)
            return None

        self._update(job_id, running=True)
        fire_time = self._clock()
        lock: Lock | None = None
        try:
            if definition.mode is ExecutionMode.SINGLE_NODE:
                lock = self._acquire(definition, log)
                if lock is None:
                    self._update(job_id, last_fire_time=fire_time, last_result=JobResult.SKIPPED)
                    log.info("job.skipped", fire_time=fire_time.isoformat())
                    await self._notify(log, "on_skipped", job_id, fire_time)
                    return JobResult.SKIPPED

            return await self._run_executor(definition, fire_time, log)
        finally:
            if lock is not None:
                self._release(lock, log)
            # cleared on cancellation too, so a restarted scheduler is not wedged
            self._update(job_id, running=False)

    def _acquire(self, definition: JobDefinition, log: Any) -> Lock | None:
        if self._lock_manager is None:
            raise LockNotBoundError(definition.id)
        try:
            return self._lock_manager.try_lock(definition.lock_key, definition.lock_ttl_seconds)
        except Exception as e:
            log.error("job.lock.failed", key=definition.lock_key, error=str(e))
            return None

    def _release(self, lock: Lock, log: Any) -> None:
        try:
            lock.release()
        except Exception as e:
            log.warning("job.lock.release-failed", key=lock.key, error=str(e))

    async def _run_executor(
        self, definition: JobDefinition, fire_time: datetime, log: Any
    ) -> JobResult:
        job_id = definition.id
        ctx = JobContext(
            job_id=job_id,
            fire_time=fire_time,
            dependencies=self._dependencies,
            logger=log,
        )

        log.info("job.started", fire_time=fire_time.isoformat())
        await self._notify(log, "on_start", job_id, fire_time)

        started = time.monotonic()
        try:
            executor = definition.factory(self._dependencies)
            await executor.run(ctx)
        except Exception as e:
            # CancelledError is a BaseException and unwinds past this block
            duration_ms = round((time.monotonic() - started) * 1000)
            status = self._statuses[job_id]
            self._statuses[job_id] = replace(
                status,
                last_fire_time=fire_time,
                last_duration_ms=duration_ms,
                last_result=JobResult.FAILED,
                run_count=status.run_count + 1,
                fail_count=status.fail_count + 1,
            )
            log.error(
                "job.failed",
                fire_time=fire_time.isoformat(),
                duration_ms=duration_ms,
                error=str(e) or repr(e),
                error_type=type(e).__name__,
            )
            await self._notify(log, "on_failure", job_id, fire_time, duration_ms, e)
            return JobResult.FAILED

        duration_ms = round((time.monotonic() - started) * 1000)
        status = self._statuses[job_id]
        self._statuses[job_id] = replace(
            status,
            last_fire_time=fire_time,
            last_duration_ms=duration_ms,
            last_result=JobResult.SUCCESS,
            run_count=status.run_count + 1,
            success_count=status.success_count + 1,
        )
        log.info("job.done", fire_time=fire_time.isoformat(), duration_ms=duration_ms)
        await self._notify(log, "on_success", job_id, fire_time, duration_ms)
        return JobResult.SUCCESS

    async def _notify(self, log: Any, hook: str, *args: Any) -> None:
        try:
            await getattr(self._listener, hook)(*args)
        except Exception as e:
            log.warning("job.listener.failed", hook=hook, error=str(e))

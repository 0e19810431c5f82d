"""Job registry.

A registry is the static list of job definitions a scheduler is built
from.  Definitions can be added directly or with the ``@registry.job``
class decorator:

    >>> registry = JobRegistry()
    >>> @registry.job("purge-sessions", cron="*/15 * * * *", mode=ExecutionMode.ALL_NODES)
    ... class PurgeSessions:
    ...     async def run(self, ctx):
    ...         ...
    >>> [d.id for d in registry.jobs]
    ['purge-sessions']

Schedules are validated when the decorator runs, so a bad cron expression
fails at import time rather than at the first tick.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from jobspine.core.errors import DuplicateJobError, JobNotFoundError, ScheduleError
from jobspine.core.logging import get_logger

from .models import (
    DEFAULT_LOCK_TTL_MS,
    CronSchedule,
    ExecutionMode,
    FixedRateSchedule,
    JobDefinition,
    Schedule,
)
from .protocol import DependencyProvider, JobExecutor

logger = get_logger(__name__)


def build_schedule(
    cron: str | None = None,
    fixed_rate_ms: int | None = None,
    initial_delay_ms: int = 0,
) -> Schedule:
    """Build a schedule from decorator-style arguments.

    Exactly one of ``cron`` and ``fixed_rate_ms`` must be given.
    """
    if cron and fixed_rate_ms:
        raise ScheduleError("cron and fixed_rate_ms are mutually exclusive")
    if cron:
        return CronSchedule(cron)
    if fixed_rate_ms:
        return FixedRateSchedule(fixed_rate_ms, initial_delay_ms)
    raise ScheduleError("one of cron or fixed_rate_ms is required")


def class_factory(cls: type) -> Callable[[DependencyProvider], JobExecutor]:
    """Factory that instantiates ``cls``, passing the provider if accepted."""
    params = [
        p
        for p in inspect.signature(cls).parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    takes_provider = len(params) >= 1

    def factory(dependencies: DependencyProvider) -> JobExecutor:
        return cls(dependencies) if takes_provider else cls()

    return factory


class JobRegistry:
    """Insertion-ordered collection of job definitions with unique ids."""

    def __init__(self, definitions: Iterable[JobDefinition] = ()) -> None:
        self._definitions: dict[str, JobDefinition] = {}
        for definition in definitions:
            self.add(definition)

    def add(self, definition: JobDefinition) -> JobDefinition:
        if definition.id in self._definitions:
            raise DuplicateJobError(definition.id)
        self._definitions[definition.id] = definition
        logger.debug(
            "job.registered",
            job_id=definition.id,
            schedule=definition.schedule.describe(),
            mode=definition.mode.value,
        )
        return definition

    def job(
        self,
        id: str,
        *,
        cron: str | None = None,
        fixed_rate_ms: int | None = None,
        initial_delay_ms: int = 0,
        mode: ExecutionMode = ExecutionMode.SINGLE_NODE,
        lock_ttl_ms: int = DEFAULT_LOCK_TTL_MS,
        enabled: bool = True,
        description: str | None = None,
    ) -> Callable[[type], type]:
        """Class decorator registering a JobExecutor implementation."""

        def decorator(cls: type) -> type:
            if not inspect.iscoroutinefunction(getattr(cls, "run", None)):
                raise ScheduleError(f"Job '{id}': {cls.__name__}.run must be an async method")
            self.add(
                JobDefinition(
                    id=id,
                    schedule=build_schedule(cron, fixed_rate_ms, initial_delay_ms),
                    factory=class_factory(cls),
                    mode=mode,
                    lock_ttl_ms=lock_ttl_ms,
                    enabled=enabled,
                    description=description or inspect.getdoc(cls),
                )
            )
            return cls

        return decorator

    def get(self, job_id: str) -> JobDefinition:
        try:
            return self._definitions[job_id]
        except KeyError:
            raise JobNotFoundError(job_id) from None

    @property
    def jobs(self) -> list[JobDefinition]:
        return list(self._definitions.values())

    def ids(self) -> list[str]:
        return list(self._definitions)

    def clear(self) -> None:
        """Clear registry (for testing)."""
        self._definitions.clear()

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[JobDefinition]:
        return iter(self._definitions.values())

    def __contains__(self, job_id: Any) -> bool:
        return job_id in self._definitions

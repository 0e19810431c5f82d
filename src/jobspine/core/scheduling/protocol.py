"""Ports consumed by the job scheduler.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER PORTS                                                              │
│                                                                               │
│   ┌────────────────┐   try_lock("job:<id>", ttl)   ┌──────────────────┐       │
│   │  JobScheduler  │ ─────────────────────────────►│  LockManager     │       │
│   │                │ ◄──────────── Lock | None ─── │  (Redis, SQL,    │       │
│   │                │                               │   in-memory)     │       │
│   │                │   run(ctx)                    └──────────────────┘       │
│   │                │ ─────────────────────────────►  JobExecutor              │
│   │                │   on_start / on_success /                                │
│   │                │   on_failure / on_skipped                                │
│   │                │ ─────────────────────────────►  JobExecutionListener     │
│   └────────────────┘                                                          │
│                                                                               │
│  The scheduler only depends on these shapes.  Optional ports default to      │
│  no-op implementations so the tick path never checks for None.               │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import JobContext


@runtime_checkable
class Lock(Protocol):
    """A held lock.  ``release()`` must be safe to call more than once."""

    key: str

    def release(self) -> bool:
        """Release the lock.

        Returns:
            True if this call released it, False if it was already released
            or expired and taken by someone else.
        """
        ...


@runtime_checkable
class LockManager(Protocol):
    """Non-blocking distributed lock capability.

    Example (custom backend):
        >>> class RedisLocks:
        ...     def try_lock(self, key, ttl_seconds):
        ...         token = secrets.token_hex(16)
        ...         if redis.set(key, token, nx=True, px=int(ttl_seconds * 1000)):
        ...             return RedisLock(key, token)
        ...         return None
    """

    def try_lock(self, key: str, ttl_seconds: float) -> Lock | None:
        """Try once to acquire ``key``; never waits.

        Returns:
            Lock if acquired, None on contention.
        """
        ...


@runtime_checkable
class JobExecutor(Protocol):
    """One job implementation.  Called once per tick with a fresh context."""

    async def run(self, ctx: JobContext) -> None: ...


@runtime_checkable
class DependencyProvider(Protocol):
    """Lookup of application services for job factories and contexts."""

    def get(self, key: Any) -> Any: ...


class MappingDependencies:
    """DependencyProvider backed by a mapping.

    Keys are usually types; ``get`` raises KeyError for unknown keys so a
    missing binding fails loudly inside the job (where it is recorded as
    FAILED) rather than returning None.
    """

    def __init__(self, bindings: Mapping[Any, Any] | None = None) -> None:
        self._bindings: dict[Any, Any] = dict(bindings or {})

    def get(self, key: Any) -> Any:
        try:
            return self._bindings[key]
        except KeyError:
            name = getattr(key, "__name__", key)
            raise KeyError(f"No dependency bound for {name!r}") from None

    def bind(self, key: Any, value: Any) -> None:
        self._bindings[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._bindings


class JobExecutionListener:
    """Callbacks for job lifecycle events.

    Subclass and override what you need; every hook defaults to a no-op.
    Exceptions raised by a hook are logged and never affect the recorded
    job result.
    """

    async def on_start(self, job_id: str, fire_time: datetime) -> None:
        """Job is about to execute."""

    async def on_success(self, job_id: str, fire_time: datetime, duration_ms: int) -> None:
        """Job returned normally."""

    async def on_failure(
        self, job_id: str, fire_time: datetime, duration_ms: int, error: BaseException
    ) -> None:
        """Job raised an exception."""

    async def on_skipped(self, job_id: str, fire_time: datetime) -> None:
        """SINGLE_NODE job did not get the lock."""


class NoopListener(JobExecutionListener):
    """Default listener."""

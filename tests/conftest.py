"""
Shared pytest fixtures for jobspine tests.

This module provides:
- structlog reset between tests (configure_logging caches loggers)
- Lock manager fixtures (in-memory and SQLite-backed)
- A ``make_job`` factory for definitions backed by plain coroutines
- A ``RecordingListener`` fixture capturing lifecycle callbacks
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from collections.abc import Awaitable, Callable
from typing import Any

import pytest
import structlog

from jobspine.core.logging import clear_context
from jobspine.core.scheduling import (
    ExecutionMode,
    FixedRateSchedule,
    InMemoryLockManager,
    JobDefinition,
    JobExecutionListener,
    SqlLockManager,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    clear_context()
    structlog.reset_defaults()


# =============================================================================
# Locks
# =============================================================================


@pytest.fixture()
def lock_manager() -> InMemoryLockManager:
    return InMemoryLockManager()


@pytest.fixture()
def conn():
    """In-memory SQLite with the core_job_locks table."""
    db = sqlite3.connect(":memory:")
    SqlLockManager(db).ensure_schema()
    yield db
    db.close()


# =============================================================================
# Jobs
# =============================================================================


class _FunctionExecutor:
    def __init__(self, fn: Callable[[Any], Awaitable[None]]) -> None:
        self._fn = fn

    async def run(self, ctx: Any) -> None:
        await self._fn(ctx)


async def _noop(ctx: Any) -> None:
    return None


@pytest.fixture()
def make_job() -> Callable[..., JobDefinition]:
    """Build a JobDefinition whose executor awaits ``fn(ctx)``.

    Defaults to an ALL_NODES job on a one-minute fixed-rate schedule so
    tests opt into locking and fast schedules explicitly.
    """

    def _make(
        job_id: str,
        fn: Callable[[Any], Awaitable[None]] = _noop,
        *,
        schedule: Any = None,
        mode: ExecutionMode = ExecutionMode.ALL_NODES,
        enabled: bool = True,
        lock_ttl_ms: int = 30_000,
    ) -> JobDefinition:
        return JobDefinition(
            id=job_id,
            schedule=schedule or FixedRateSchedule(60_000),
            factory=lambda deps: _FunctionExecutor(fn),
            mode=mode,
            enabled=enabled,
            lock_ttl_ms=lock_ttl_ms,
        )

    return _make


class RecordingListener(JobExecutionListener):
    """Listener that records every callback as a tuple."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    async def on_start(self, job_id, fire_time):
        self.events.append(("start", job_id))

    async def on_success(self, job_id, fire_time, duration_ms):
        self.events.append(("success", job_id))

    async def on_failure(self, job_id, fire_time, duration_ms, error):
        self.events.append(("failure", job_id, error))

    async def on_skipped(self, job_id, fire_time):
        self.events.append(("skipped", job_id))

    def kinds(self) -> list[str]:
        return [event[0] for event in self.events]


@pytest.fixture()
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture()
def wait_until():
    """Poll ``predicate`` on the event loop until true or ``timeout`` elapses."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not met within timeout")
            await asyncio.sleep(0.005)

    return _wait

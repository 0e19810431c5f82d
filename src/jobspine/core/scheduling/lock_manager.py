"""Lock managers for SINGLE_NODE jobs.

Manifesto:
    Multiple processes must never execute the same SINGLE_NODE job in the
    same tick.  A lock manager provides one-shot acquire with TTL-based
    auto-expiry so a crashed holder cannot cause a permanent deadlock.
    Contention is answered immediately with ``None``; the scheduler turns
    that into SKIPPED and never waits.

Two implementations ship with jobspine:

    InMemoryLockManager  process-local, for tests and single-instance apps
    SqlLockManager       DB-API table, shared by every process on one database

    Lock Flow::

        Instance A: try_lock("job:report") ──► INSERT ok   ──► Lock
        Instance B: try_lock("job:report") ──► CONFLICT    ──► None (SKIPPED)
        Instance A: lock.release()         ──► DELETE WHERE token matches

Tags:
    jobspine, scheduling, distributed-locks, TTL, concurrency
"""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from jobspine.core.logging import get_logger

logger = get_logger(__name__)


def _new_token() -> str:
    return secrets.token_hex(16)


# =============================================================================
# IN-MEMORY
# =============================================================================


class InMemoryLock:
    """Lock handle returned by InMemoryLockManager."""

    def __init__(self, manager: InMemoryLockManager, key: str, token: str) -> None:
        self.key = key
        self.token = token
        self._manager = manager
        self._released = False

    def release(self) -> bool:
        if self._released:
            return False
        self._released = True
        return self._manager._release(self.key, self.token)

    def __repr__(self) -> str:
        return f"InMemoryLock(key={self.key!r}, released={self._released})"


class InMemoryLockManager:
    """Process-local lock manager with TTL expiry.

    Thread-safe; suitable for tests and for deployments with a single
    scheduler process.

    Example:
        >>> locks = InMemoryLockManager()
        >>> lock = locks.try_lock("job:cleanup", ttl_seconds=30)
        >>> locks.try_lock("job:cleanup", ttl_seconds=30) is None
        True
        >>> lock.release()
        True
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._held: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def try_lock(self, key: str, ttl_seconds: float) -> InMemoryLock | None:
        now = self._clock()
        with self._lock:
            current = self._held.get(key)
            if current is not None and current[1] > now:
                return None
            token = _new_token()
            self._held[key] = (token, now + ttl_seconds)
        return InMemoryLock(self, key, token)

    def _release(self, key: str, token: str) -> bool:
        with self._lock:
            current = self._held.get(key)
            if current is None or current[0] != token:
                return False
            del self._held[key]
            return True

    def is_locked(self, key: str) -> bool:
        with self._lock:
            current = self._held.get(key)
            return current is not None and current[1] > self._clock()

    def clear(self) -> None:
        """Drop every lock. Useful for test cleanup."""
        with self._lock:
            self._held.clear()

    @property
    def held_keys(self) -> set[str]:
        now = self._clock()
        with self._lock:
            return {key for key, (_, expires) in self._held.items() if expires > now}


# =============================================================================
# SQL TABLE
# =============================================================================


LOCKS_SCHEMA = """
CREATE TABLE IF NOT EXISTS core_job_locks (
    lock_key TEXT PRIMARY KEY,
    locked_by TEXT NOT NULL,
    token TEXT NOT NULL,
    locked_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
)
"""


class SqlLock:
    """Lock handle returned by SqlLockManager."""

    def __init__(self, manager: SqlLockManager, key: str, token: str) -> None:
        self.key = key
        self.token = token
        self._manager = manager
        self._released = False

    def release(self) -> bool:
        if self._released:
            return False
        self._released = True
        return self._manager._release(self.key, self.token)

    def __repr__(self) -> str:
        return f"SqlLock(key={self.key!r}, released={self._released})"


class SqlLockManager:
    """Database-backed lock manager with TTL.

    Works with any DB-API connection using ``?`` placeholders and
    ``INSERT OR IGNORE`` (sqlite3 out of the box).

    Example:
        >>> manager = SqlLockManager(conn, instance_id="worker-1")
        >>> manager.ensure_schema()
        >>> lock = manager.try_lock("job:nightly-export", ttl_seconds=300)
        >>> if lock:
        ...     try:
        ...         export()
        ...     finally:
        ...         lock.release()
    """

    def __init__(self, conn: Any, instance_id: str | None = None) -> None:
        """Initialize lock manager.

        Args:
            conn: DB-API connection
            instance_id: Identifier recorded as lock holder.
                        Auto-generated if not provided.
        """
        self.conn = conn
        self.instance_id = instance_id or str(uuid4())
        self._mutex = threading.Lock()

    def ensure_schema(self) -> None:
        """Create the lock table if it does not exist."""
        with self._mutex:
            self.conn.execute(LOCKS_SCHEMA)
            self.conn.commit()

    def try_lock(self, key: str, ttl_seconds: float) -> SqlLock | None:
        """Acquire ``key`` if free or expired.

        Database errors are logged and treated as contention: the job is
        skipped this tick rather than run without coordination.
        """
        now = datetime.now(UTC)
        expires = now + timedelta(seconds=ttl_seconds)
        token = _new_token()

        with self._mutex:
            try:
                self.conn.execute(
                    "DELETE FROM core_job_locks WHERE lock_key = ? AND expires_at < ?",
                    (key, now.isoformat()),
                )
                cursor = self.conn.execute(
                    """
                    INSERT OR IGNORE INTO core_job_locks
                        (lock_key, locked_by, token, locked_at, expires_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (key, self.instance_id, token, now.isoformat(), expires.isoformat()),
                )
                self.conn.commit()
            except Exception as e:
                logger.error("lock.acquire.failed", key=key, error=str(e))
                return None

        if cursor.rowcount > 0:
            logger.debug("lock.acquired", key=key, instance_id=self.instance_id)
            return SqlLock(self, key, token)

        logger.debug("lock.contended", key=key, instance_id=self.instance_id)
        return None

    def _release(self, key: str, token: str) -> bool:
        with self._mutex:
            try:
                cursor = self.conn.execute(
                    "DELETE FROM core_job_locks WHERE lock_key = ? AND token = ?",
                    (key, token),
                )
                self.conn.commit()
            except Exception as e:
                logger.error("lock.release.failed", key=key, error=str(e))
                return False
        released = cursor.rowcount > 0
        if released:
            logger.debug("lock.released", key=key)
        return released

    def get_lock_holder(self, key: str) -> str | None:
        """Instance id holding ``key``, or None."""
        now = datetime.now(UTC)
        with self._mutex:
            cursor = self.conn.execute(
                "SELECT locked_by FROM core_job_locks WHERE lock_key = ? AND expires_at > ?",
                (key, now.isoformat()),
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def cleanup_expired_locks(self) -> int:
        """Remove all expired locks.

        Returns:
            Number of locks removed
        """
        now = datetime.now(UTC)
        with self._mutex:
            cursor = self.conn.execute(
                "DELETE FROM core_job_locks WHERE expires_at < ?",
                (now.isoformat(),),
            )
            self.conn.commit()
        count = cursor.rowcount
        if count > 0:
            logger.info("lock.cleanup", removed=count)
        return count

    def list_active_locks(self) -> list[dict[str, str]]:
        """List all non-expired locks."""
        now = datetime.now(UTC)
        with self._mutex:
            cursor = self.conn.execute(
                """
                SELECT lock_key, locked_by, locked_at, expires_at
                FROM core_job_locks
                WHERE expires_at > ?
                ORDER BY locked_at
                """,
                (now.isoformat(),),
            )
            rows = cursor.fetchall()
        return [
            {
                "lock_key": row[0],
                "locked_by": row[1],
                "locked_at": row[2],
                "expires_at": row[3],
            }
            for row in rows
        ]

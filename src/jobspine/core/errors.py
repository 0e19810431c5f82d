"""
Structured error types for jobspine.

Manifesto:
    Only two kinds of failure ever cross the scheduler's public API:
    configuration mistakes (unknown job id, SINGLE_NODE job without a lock
    manager) and malformed schedules.  Everything that happens *inside* a
    job is recorded on its status and reported to listeners instead.  The
    hierarchy below makes that split visible in the type system.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────┐
        │                      JobsError                           │
        │             (category, context, to_dict)                │
        ├─────────────────────────────────────────────────────────┤
        │                                                          │
        │  ConfigError               ValidationError               │
        │  (CONFIG)                  (VALIDATION)                  │
        │     │                          │                         │
        │  JobNotFoundError          CronExpressionError           │
        │  LockNotBoundError         ScheduleError                 │
        │  DuplicateJobError                                       │
        │  InvalidConfigError                                      │
        └─────────────────────────────────────────────────────────┘

Usage:
    from jobspine.core.errors import JobNotFoundError

    try:
        scheduler.trigger("nightly-report")
    except JobNotFoundError as e:
        log.warning("trigger.rejected", **e.to_dict())

Tags:
    error-handling, exception-hierarchy, jobspine, scheduling
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for routing and reporting."""

    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    INTERNAL = "INTERNAL"


class JobsError(Exception):
    """
    Base exception for all jobspine errors.

    Every error carries a category and a free-form context dict so it can
    be logged as structured fields without string parsing.

    Examples:
        >>> err = JobsError("boom")
        >>> err.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> err.with_context(job_id="cleanup").to_dict()["context"]
        {'job_id': 'cleanup'}
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobsError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(JobsError):
    """
    Configuration error.

    Raised synchronously to the caller of the offending operation.
    """

    default_category = ErrorCategory.CONFIG


class JobNotFoundError(ConfigError):
    """No job with the given id is registered."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}", context={"job_id": job_id})


class LockNotBoundError(ConfigError):
    """A SINGLE_NODE job needs a lock manager but none was supplied."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(
            f"Job '{job_id}' requires SINGLE_NODE coordination but no lock manager is bound. "
            "Pass lock_manager= to the scheduler or set mode=ExecutionMode.ALL_NODES.",
            context={"job_id": job_id},
        )


class DuplicateJobError(ConfigError):
    """Two job definitions share an id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job '{job_id}' is already registered", context={"job_id": job_id})


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(
            message or f"Invalid configuration for {key}: {value!r}",
            context={"key": key},
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(JobsError):
    """Invalid job or schedule definition, raised at registration time."""

    default_category = ErrorCategory.VALIDATION


class CronExpressionError(ValidationError):
    """Malformed cron expression."""

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(
            f"Invalid cron expression '{expression}': {reason}",
            context={"expression": expression},
        )


class ScheduleError(ValidationError):
    """Schedule parameters are invalid (interval, delay, ttl, ambiguity)."""

    pass


__all__ = [
    "ErrorCategory",
    "JobsError",
    "ConfigError",
    "JobNotFoundError",
    "LockNotBoundError",
    "DuplicateJobError",
    "InvalidConfigError",
    "ValidationError",
    "CronExpressionError",
    "ScheduleError",
]

"""Tests for jobspine.core.errors — error hierarchy."""

from __future__ import annotations

import pytest

from jobspine.core.errors import (
    ConfigError,
    CronExpressionError,
    DuplicateJobError,
    ErrorCategory,
    InvalidConfigError,
    JobNotFoundError,
    JobsError,
    LockNotBoundError,
    ScheduleError,
    ValidationError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error, parent, category",
        [
            (JobNotFoundError("a"), ConfigError, ErrorCategory.CONFIG),
            (LockNotBoundError("a"), ConfigError, ErrorCategory.CONFIG),
            (DuplicateJobError("a"), ConfigError, ErrorCategory.CONFIG),
            (InvalidConfigError("k", 1), ConfigError, ErrorCategory.CONFIG),
            (CronExpressionError("x", "bad"), ValidationError, ErrorCategory.VALIDATION),
            (ScheduleError("bad interval"), ValidationError, ErrorCategory.VALIDATION),
        ],
    )
    def test_categories(self, error, parent, category):
        assert isinstance(error, parent)
        assert isinstance(error, JobsError)
        assert error.category is category

    def test_base_defaults_to_internal(self):
        assert JobsError("x").category is ErrorCategory.INTERNAL


class TestJobsError:
    def test_to_dict(self):
        err = JobNotFoundError("nightly")
        data = err.to_dict()
        assert data["error_type"] == "JobNotFoundError"
        assert data["category"] == "CONFIG"
        assert data["context"] == {"job_id": "nightly"}
        assert "nightly" in data["message"]

    def test_with_context_is_fluent(self):
        err = JobsError("x").with_context(attempt=2)
        assert err.context == {"attempt": 2}

    def test_cause_is_chained(self):
        cause = OSError("disk")
        err = JobsError("wrapped", cause=cause)
        assert err.__cause__ is cause
        assert err.to_dict()["cause"] == "disk"

    def test_lock_not_bound_message_suggests_fix(self):
        assert "ALL_NODES" in str(LockNotBoundError("report"))

    def test_cron_error_message(self):
        err = CronExpressionError("* *", "expected 5 fields, got 2")
        assert err.message == "Invalid cron expression '* *': expected 5 fields, got 2"

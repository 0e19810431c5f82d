"""Per-job configuration overrides.

Jobs are declared in code, but operators tune them from a TOML file
without redeploying:

.. code-block:: toml

    [jobs]
    enabled = true              # global switch

    [[jobs.items]]
    id = "nightly-report"
    cron = "30 2 * * *"         # replaces the declared schedule
    mode = "ALL_NODES"

    [[jobs.items]]
    id = "poll-inbox"
    fixed_rate_ms = 10000
    initial_delay_ms = 2000
    enabled = false

Merge rules per item (matched by ``id``):

- ``cron`` wins and produces a cron schedule
- else ``fixed_rate_ms`` produces a fixed-rate schedule, keeping the
  current initial delay unless ``initial_delay_ms`` is also given
- else ``initial_delay_ms`` alone adjusts an existing fixed-rate schedule
- ``mode``, ``lock_ttl_ms`` and ``enabled`` replace the declared value
"""

from __future__ import annotations

import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from jobspine.core.errors import InvalidConfigError, ValidationError
from jobspine.core.logging import get_logger

from .models import CronSchedule, ExecutionMode, FixedRateSchedule, JobDefinition, Schedule

logger = get_logger(__name__)


class JobOverride(BaseModel):
    """One ``[[jobs.items]]`` entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    cron: str | None = None
    fixed_rate_ms: int | None = Field(default=None, gt=0)
    initial_delay_ms: int | None = Field(default=None, ge=0)
    mode: ExecutionMode | None = None
    lock_ttl_ms: int | None = Field(default=None, gt=0)
    enabled: bool | None = None


class JobsFile(BaseModel):
    """Parsed ``[jobs]`` table."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    enabled: bool | None = None
    items: list[JobOverride] = Field(default_factory=list)

    def find(self, job_id: str) -> JobOverride | None:
        for item in self.items:
            if item.id == job_id:
                return item
        return None


def parse_jobs_config(data: dict[str, Any]) -> JobsFile:
    """Validate an already-decoded TOML document."""
    jobs = data.get("jobs", {})
    if not isinstance(jobs, dict):
        raise InvalidConfigError("jobs", jobs, "[jobs] must be a table")
    try:
        return JobsFile.model_validate(jobs)
    except pydantic.ValidationError as e:
        raise InvalidConfigError("jobs", jobs, f"Invalid jobs configuration: {e}") from e


def load_jobs_config(path: Path | str) -> JobsFile:
    """Read and validate a jobs TOML file.

    Raises:
        InvalidConfigError: unreadable file, bad TOML, or invalid values
    """
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise InvalidConfigError("config_file", str(path), f"Jobs config not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise InvalidConfigError("config_file", str(path), f"Invalid TOML in {path}: {e}") from e
    return parse_jobs_config(data)


def _resolve_schedule(current: Schedule, override: JobOverride) -> Schedule:
    if override.cron is not None:
        return CronSchedule(override.cron)
    if override.fixed_rate_ms is not None:
        if override.initial_delay_ms is not None:
            delay = override.initial_delay_ms
        elif isinstance(current, FixedRateSchedule):
            delay = current.initial_delay_ms
        else:
            delay = 0
        return FixedRateSchedule(override.fixed_rate_ms, delay)
    if override.initial_delay_ms is not None and isinstance(current, FixedRateSchedule):
        return replace(current, initial_delay_ms=override.initial_delay_ms)
    return current


def merge_override(definition: JobDefinition, override: JobOverride | None) -> JobDefinition:
    """Apply one override to a definition (returns a new definition)."""
    if override is None:
        return definition
    try:
        return replace(
            definition,
            schedule=_resolve_schedule(definition.schedule, override),
            mode=override.mode if override.mode is not None else definition.mode,
            lock_ttl_ms=(
                override.lock_ttl_ms if override.lock_ttl_ms is not None else definition.lock_ttl_ms
            ),
            enabled=override.enabled if override.enabled is not None else definition.enabled,
        )
    except ValidationError as e:
        raise InvalidConfigError(
            f"jobs.items[{override.id}]", override.model_dump(exclude_none=True), e.message
        ) from e


def apply_overrides(
    definitions: list[JobDefinition], config: JobsFile | None
) -> list[JobDefinition]:
    """Merge every matching override; unknown ids are logged and ignored."""
    if config is None:
        return list(definitions)

    known = {d.id for d in definitions}
    for item in config.items:
        if item.id not in known:
            logger.warning("job.config.unknown-id", job_id=item.id)

    return [merge_override(d, config.find(d.id)) for d in definitions]

"""Environment-driven settings for jobspine.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    A process embedding the scheduler sets ``JOBSPINE_ENABLED=false`` to
    pause every job without a code change, or points
    ``JOBSPINE_CONFIG_FILE`` at a TOML file to retune individual jobs.

Examples:
    >>> from jobspine.core.settings import JobsSettings
    >>> settings = JobsSettings(shutdown_timeout_seconds=5)
    >>> settings.enabled
    True

Tags:
    settings, configuration, pydantic, environment, jobspine
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class JobsSettings(BaseSettings):
    """Scheduler settings.

    Fields
    ──────
    enabled                   : Global switch; False = scheduled ticks skip silently
    shutdown_timeout_seconds  : Default wait for loops to exit on shutdown
    config_file               : Optional TOML file with per-job overrides
    log_level                 : Structlog log level
    json_logs                 : Force JSON (True) / console (False) output
    instance_id               : Identity bound onto scheduler log events; pass it to
                                SqlLockManager(conn, instance_id=...) to name the lock holder
    """

    model_config = SettingsConfigDict(
        env_prefix="JOBSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = True
    shutdown_timeout_seconds: float = Field(default=30.0, gt=0)
    config_file: Path | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Coordination ─────────────────────────────────────────────
    instance_id: str | None = None

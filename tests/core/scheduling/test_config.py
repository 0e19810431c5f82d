"""Tests for jobspine.core.scheduling.config — TOML overrides and create_scheduler."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from jobspine.core.errors import InvalidConfigError
from jobspine.core.scheduling import create_scheduler
from jobspine.core.scheduling.config import (
    JobOverride,
    apply_overrides,
    load_jobs_config,
    merge_override,
    parse_jobs_config,
)
from jobspine.core.scheduling.models import CronSchedule, ExecutionMode, FixedRateSchedule
from jobspine.core.settings import JobsSettings

JOBS_TOML = """
[jobs]
enabled = true

[[jobs.items]]
id = "nightly-report"
cron = "30 2 * * *"
mode = "ALL_NODES"

[[jobs.items]]
id = "poll-inbox"
fixed_rate_ms = 10000
initial_delay_ms = 2000
enabled = false
"""


@pytest.fixture()
def jobs_file(tmp_path):
    path = tmp_path / "jobs.toml"
    path.write_text(JOBS_TOML)
    return path


# ── Loading ─────────────────────────────────────────────────────────────


class TestLoadJobsConfig:
    def test_parses_items(self, jobs_file):
        config = load_jobs_config(jobs_file)
        assert config.enabled is True
        assert [item.id for item in config.items] == ["nightly-report", "poll-inbox"]
        assert config.find("nightly-report").mode is ExecutionMode.ALL_NODES
        assert config.find("poll-inbox").fixed_rate_ms == 10_000
        assert config.find("missing") is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidConfigError, match="not found"):
            load_jobs_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[jobs\nenabled = ")
        with pytest.raises(InvalidConfigError, match="Invalid TOML"):
            load_jobs_config(path)

    def test_unknown_item_key_rejected(self):
        with pytest.raises(InvalidConfigError):
            parse_jobs_config({"jobs": {"items": [{"id": "a", "cronn": "* * * * *"}]}})

    def test_non_positive_interval_rejected(self):
        with pytest.raises(InvalidConfigError):
            parse_jobs_config({"jobs": {"items": [{"id": "a", "fixed_rate_ms": 0}]}})

    def test_jobs_must_be_a_table(self):
        with pytest.raises(InvalidConfigError):
            parse_jobs_config({"jobs": ["a"]})

    def test_missing_jobs_table_is_empty(self):
        config = parse_jobs_config({})
        assert config.enabled is None
        assert config.items == []


# ── Merge rules ─────────────────────────────────────────────────────────


class TestMergeOverride:
    def test_cron_wins_over_fixed_rate(self, make_job):
        definition = make_job("a", schedule=FixedRateSchedule(1_000))
        merged = merge_override(
            definition, JobOverride(id="a", cron="0 * * * *", fixed_rate_ms=5_000)
        )
        assert merged.schedule == CronSchedule("0 * * * *")

    def test_fixed_rate_keeps_existing_delay(self, make_job):
        definition = make_job("a", schedule=FixedRateSchedule(1_000, initial_delay_ms=500))
        merged = merge_override(definition, JobOverride(id="a", fixed_rate_ms=5_000))
        assert merged.schedule == FixedRateSchedule(5_000, 500)

    def test_fixed_rate_replaces_cron(self, make_job):
        definition = make_job("a", schedule=CronSchedule("0 * * * *"))
        merged = merge_override(definition, JobOverride(id="a", fixed_rate_ms=5_000))
        assert merged.schedule == FixedRateSchedule(5_000, 0)

    def test_fixed_rate_with_delay(self, make_job):
        definition = make_job("a", schedule=FixedRateSchedule(1_000, initial_delay_ms=500))
        merged = merge_override(
            definition, JobOverride(id="a", fixed_rate_ms=5_000, initial_delay_ms=50)
        )
        assert merged.schedule == FixedRateSchedule(5_000, 50)

    def test_delay_alone_adjusts_fixed_rate(self, make_job):
        definition = make_job("a", schedule=FixedRateSchedule(1_000))
        merged = merge_override(definition, JobOverride(id="a", initial_delay_ms=250))
        assert merged.schedule == FixedRateSchedule(1_000, 250)

    def test_delay_alone_leaves_cron_alone(self, make_job):
        definition = make_job("a", schedule=CronSchedule("0 * * * *"))
        merged = merge_override(definition, JobOverride(id="a", initial_delay_ms=250))
        assert merged.schedule == CronSchedule("0 * * * *")

    def test_scalar_fields_replace(self, make_job):
        definition = make_job("a", mode=ExecutionMode.SINGLE_NODE)
        merged = merge_override(
            definition,
            JobOverride(id="a", mode=ExecutionMode.ALL_NODES, lock_ttl_ms=9_000, enabled=False),
        )
        assert merged.mode is ExecutionMode.ALL_NODES
        assert merged.lock_ttl_ms == 9_000
        assert merged.enabled is False
        assert merged.schedule == definition.schedule

    def test_empty_override_is_identity(self, make_job):
        definition = make_job("a")
        assert merge_override(definition, JobOverride(id="a")) == definition
        assert merge_override(definition, None) is definition

    def test_bad_cron_in_override(self, make_job):
        with pytest.raises(InvalidConfigError):
            merge_override(make_job("a"), JobOverride(id="a", cron="* * *"))

    def test_non_ascii_digit_in_override(self, make_job):
        with pytest.raises(InvalidConfigError):
            merge_override(make_job("a"), JobOverride(id="a", cron="\u00b2 * * * *"))


class TestApplyOverrides:
    def test_unknown_ids_are_logged(self, make_job, jobs_file):
        with capture_logs() as logs:
            merged = apply_overrides([make_job("poll-inbox")], load_jobs_config(jobs_file))

        assert merged[0].enabled is False
        assert merged[0].schedule == FixedRateSchedule(10_000, 2_000)
        unknown = [e for e in logs if e["event"] == "job.config.unknown-id"]
        assert [e["job_id"] for e in unknown] == ["nightly-report"]

    def test_no_config(self, make_job):
        definitions = [make_job("a")]
        assert apply_overrides(definitions, None) == definitions


# ── create_scheduler ────────────────────────────────────────────────────


class TestCreateScheduler:
    def test_applies_file_overrides(self, make_job, jobs_file):
        scheduler = create_scheduler(
            [make_job("nightly-report", mode=ExecutionMode.SINGLE_NODE), make_job("poll-inbox")],
            settings=JobsSettings(config_file=jobs_file, shutdown_timeout_seconds=5),
        )
        report = scheduler.status("nightly-report")
        assert report.mode is ExecutionMode.ALL_NODES
        assert report.schedule == CronSchedule("30 2 * * *")
        assert scheduler.status("poll-inbox").enabled is False
        assert scheduler.enabled is True

    def test_file_switch_overrides_settings(self, make_job, tmp_path):
        path = tmp_path / "jobs.toml"
        path.write_text("[jobs]\nenabled = false\n")
        scheduler = create_scheduler(
            [make_job("a")], settings=JobsSettings(config_file=path, enabled=True)
        )
        assert scheduler.enabled is False

    def test_environment_switch(self, make_job, monkeypatch):
        monkeypatch.setenv("JOBSPINE_ENABLED", "false")
        monkeypatch.delenv("JOBSPINE_CONFIG_FILE", raising=False)
        scheduler = create_scheduler([make_job("a")])
        assert scheduler.enabled is False

    def test_logs_init_summary(self, make_job):
        with capture_logs() as logs:
            create_scheduler(
                [make_job("a"), make_job("b", mode=ExecutionMode.SINGLE_NODE, enabled=False)],
                settings=JobsSettings(),
            )

        init = [e for e in logs if e["event"] == "job.init"][0]
        assert init["total"] == 2
        assert init["enabled"] == 1
        assert init["single_node"] == 1
        assert init["all_nodes"] == 1

    @pytest.mark.asyncio
    async def test_instance_id_is_bound_to_scheduler_logs(self, make_job):
        with capture_logs() as logs:
            scheduler = create_scheduler([make_job("a")], settings=JobsSettings(instance_id="w-1"))
            await scheduler.trigger("a")

        assert [e for e in logs if e["event"] == "job.init"][0]["instance_id"] == "w-1"
        done = [e for e in logs if e["event"] == "job.done"][0]
        assert done["instance_id"] == "w-1"
        assert done["job_id"] == "a"

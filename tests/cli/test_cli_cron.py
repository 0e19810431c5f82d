"""Tests for the ``jobspine cron`` CLI commands."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from jobspine import __version__
from jobspine.cli.app import app

runner = CliRunner()


class TestCronNext:
    def test_json_output(self):
        result = runner.invoke(
            app,
            ["cron", "next", "*/15 * * * *", "--after", "2024-01-01T00:07:00", "-n", "2", "--json"],
        )
        assert result.exit_code == 0, result.output
        rows = json.loads(result.stdout)
        assert [row["fire_time"] for row in rows] == [
            "2024-01-01T00:15:00+00:00",
            "2024-01-01T00:30:00+00:00",
        ]
        assert rows[0]["weekday"] == "Mon"

    def test_table_output(self):
        result = runner.invoke(
            app, ["cron", "next", "0 0 1 1 *", "--after", "2024-06-01T00:00:00+00:00", "-n", "1"]
        )
        assert result.exit_code == 0, result.output
        assert "2025-01-01" in result.output

    def test_invalid_expression(self):
        result = runner.invoke(app, ["cron", "next", "61 * * * *"])
        assert result.exit_code == 1

    def test_no_fire_time(self):
        result = runner.invoke(app, ["cron", "next", "0 0 30 2 *"])
        assert result.exit_code == 1

    def test_bad_after(self):
        result = runner.invoke(app, ["cron", "next", "* * * * *", "--after", "yesterday"])
        assert result.exit_code == 2


class TestCronValidate:
    def test_valid(self):
        result = runner.invoke(app, ["cron", "validate", "*/5 9-17 * * 1-5"])
        assert result.exit_code == 0
        assert "OK" in result.output

    def test_invalid(self):
        result = runner.invoke(app, ["cron", "validate", "* * *"])
        assert result.exit_code == 1

    def test_non_ascii_digit(self):
        result = runner.invoke(app, ["cron", "validate", "\u00b2 * * * *"])
        assert result.exit_code == 1
        assert not isinstance(result.exception, ValueError)


class TestApp:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "cron" in result.output


"""
CLI: ``jobspine cron`` — inspect cron expressions.
"""

from __future__ import annotations

from datetime import UTC, datetime

import typer

from jobspine.cli.utils import console, fail, output_rows
from jobspine.core.errors import CronExpressionError
from jobspine.core.scheduling.cron import iter_fire_times, validate_cron

app = typer.Typer(no_args_is_help=True)


def _parse_after(value: str | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        fail(f"--after must be an ISO-8601 timestamp, got {value!r}")
        raise typer.Exit(code=2) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@app.command("next")
def next_times(
    expression: str = typer.Argument(..., help='Cron expression, e.g. "*/15 * * * *"'),
    after: str | None = typer.Option(None, "--after", help="ISO timestamp (default: now, UTC)"),
    count: int = typer.Option(5, "--count", "-n", min=1, max=1000),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the next fire times of an expression (UTC)."""
    start = _parse_after(after)
    try:
        times = list(iter_fire_times(expression, start, count))
    except CronExpressionError as e:
        fail(e.message)
        raise typer.Exit(code=1) from None

    if not times:
        fail(f"No fire time within the next 370 days for '{expression}'")
        raise typer.Exit(code=1)

    rows = [
        {"#": i, "fire_time": t.isoformat(), "weekday": t.strftime("%a")}
        for i, t in enumerate(times, start=1)
    ]
    output_rows(rows, as_json=json_out, title=f"Next fire times: {expression}")


@app.command("validate")
def validate(
    expression: str = typer.Argument(..., help="Cron expression"),
) -> None:
    """Check that an expression parses."""
    try:
        validate_cron(expression)
    except CronExpressionError as e:
        fail(e.message)
        raise typer.Exit(code=1) from None
    console.print(f"[green]OK[/green] {expression}")

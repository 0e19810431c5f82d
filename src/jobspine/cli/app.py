"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from jobspine import __version__
from jobspine.core.logging import configure_logging
from jobspine.core.settings import JobsSettings

app = Typer(
    name="jobspine",
    help="jobspine — in-process job scheduler tooling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"jobspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobspine CLI — inspect schedules."""
    settings = JobsSettings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)


from jobspine.cli.cron import app as cron_app  # noqa: E402

app.add_typer(cron_app, name="cron", help="Cron expression tools.")

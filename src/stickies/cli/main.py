"""Stickies CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from stickies.cli.learning import domains_app, learn_cmd, show_cmd
from stickies.cli.record import record_cmd
from stickies.cli.server import doctor_cmd, serve_cmd
from stickies.cli.tasks import tasks_app
from stickies.cli.voice import ingest_cmd, status_cmd, summarize_cmd, transcript_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("stickies")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"stickies {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="stickies",
    help=(
        "Stickies: voice notes to tasks and learning stickies.\n\n"
        "  stickies serve    Run the HTTP API the capture client talks to.\n"
        "  stickies record   Record a voice note against a running server."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Stickies: voice notes to tasks and learning stickies."""


app.command("serve")(serve_cmd)
app.command("doctor")(doctor_cmd)
app.command("record")(record_cmd)
app.command("ingest")(ingest_cmd)
app.command("status")(status_cmd)
app.command("transcript")(transcript_cmd)
app.command("summarize")(summarize_cmd)
app.command("learn")(learn_cmd)
app.command("stickies")(show_cmd)
app.add_typer(tasks_app, name="tasks")
app.add_typer(domains_app, name="domains")


@app.command("version")
def version_cmd() -> None:
    """Show the installed stickies version."""
    typer.echo(f"stickies {_installed_version()}")


if __name__ == "__main__":
    app()

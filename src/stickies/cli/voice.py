"""stickies ingest / status / transcript / summarize commands.

Run voice ingestions against the local database without the HTTP server.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from stickies.cli.common import DbOption, UserOption, cli_errors, console, open_service
from stickies.cli.errors import err_audio_file_missing, err_ingestion_failed, err_not_found
from stickies.db.models import TaskItem
from stickies.errors import NotFoundError
from stickies.pipeline import ProcessingOptions


def ingest_cmd(
    file: Annotated[Path, typer.Argument(help="Audio file to transcribe.")],
    user: UserOption = "local",
    language: Annotated[
        str | None,
        typer.Option("--language", "-l", help="Spoken language hint (ISO-639-1, e.g. 'en')."),
    ] = None,
    translate: Annotated[
        bool,
        typer.Option("--translate", help="Translate speech to English instead of transcribing."),
    ] = False,
    prompt: Annotated[
        str | None,
        typer.Option("--prompt", help="Vocabulary hint passed to the transcription model."),
    ] = None,
    db: DbOption = None,
) -> None:
    """Validate, transcode and transcribe an audio file."""
    if not file.exists():
        console.print(err_audio_file_missing(str(file)))
        raise typer.Exit(1)

    with cli_errors(), open_service(db) as service:
        with console.status(f"Transcribing {file.name}..."):
            result = service.upload(
                user,
                file,
                file.name,
                ProcessingOptions(language=language, translate=translate, prompt=prompt),
            )

    if result.status == "failed":
        console.print(err_ingestion_failed(result.ingestion_id, result.error or "Unknown error"))
        raise typer.Exit(1)

    lines = [
        f"Ingestion: [bold]{result.ingestion_id}[/]",
        f"Language:  {result.language or '-'}",
        f"Duration:  {_seconds(result.duration_seconds)}",
        f"Steps:     {', '.join(result.steps) or '-'}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Transcribed[/]", expand=False))
    console.print(result.transcript or "[dim](empty transcript)[/]")


def status_cmd(
    ingestion_id: Annotated[str, typer.Argument(help="Ingestion id.")],
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """Show the processing status of an ingestion."""
    with open_service(db) as service:
        try:
            record = service.get_ingestion(user, ingestion_id)
        except NotFoundError:
            console.print(err_not_found("Ingestion", ingestion_id, "stickies ingest <file>"))
            raise typer.Exit(1)

    colour = {"completed": "green", "failed": "red"}.get(record.status, "yellow")
    lines = [
        f"Status:    [{colour}]{record.status}[/]",
        f"Created:   {record.created_at or '-'}",
        f"Completed: {record.completed_at or '-'}",
    ]
    if record.original_filename:
        lines.append(f"File:      {record.original_filename}")
    if record.duration_seconds is not None:
        lines.append(f"Duration:  {_seconds(record.duration_seconds)}")
    if record.error_message:
        lines.append(f"Error:     {record.error_message}")
    console.print(Panel("\n".join(lines), title=f"[bold]{ingestion_id}[/]", expand=False))


def transcript_cmd(
    ingestion_id: Annotated[str, typer.Argument(help="Ingestion id.")],
    user: UserOption = "local",
    segments: Annotated[
        bool, typer.Option("--segments", help="Show timestamped segments.")
    ] = False,
    db: DbOption = None,
) -> None:
    """Print the transcript of a completed ingestion."""
    with open_service(db) as service:
        try:
            record = service.get_ingestion(user, ingestion_id)
        except NotFoundError:
            console.print(err_not_found("Ingestion", ingestion_id, "stickies ingest <file>"))
            raise typer.Exit(1)

    if record.status == "failed":
        console.print(err_ingestion_failed(ingestion_id, record.error_message or "Unknown error"))
        raise typer.Exit(1)
    if record.status != "completed":
        console.print(f"[yellow]Still {record.status}.[/] Try again in a moment.")
        raise typer.Exit(1)

    if segments and record.segments:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Start", justify="right")
        table.add_column("End", justify="right")
        table.add_column("Text")
        for seg in record.segments:
            table.add_row(f"{seg.start:.1f}", f"{seg.end:.1f}", seg.text)
        console.print(table)
    else:
        console.print(record.transcript or "[dim](empty transcript)[/]")


def summarize_cmd(
    ingestion_id: Annotated[str, typer.Argument(help="Completed ingestion id.")],
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """Extract tasks from a completed ingestion's transcript."""
    with cli_errors(), open_service(db) as service:
        with console.status("Extracting tasks..."):
            tasks = service.summarize(user, ingestion_id)
    console.print(task_table(tasks, title=f"{len(tasks)} task(s) created"))


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def task_table(tasks: list[TaskItem], title: str = "Tasks") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Priority")
    table.add_column("Due")
    table.add_column("Done", justify="center")
    for task in tasks:
        due = task.due_date.strftime("%Y-%m-%d %H:%M") if task.due_date else "-"
        if task.metadata.get("date_flagged"):
            due += " [yellow]?[/]"
        table.add_row(
            task.id,
            task.title,
            task.type,
            task.priority or "-",
            due,
            "[green]✓[/]" if task.completed else "",
        )
    return table


def _seconds(value: float | None) -> str:
    return f"{value:.1f}s" if value is not None else "-"

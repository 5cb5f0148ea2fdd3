"""stickies record command.

Captures from the microphone, uploads to a running server and waits for the
transcript; optionally extracts tasks or learning stickies afterwards.
"""

from __future__ import annotations

import threading
from typing import Annotated

import typer
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from stickies.cli.common import UserOption, console, load_cli_config
from stickies.cli.errors import err_server_unreachable, warn_transcription_timeout
from stickies.client.capture import CapturePhase, CaptureSession
from stickies.client.http import StickiesApiClient
from stickies.client.recorder import SILENCE_DB, SubprocessRecorder

_PHASE_LABELS = {
    CapturePhase.UPLOADING: "Uploading...",
    CapturePhase.TRANSCRIBING: "Transcribing...",
    CapturePhase.SUMMARIZING: "Extracting...",
}


def record_cmd(
    user: UserOption = "local",
    api_url: Annotated[
        str | None,
        typer.Option("--api-url", envvar="STICKIES_API_URL", help="Server URL (default: config)."),
    ] = None,
    language: Annotated[
        str | None, typer.Option("--language", "-l", help="Spoken language hint.")
    ] = None,
    tasks: Annotated[
        bool, typer.Option("--tasks", help="Extract tasks once the transcript is ready.")
    ] = False,
    learn: Annotated[
        bool, typer.Option("--learn", help="Generate learning stickies from the transcript.")
    ] = False,
) -> None:
    """Record a voice note (press Enter to stop, Ctrl-C to cancel)."""
    cfg = load_cli_config()
    url = api_url or cfg.client.api_url

    with StickiesApiClient(url, user, timeout=cfg.client.request_timeout) as api, CaptureSession(
        api,
        lambda: SubprocessRecorder(cfg.client.recorder_command, cfg.audio.work_dir),
        language=language or cfg.client.language,
        poll_interval=cfg.client.poll_interval,
        max_poll_attempts=cfg.client.max_poll_attempts,
    ) as session:
        session.add_observer(_print_phase)
        if not session.start_recording():
            console.print(f"[red]Error:[/] {session.error_message}")
            raise typer.Exit(1)

        try:
            _wait_for_enter(session)
        except KeyboardInterrupt:
            session.cancel_recording()
            console.print("[yellow]Recording discarded.[/]")
            raise typer.Exit(1)

        session.stop_and_upload()
        if session.phase is CapturePhase.ERROR:
            _report_failure(session, url)
            raise typer.Exit(1)

        console.print(Panel(session.transcript or "[dim](empty transcript)[/]",
                            title=f"[bold]{session.ingestion_id}[/]", expand=False))

        if tasks and session.extract_tasks():
            for task in session.tasks:
                due = f"  [dim]due {task['dueDate']}[/]" if task.get("dueDate") else ""
                console.print(f"• {task['title']}{due}")
        if learn and session.generate_stickies():
            console.print(f"[bold]{session.domain}[/]")
            for sticky in session.stickies:
                console.print(f"• [bold]{sticky['concept']}[/]: {sticky['definition']}")
        if session.error_message:
            console.print(f"[red]Error:[/] {session.error_message}")
            raise typer.Exit(1)


def _wait_for_enter(session: CaptureSession) -> None:
    """Show a live level meter until the user presses Enter."""
    pressed = threading.Event()

    def read_line() -> None:
        try:
            input()
        except EOFError:
            pass
        pressed.set()

    threading.Thread(target=read_line, name="stickies-stdin", daemon=True).start()
    with Live(_meter(session), console=console, refresh_per_second=8, transient=True) as live:
        while not pressed.wait(0.125):
            live.update(_meter(session))


def _meter(session: CaptureSession) -> Text:
    level = session.metering_db
    width = 30
    filled = 0 if level <= SILENCE_DB else int(width * max(0.0, (level + 60.0) / 60.0))
    bar = "█" * filled + "·" * (width - filled)
    return Text.from_markup(
        f"[red]●[/] {int(session.duration_seconds):>3}s  [green]{bar}[/]  "
        "[dim]Enter to stop, Ctrl-C to cancel[/]"
    )


def _print_phase(phase: CapturePhase, error: str | None) -> None:
    label = _PHASE_LABELS.get(phase)
    if label:
        console.print(f"[dim]{label}[/]")


def _report_failure(session: CaptureSession, url: str) -> None:
    message = session.error_message or "Unknown error"
    if session.ingestion_id and "timed out" in message.lower():
        console.print(warn_transcription_timeout(session.ingestion_id))
    elif session.ingestion_id is None and "could not reach" in message.lower():
        console.print(err_server_unreachable(url, message))
    else:
        console.print(f"[red]Error:[/] {message}")

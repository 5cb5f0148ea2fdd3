"""stickies serve / doctor commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import uvicorn
from rich.table import Table

from stickies.api.app import create_app
from stickies.audio.transcoder import ffmpeg_available, install_instructions
from stickies.cli.common import DbOption, console, load_cli_config
from stickies.cli.errors import err_ffmpeg_missing
from stickies.extract.llm_client import validate_api_key


def serve_cmd(
    host: Annotated[str | None, typer.Option("--host", help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option("--port", help="Bind port.")] = None,
    db: DbOption = None,
) -> None:
    """Run the HTTP API server."""
    cfg = load_cli_config(db)
    info = ffmpeg_available(cfg.audio.ffmpeg_path)
    if not info.available:
        console.print(err_ffmpeg_missing(install_instructions()))
        raise typer.Exit(1)

    host = host or cfg.server.host
    port = port or cfg.server.port
    console.print(f"Serving stickies on [bold]http://{host}:{port}[/]  (db: {cfg.database.path})")
    uvicorn.run(create_app(cfg), host=host, port=port, log_level=cfg.logging.level.lower())


def doctor_cmd(db: DbOption = None) -> None:
    """Check ffmpeg, API keys and the database path."""
    cfg = load_cli_config(db)
    table = Table(title="stickies doctor", show_header=True, header_style="bold")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")
    ok = True

    for name, binary in (("ffmpeg", cfg.audio.ffmpeg_path), ("ffprobe", cfg.audio.ffprobe_path)):
        info = ffmpeg_available(binary)
        if info.available:
            table.add_row(name, "[green]✓[/]", f"{info.version} ({info.path or binary})")
        else:
            ok = False
            table.add_row(name, "[red]✗[/]", info.error or "not found")

    models = {
        "transcription": cfg.transcription.model,
        "tasks": cfg.extraction.task_model,
        "learning": cfg.extraction.learning_model,
    }
    for role, model in models.items():
        try:
            validate_api_key(model)
        except EnvironmentError as exc:
            ok = False
            table.add_row(f"API key ({role})", "[red]✗[/]", str(exc))
        else:
            table.add_row(f"API key ({role})", "[green]✓[/]", model)

    db_path = Path(cfg.database.path)
    if db_path.exists():
        table.add_row("Database", "[green]✓[/]", str(db_path))
    else:
        table.add_row("Database", "[yellow]–[/]", f"{db_path} (created on first use)")

    console.print(table)
    if not ok:
        if not ffmpeg_available(cfg.audio.ffmpeg_path).available:
            console.print(install_instructions())
        raise typer.Exit(1)

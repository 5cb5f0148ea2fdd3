"""Shared CLI plumbing: options, service wiring and error rendering."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from stickies.cli.errors import (
    err_config,
    err_extraction,
    err_invalid_input,
    err_no_api_key,
    err_storage,
)
from stickies.config import ConfigError, StickiesConfig, load_config
from stickies.db.connection import Database
from stickies.db.repository import Repository
from stickies.db.schema import initialize
from stickies.errors import (
    ExtractionServiceError,
    PersistenceError,
    StickiesError,
    TranscriptionServiceError,
    ValidationError,
)
from stickies.logging_setup import setup_logging
from stickies.service import StickiesService

console = Console()

UserOption = Annotated[
    str,
    typer.Option("--user", "-u", envvar="STICKIES_USER", help="Owner id for the records."),
]
DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the stickies database (default: config / STICKIES_DB)."),
]


def load_cli_config(db: Path | None = None) -> StickiesConfig:
    """Load config (CLI flags applied last) and configure logging."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.database.path = str(db)
    setup_logging(cfg.logging.level, cfg.logging.file)
    return cfg


@contextmanager
def open_service(db: Path | None = None) -> Iterator[StickiesService]:
    """Yield a service bound to a freshly opened, initialised database."""
    cfg = load_cli_config(db)
    with Database(cfg.database.path) as conn:
        initialize(conn)
        yield StickiesService.from_config(Repository(conn), cfg)


@contextmanager
def cli_errors() -> Iterator[None]:
    """Render stickies errors as actionable messages and exit 1."""
    try:
        yield
    except ValidationError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from exc
    except ExtractionServiceError as exc:
        console.print(err_extraction(str(exc)))
        raise typer.Exit(1) from exc
    except TranscriptionServiceError as exc:
        console.print(f"[red]Error:[/] {exc.user_message}")
        raise typer.Exit(1) from exc
    except PersistenceError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(1) from exc
    except StickiesError as exc:
        console.print(f"[red]Error:[/] {exc.user_message}")
        raise typer.Exit(1) from exc
    except EnvironmentError as exc:
        message = str(exc)
        if "API key" in message:
            provider = message.split("'")[1] if "'" in message else "openai"
            console.print(err_no_api_key(provider))
        else:
            console.print(f"[red]Error:[/] {message}")
        raise typer.Exit(1) from exc

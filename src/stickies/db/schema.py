"""Database schema initialization."""

from __future__ import annotations

import sqlite3

INGESTION_STATUSES = ("pending", "processing", "completed", "failed")
TERMINAL_STATUSES = ("completed", "failed")

# Allowed predecessor statuses for each target status.
ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "processing": ("pending",),
    "completed": ("processing",),
    "failed": ("pending", "processing"),
}

CURRENT_VERSION = 2


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    from stickies.db.migrations import run_migrations

    run_migrations(conn)

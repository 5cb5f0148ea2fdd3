"""Forward-only migration runner for the stickies database schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS ingestions (
    ingestion_id        TEXT PRIMARY KEY,
    owner_id            TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    original_filename   TEXT,
    file_size_bytes     INTEGER,
    duration_seconds    REAL,
    audio_format        TEXT,
    language            TEXT,
    transcript          TEXT,
    segments            TEXT,
    confidence          REAL,
    metadata            TEXT NOT NULL DEFAULT '{}',
    error_message       TEXT,
    created_at          DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    completed_at        DATETIME
);

CREATE INDEX IF NOT EXISTS idx_ingestions_owner ON ingestions(owner_id, created_at);

CREATE TABLE IF NOT EXISTS tasks (
    id                  TEXT PRIMARY KEY,
    owner_id            TEXT NOT NULL,
    ingestion_id        TEXT NOT NULL,
    title               TEXT NOT NULL,
    description         TEXT,
    type                TEXT NOT NULL DEFAULT 'task'
                        CHECK (type IN ('task', 'reminder', 'note')),
    priority            TEXT CHECK (priority IN ('low', 'medium', 'high')),
    due_date            TEXT,
    completed           INTEGER NOT NULL DEFAULT 0,
    completed_at        DATETIME,
    metadata            TEXT NOT NULL DEFAULT '{}',
    created_at          DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id, created_at);
"""

_V2_SQL = """
CREATE TABLE IF NOT EXISTS learning_stickies (
    id                  TEXT PRIMARY KEY,
    owner_id            TEXT NOT NULL,
    ingestion_id        TEXT,
    domain              TEXT,
    concept             TEXT NOT NULL,
    definition          TEXT NOT NULL,
    example             TEXT,
    related_terms       TEXT NOT NULL DEFAULT '[]',
    created_at          DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_learning_owner_domain ON learning_stickies(owner_id, domain);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()

"""Repository pattern for all stickies database operations.

Single interface for: ingestion records (with guarded status transitions),
tasks and learning stickies. Every read and write is scoped to an owner id.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from stickies.db.models import DomainCount, IngestionRecord, LearningSticky, Segment, TaskItem
from stickies.db.schema import ALLOWED_TRANSITIONS
from stickies.errors import PersistenceError

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f', 'now')"

_INGESTION_COLUMNS = (
    "ingestion_id, owner_id, status, original_filename, file_size_bytes, "
    "duration_seconds, audio_format, language, transcript, segments, confidence, "
    "metadata, error_message, created_at, completed_at"
)
_TASK_COLUMNS = (
    "id, owner_id, ingestion_id, title, description, type, priority, due_date, "
    "completed, completed_at, metadata, created_at"
)
_STICKY_COLUMNS = (
    "id, owner_id, ingestion_id, domain, concept, definition, example, "
    "related_terms, created_at"
)

# Editable task columns (PATCH). ``completed`` is handled separately.
_TASK_EDITABLE = frozenset(["title", "description", "type", "priority", "due_date"])


class Repository:
    """Data access layer for all stickies database entities.

    Wraps an open sqlite3.Connection and provides typed methods for
    ingestions, tasks and learning stickies. The connection is owned by the
    caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see stickies.db.schema.initialize).
        """
        self._conn = conn

    @contextmanager
    def _transaction(self, what: str) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back and raise PersistenceError on any sqlite error."""
        try:
            with self._conn:
                yield self._conn
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not {what}: {exc}") from exc

    # ------------------------------------------------------------------
    # Ingestions
    # ------------------------------------------------------------------

    def create_ingestion(self, record: IngestionRecord) -> None:
        """Insert a new ingestion record in ``pending`` status."""
        with self._transaction("create ingestion record") as conn:
            conn.execute(
                """
                INSERT INTO ingestions
                    (ingestion_id, owner_id, status, original_filename, file_size_bytes,
                     duration_seconds, audio_format, language, metadata)
                VALUES (?, ?, 'pending', ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.ingestion_id,
                    record.owner_id,
                    record.original_filename,
                    record.file_size_bytes,
                    record.duration_seconds,
                    record.audio_format,
                    record.language,
                    json.dumps(record.metadata),
                ),
            )

    def get_ingestion(self, owner_id: str, ingestion_id: str) -> IngestionRecord | None:
        """Return the owner's ingestion record, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_INGESTION_COLUMNS} FROM ingestions WHERE ingestion_id = ? AND owner_id = ?",
            (ingestion_id, owner_id),
        ).fetchone()
        return _row_to_ingestion(row) if row else None

    def update_ingestion_metadata(
        self,
        ingestion_id: str,
        *,
        file_size_bytes: int | None = None,
        duration_seconds: float | None = None,
        audio_format: str | None = None,
        language: str | None = None,
    ) -> None:
        """Fill in provenance fields. A None argument never erases a stored value."""
        with self._transaction("update ingestion metadata") as conn:
            conn.execute(
                """
                UPDATE ingestions SET
                    file_size_bytes  = COALESCE(?, file_size_bytes),
                    duration_seconds = COALESCE(?, duration_seconds),
                    audio_format     = COALESCE(?, audio_format),
                    language         = COALESCE(?, language)
                WHERE ingestion_id = ?
                """,
                (file_size_bytes, duration_seconds, audio_format, language, ingestion_id),
            )

    def mark_processing(self, ingestion_id: str) -> None:
        self._transition(ingestion_id, "processing", {})

    def mark_completed(
        self,
        ingestion_id: str,
        *,
        transcript: str,
        segments: list[Segment],
        confidence: float | None,
        language: str | None = None,
        duration_seconds: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Move processing → completed and store the transcription result."""
        self._transition(
            ingestion_id,
            "completed",
            {
                "transcript": transcript,
                "segments": json.dumps([s.to_dict() for s in segments]),
                "confidence": confidence,
                "language": language,
                "duration_seconds": duration_seconds,
                "metadata": json.dumps(metadata or {}),
            },
        )

    def mark_failed(self, ingestion_id: str, error_message: str) -> None:
        """Move pending|processing → failed with a user-facing message."""
        self._transition(ingestion_id, "failed", {"error_message": error_message})

    def _transition(self, ingestion_id: str, status: str, fields: dict[str, Any]) -> None:
        """Apply a status change in one conditional UPDATE.

        Raises:
            PersistenceError: The record is missing or its current status does
                not allow moving to *status*.
        """
        allowed = ALLOWED_TRANSITIONS[status]
        assignments = ["status = ?"]
        params: list[Any] = [status]
        for column, value in fields.items():
            if column in ("language", "duration_seconds"):
                assignments.append(f"{column} = COALESCE(?, {column})")
            else:
                assignments.append(f"{column} = ?")
            params.append(value)
        if status in ("completed", "failed"):
            assignments.append(f"completed_at = {_NOW_SQL}")
        placeholders = ", ".join("?" for _ in allowed)
        params.extend([ingestion_id, *allowed])

        with self._transaction(f"mark ingestion {status}") as conn:
            cur = conn.execute(
                f"UPDATE ingestions SET {', '.join(assignments)} "
                f"WHERE ingestion_id = ? AND status IN ({placeholders})",
                params,
            )
            updated = cur.rowcount
        if updated == 0:
            row = self._conn.execute(
                "SELECT status FROM ingestions WHERE ingestion_id = ?", (ingestion_id,)
            ).fetchone()
            if row is None:
                raise PersistenceError(f"Ingestion {ingestion_id} does not exist")
            raise PersistenceError(
                f"Illegal status transition for {ingestion_id}: {row['status']} → {status}"
            )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_tasks(self, tasks: list[TaskItem]) -> None:
        """Insert a batch of tasks atomically (all or nothing)."""
        with self._transaction("save tasks") as conn:
            conn.executemany(
                """
                INSERT INTO tasks
                    (id, owner_id, ingestion_id, title, description, type, priority,
                     due_date, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        t.id,
                        t.owner_id,
                        t.ingestion_id,
                        t.title,
                        t.description,
                        t.type,
                        t.priority,
                        _format_due(t.due_date),
                        json.dumps(t.metadata),
                    )
                    for t in tasks
                ],
            )

    def get_task(self, owner_id: str, task_id: str) -> TaskItem | None:
        row = self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ? AND owner_id = ?",
            (task_id, owner_id),
        ).fetchone()
        return _row_to_task(row) if row else None

    def get_tasks(self, owner_id: str, task_ids: list[str]) -> list[TaskItem]:
        """Return the owner's tasks with *task_ids*, in the given order."""
        if not task_ids:
            return []
        placeholders = ", ".join("?" for _ in task_ids)
        rows = self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE owner_id = ? AND id IN ({placeholders})",
            [owner_id, *task_ids],
        ).fetchall()
        by_id = {r["id"]: _row_to_task(r) for r in rows}
        return [by_id[i] for i in task_ids if i in by_id]

    def list_tasks(
        self,
        owner_id: str,
        *,
        completed: bool | None = None,
        type: str | None = None,
        priority: str | None = None,
        ingestion_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TaskItem]:
        """Return the owner's tasks, newest first, with optional filters."""
        clauses = ["owner_id = ?"]
        params: list[Any] = [owner_id]
        if completed is not None:
            clauses.append("completed = ?")
            params.append(1 if completed else 0)
        if type is not None:
            clauses.append("type = ?")
            params.append(type)
        if priority is not None:
            clauses.append("priority = ?")
            params.append(priority)
        if ingestion_id is not None:
            clauses.append("ingestion_id = ?")
            params.append(ingestion_id)
        params.extend([limit, offset])
        rows = self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            params,
        ).fetchall()
        return [_row_to_task(r) for r in rows]

    def update_task(
        self,
        owner_id: str,
        task_id: str,
        *,
        completed: bool | None = None,
        **fields: Any,
    ) -> TaskItem | None:
        """Toggle completion and/or edit fields. Returns the updated task or None.

        Setting ``completed`` stamps ``completed_at``; clearing it resets it.
        """
        unknown = set(fields) - _TASK_EDITABLE
        if unknown:
            raise ValueError(f"Cannot edit task field(s): {', '.join(sorted(unknown))}")

        assignments: list[str] = []
        params: list[Any] = []
        for column, value in fields.items():
            assignments.append(f"{column} = ?")
            params.append(_format_due(value) if column == "due_date" else value)
        if completed is not None:
            assignments.append("completed = ?")
            params.append(1 if completed else 0)
            assignments.append(f"completed_at = {_NOW_SQL}" if completed else "completed_at = NULL")

        if assignments:
            with self._transaction("update task") as conn:
                conn.execute(
                    f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ? AND owner_id = ?",
                    [*params, task_id, owner_id],
                )
        return self.get_task(owner_id, task_id)

    def delete_task(self, owner_id: str, task_id: str) -> bool:
        """Delete a task. Returns False when it did not exist for this owner."""
        with self._transaction("delete task") as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND owner_id = ?", (task_id, owner_id)
            )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Learning stickies
    # ------------------------------------------------------------------

    def add_learning_stickies(self, stickies: list[LearningSticky]) -> None:
        """Insert a batch of learning stickies atomically (all or nothing)."""
        with self._transaction("save learning stickies") as conn:
            conn.executemany(
                """
                INSERT INTO learning_stickies
                    (id, owner_id, ingestion_id, domain, concept, definition, example,
                     related_terms)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        s.id,
                        s.owner_id,
                        s.ingestion_id,
                        s.domain,
                        s.concept,
                        s.definition,
                        s.example,
                        json.dumps(s.related_terms),
                    )
                    for s in stickies
                ],
            )

    def get_learning_stickies(self, owner_id: str, sticky_ids: list[str]) -> list[LearningSticky]:
        """Return the owner's stickies with *sticky_ids*, in the given order."""
        if not sticky_ids:
            return []
        placeholders = ", ".join("?" for _ in sticky_ids)
        rows = self._conn.execute(
            f"SELECT {_STICKY_COLUMNS} FROM learning_stickies "
            f"WHERE owner_id = ? AND id IN ({placeholders})",
            [owner_id, *sticky_ids],
        ).fetchall()
        by_id = {r["id"]: _row_to_sticky(r) for r in rows}
        return [by_id[i] for i in sticky_ids if i in by_id]

    def list_learning_stickies(
        self,
        owner_id: str,
        *,
        domain: str | None = None,
        ingestion_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[LearningSticky]:
        clauses = ["owner_id = ?"]
        params: list[Any] = [owner_id]
        if domain is not None:
            clauses.append("domain = ?")
            params.append(domain)
        if ingestion_id is not None:
            clauses.append("ingestion_id = ?")
            params.append(ingestion_id)
        params.extend([limit, offset])
        rows = self._conn.execute(
            f"SELECT {_STICKY_COLUMNS} FROM learning_stickies WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            params,
        ).fetchall()
        return [_row_to_sticky(r) for r in rows]

    def get_domains(self, owner_id: str) -> list[DomainCount]:
        """Return the owner's domains with sticky counts, most recently used first."""
        rows = self._conn.execute(
            """
            SELECT domain, COUNT(*) AS count, MAX(created_at) AS last_used
            FROM learning_stickies
            WHERE owner_id = ? AND domain IS NOT NULL AND domain != ''
            GROUP BY domain
            ORDER BY last_used DESC
            """,
            (owner_id,),
        ).fetchall()
        return [DomainCount(domain=r["domain"], count=r["count"]) for r in rows]

    def delete_learning_sticky(self, owner_id: str, sticky_id: str) -> bool:
        with self._transaction("delete learning sticky") as conn:
            cur = conn.execute(
                "DELETE FROM learning_stickies WHERE id = ? AND owner_id = ?",
                (sticky_id, owner_id),
            )
        return cur.rowcount > 0

    def delete_domain(self, owner_id: str, domain: str) -> int:
        """Delete every sticky in *domain*. Returns the number deleted."""
        with self._transaction("delete domain") as conn:
            cur = conn.execute(
                "DELETE FROM learning_stickies WHERE owner_id = ? AND domain = ?",
                (owner_id, domain),
            )
        return cur.rowcount

    def combine_domains(self, owner_id: str, domains: list[str], new_domain: str) -> int:
        """Rename every sticky in *domains* to *new_domain*. Returns the number moved."""
        placeholders = ", ".join("?" for _ in domains)
        with self._transaction("combine domains") as conn:
            cur = conn.execute(
                f"UPDATE learning_stickies SET domain = ? "
                f"WHERE owner_id = ? AND domain IN ({placeholders})",
                [new_domain, owner_id, *domains],
            )
        return cur.rowcount


# ------------------------------------------------------------------
# Row mappers (private)
# ------------------------------------------------------------------


def _format_due(value: datetime | None) -> str | None:
    return value.isoformat(timespec="milliseconds") if value is not None else None


def _row_to_ingestion(row: sqlite3.Row) -> IngestionRecord:
    segments = [Segment(**s) for s in json.loads(row["segments"])] if row["segments"] else []
    return IngestionRecord(
        ingestion_id=row["ingestion_id"],
        owner_id=row["owner_id"],
        status=row["status"],
        original_filename=row["original_filename"],
        file_size_bytes=row["file_size_bytes"],
        duration_seconds=row["duration_seconds"],
        audio_format=row["audio_format"],
        language=row["language"],
        transcript=row["transcript"],
        segments=segments,
        confidence=row["confidence"],
        metadata=json.loads(row["metadata"] or "{}"),
        error_message=row["error_message"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
    )


def _row_to_task(row: sqlite3.Row) -> TaskItem:
    return TaskItem(
        id=row["id"],
        owner_id=row["owner_id"],
        ingestion_id=row["ingestion_id"],
        title=row["title"],
        description=row["description"],
        type=row["type"],
        priority=row["priority"],
        due_date=datetime.fromisoformat(row["due_date"]) if row["due_date"] else None,
        completed=bool(row["completed"]),
        completed_at=row["completed_at"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=row["created_at"],
    )


def _row_to_sticky(row: sqlite3.Row) -> LearningSticky:
    return LearningSticky(
        id=row["id"],
        owner_id=row["owner_id"],
        ingestion_id=row["ingestion_id"],
        domain=row["domain"],
        concept=row["concept"],
        definition=row["definition"],
        example=row["example"],
        related_terms=json.loads(row["related_terms"] or "[]"),
        created_at=row["created_at"],
    )

"""Domain models for the stickies database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Segment:
    start: float
    end: float
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end, "text": self.text}


@dataclass
class IngestionRecord:
    ingestion_id: str
    owner_id: str
    status: str = "pending"
    original_filename: str | None = None
    file_size_bytes: int | None = None
    duration_seconds: float | None = None
    audio_format: str | None = None
    language: str | None = None
    transcript: str | None = None
    segments: list[Segment] = field(default_factory=list)
    confidence: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    created_at: str | None = None
    completed_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


@dataclass
class TaskItem:
    id: str
    owner_id: str
    ingestion_id: str
    title: str
    description: str | None = None
    type: str = "task"
    priority: str | None = None
    due_date: datetime | None = None
    completed: bool = False
    completed_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ingestionId": self.ingestion_id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "priority": self.priority,
            "dueDate": self.due_date.isoformat(timespec="milliseconds") if self.due_date else None,
            "completed": self.completed,
            "completedAt": self.completed_at,
            "metadata": self.metadata,
            "createdAt": self.created_at,
        }


@dataclass
class LearningSticky:
    id: str
    owner_id: str
    concept: str
    definition: str
    domain: str | None = None
    ingestion_id: str | None = None
    example: str | None = None
    related_terms: list[str] = field(default_factory=list)
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ingestionId": self.ingestion_id,
            "domain": self.domain,
            "concept": self.concept,
            "definition": self.definition,
            "example": self.example,
            "relatedTerms": self.related_terms,
            "createdAt": self.created_at,
        }


@dataclass
class DomainCount:
    domain: str
    count: int

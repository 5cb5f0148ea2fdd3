"""Pydantic schemas for completion-model output.

Model output is validated here before anything else touches it; a response
that does not fit raises ExtractionServiceError instead of leaking partially
typed data into the database.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from stickies.errors import ExtractionServiceError

logger = logging.getLogger(__name__)

TaskType = Literal["task", "reminder", "note"]
Priority = Literal["low", "medium", "high"]


class _ModelOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class RawTask(_ModelOutput):
    title: str
    description: str | None = None
    type: TaskType = "task"
    priority: Priority | None = None
    due_date: str | None = Field(default=None, alias="dueDate")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("missing or invalid title")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def default_type(cls, v: Any) -> Any:
        return v or "task"

    @field_validator("priority", "description", "due_date", mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        return v or None


class TaskSummary(_ModelOutput):
    tasks: list[RawTask] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Learning stickies
# ---------------------------------------------------------------------------


class StickyItem(_ModelOutput):
    concept: str
    definition: str
    example: str | None = None
    related_terms: list[str] = Field(default_factory=list, alias="relatedTerms")

    @field_validator("concept", "definition")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("example", mode="before")
    @classmethod
    def example_to_str(cls, v: Any) -> Any:
        if v is None:
            return None
        return str(v).strip() or None

    @field_validator("related_terms", mode="before")
    @classmethod
    def terms_to_str(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        seen: list[str] = []
        for term in v:
            text = str(term).strip()
            if text and text not in seen:
                seen.append(text)
        return seen


class LearningResponse(_ModelOutput):
    area_summary: str | None = Field(default=None, alias="areaSummary")
    learning_stickies: list[Any] = Field(alias="learningStickies")

    @field_validator("area_summary", mode="before")
    @classmethod
    def summary_str(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else None


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _load_json(content: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise ExtractionServiceError(
            f"Failed to parse the language model response as JSON: {exc.msg}."
        ) from exc


def _first_error(exc: SchemaError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err.get('msg', 'invalid')}" if loc else err.get("msg", "invalid")


def parse_task_summary(content: str) -> TaskSummary:
    """Validate a task-extraction response.

    Raises:
        ExtractionServiceError: Malformed JSON, missing/empty ``tasks`` array,
            a task without a title, or a type/priority outside the enumerations.
    """
    data = _load_json(content)
    try:
        return TaskSummary.model_validate(data)
    except SchemaError as exc:
        raise ExtractionServiceError(
            f"Invalid task list from the language model ({_first_error(exc)})."
        ) from exc


def parse_learning_response(content: str) -> tuple[str | None, list[StickyItem]]:
    """Validate a learning-sticky response; bad items are dropped individually.

    Raises:
        ExtractionServiceError: Malformed JSON, a missing ``learningStickies``
            array, or no usable items left after dropping invalid ones.
    """
    data = _load_json(content)
    try:
        parsed = LearningResponse.model_validate(data)
    except SchemaError as exc:
        raise ExtractionServiceError(
            "Invalid response format: missing learningStickies array."
        ) from exc

    items: list[StickyItem] = []
    for raw in parsed.learning_stickies:
        try:
            items.append(StickyItem.model_validate(raw))
        except SchemaError:
            logger.debug("Dropping malformed learning sticky: %r", raw)
    if not items:
        raise ExtractionServiceError("The language model returned no usable learning stickies.")
    return parsed.area_summary or None, items

"""Tests for completion-output schemas."""

from __future__ import annotations

import json

import pytest

from stickies.errors import ExtractionServiceError
from stickies.extract.schemas import parse_learning_response, parse_task_summary


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def test_task_defaults_and_aliases():
    summary = parse_task_summary(
        json.dumps({"tasks": [{"title": " Buy milk ", "dueDate": "2026-03-03T10:00:00"}]})
    )
    [task] = summary.tasks
    assert task.title == "Buy milk"
    assert task.type == "task"
    assert task.priority is None
    assert task.due_date == "2026-03-03T10:00:00"


def test_task_empty_strings_become_none():
    summary = parse_task_summary(
        json.dumps({"tasks": [{"title": "x", "type": "", "priority": "", "description": "", "dueDate": ""}]})
    )
    task = summary.tasks[0]
    assert task.type == "task"
    assert task.priority is None
    assert task.description is None
    assert task.due_date is None


def test_malformed_json_raises():
    with pytest.raises(ExtractionServiceError, match="parse"):
        parse_task_summary("not json {")


def test_empty_task_list_raises():
    with pytest.raises(ExtractionServiceError, match="tasks"):
        parse_task_summary('{"tasks": []}')


def test_missing_tasks_key_raises():
    with pytest.raises(ExtractionServiceError):
        parse_task_summary('{"items": [{"title": "x"}]}')


def test_blank_title_raises():
    with pytest.raises(ExtractionServiceError, match="title"):
        parse_task_summary('{"tasks": [{"title": "   "}]}')


@pytest.mark.parametrize("field, value", [("type", "chore"), ("priority", "urgent")])
def test_out_of_range_enum_raises(field, value):
    with pytest.raises(ExtractionServiceError):
        parse_task_summary(json.dumps({"tasks": [{"title": "x", field: value}]}))


def test_extraction_error_user_message_asks_to_retry():
    with pytest.raises(ExtractionServiceError) as info:
        parse_task_summary("nope")
    assert info.value.user_message.endswith("Please try again.")


# ---------------------------------------------------------------------------
# Learning stickies
# ---------------------------------------------------------------------------


def test_learning_response_parsed():
    area, items = parse_learning_response(
        json.dumps(
            {
                "areaSummary": " React Hooks ",
                "learningStickies": [
                    {
                        "concept": "useEffect",
                        "definition": "Runs side effects after render.",
                        "example": 42,
                        "relatedTerms": ["useState", "useState", " ", 7],
                    }
                ],
            }
        )
    )
    assert area == "React Hooks"
    [item] = items
    assert item.example == "42"
    assert item.related_terms == ["useState", "7"]


def test_invalid_items_dropped_individually():
    area, items = parse_learning_response(
        json.dumps(
            {
                "areaSummary": "Rust",
                "learningStickies": [
                    {"concept": "Ownership", "definition": "Each value has one owner."},
                    {"concept": "", "definition": "blank concept"},
                    {"definition": "no concept"},
                    "not an object",
                ],
            }
        )
    )
    assert [i.concept for i in items] == ["Ownership"]


def test_no_usable_items_raises():
    with pytest.raises(ExtractionServiceError, match="no usable"):
        parse_learning_response('{"learningStickies": [{"concept": ""}]}')


def test_missing_array_raises():
    with pytest.raises(ExtractionServiceError, match="learningStickies"):
        parse_learning_response('{"areaSummary": "x"}')


def test_blank_area_is_none():
    area, _ = parse_learning_response(
        '{"areaSummary": "  ", "learningStickies": [{"concept": "a", "definition": "b"}]}'
    )
    assert area is None

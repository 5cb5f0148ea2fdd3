"""Tests for the task extractor."""

from __future__ import annotations

import json
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from stickies.errors import ExtractionServiceError
from stickies.extract.tasks import TaskExtractor

NOW = datetime(2026, 3, 2, 9, 15)


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def _response(payload) -> MagicMock:
    mock = MagicMock()
    mock.choices[0].message.content = payload if isinstance(payload, str) else json.dumps(payload)
    return mock


def _extractor() -> TaskExtractor:
    return TaskExtractor(clock=lambda: NOW)


def test_prompt_carries_literal_dates():
    messages = _extractor().build_messages("buy milk", NOW)
    system = messages[0]["content"]
    assert "2026-03-02" in system
    assert "TOMORROW is 2026-03-03" in system
    assert "DAY AFTER TOMORROW is 2026-03-04" in system
    assert "Monday, March 2, 2026" in system
    assert "buy milk" in messages[1]["content"]


def test_buy_milk_tomorrow():
    payload = {"tasks": [{"title": "Buy milk", "type": "task", "dueDate": "2026-03-05T00:00:00"}]}
    with patch("stickies.extract.llm_client.litellm.completion", return_value=_response(payload)) as m:
        [task] = _extractor().extract("buy milk tomorrow")

    assert task.title == "Buy milk"
    assert task.due_date == datetime(2026, 3, 3, 0, 0)
    assert task.raw_due_date == "2026-03-05T00:00:00"
    assert m.call_args.kwargs["response_format"] == {"type": "json_object"}
    assert m.call_args.kwargs["temperature"] == 0.3


def test_day_after_tomorrow_at_3pm():
    payload = {
        "tasks": [
            {"title": "Call mom", "type": "reminder", "priority": "medium", "dueDate": "2026-03-03T15:00:00"}
        ]
    }
    with patch("stickies.extract.llm_client.litellm.completion", return_value=_response(payload)):
        [task] = _extractor().extract("call mom day after tomorrow at 3pm")

    assert task.type == "reminder"
    assert task.due_date == datetime(2026, 3, 4, 15, 0)


def test_task_without_date():
    payload = {"tasks": [{"title": "Read a book", "type": "note"}]}
    with patch("stickies.extract.llm_client.litellm.completion", return_value=_response(payload)):
        [task] = _extractor().extract("I should read a book")

    assert task.due_date is None
    assert task.raw_due_date is None


def test_multiple_tasks_keep_order():
    payload = {"tasks": [{"title": "A"}, {"title": "B"}, {"title": "C"}]}
    with patch("stickies.extract.llm_client.litellm.completion", return_value=_response(payload)):
        tasks = _extractor().extract("a, b and c")
    assert [t.title for t in tasks] == ["A", "B", "C"]


def test_malformed_output_raises_and_is_not_retried():
    with patch(
        "stickies.extract.llm_client.litellm.completion", return_value=_response("{not json")
    ) as m:
        with pytest.raises(ExtractionServiceError):
            _extractor().extract("buy milk")
    assert m.call_count == 1


def test_empty_task_list_raises():
    with patch(
        "stickies.extract.llm_client.litellm.completion", return_value=_response({"tasks": []})
    ):
        with pytest.raises(ExtractionServiceError):
            _extractor().extract("nothing to do")


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    with patch("stickies.extract.llm_client.litellm.completion") as m:
        with pytest.raises(EnvironmentError):
            _extractor().extract("buy milk")
    m.assert_not_called()

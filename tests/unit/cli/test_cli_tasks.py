"""Tests for the stickies tasks sub-commands."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from stickies.cli.main import app
from stickies.db.connection import Database
from stickies.db.repository import Repository

runner = CliRunner()
COMPLETION = "stickies.extract.llm_client.litellm.completion"


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def _tasks(db_path, owner="local"):
    with Database(db_path) as conn:
        return Repository(conn).list_tasks(owner)


def _add(db_args, llm_response, *titles):
    payload = {"tasks": [{"title": t, "type": "task"} for t in titles]}
    with patch(COMPLETION, return_value=llm_response(payload)):
        return runner.invoke(app, ["tasks", "add", "do some things", *db_args])


def test_add(tmp_path, db_args, llm_response):
    result = _add(db_args, llm_response, "Buy milk", "Call mom")
    assert result.exit_code == 0, result.output
    assert "2 task(s) created" in result.output
    assert "text:" in result.output
    assert {t.title for t in _tasks(tmp_path / "cli.db")} == {"Buy milk", "Call mom"}


def test_add_empty_text(db_args):
    result = runner.invoke(app, ["tasks", "add", "  ", *db_args])
    assert result.exit_code == 1
    assert "Text is required" in result.output


def test_add_without_api_key(monkeypatch, db_args):
    monkeypatch.delenv("OPENAI_API_KEY")
    result = runner.invoke(app, ["tasks", "add", "buy milk", *db_args])
    assert result.exit_code == 1
    assert "export OPENAI_API_KEY" in result.output


def test_list_empty(db_args):
    result = runner.invoke(app, ["tasks", "list", *db_args])
    assert result.exit_code == 0
    assert "No tasks" in result.output


def test_done_and_list_filters(tmp_path, db_args, llm_response):
    _add(db_args, llm_response, "Buy milk", "Call mom")
    milk = next(t for t in _tasks(tmp_path / "cli.db") if t.title == "Buy milk")

    done = runner.invoke(app, ["tasks", "done", milk.id, *db_args])
    assert done.exit_code == 0
    assert "Buy milk: done" in done.output

    open_only = runner.invoke(app, ["tasks", "list", "--open", *db_args])
    assert "Call mom" in open_only.output
    assert "Buy milk" not in open_only.output

    reopened = runner.invoke(app, ["tasks", "done", milk.id, "--undo", *db_args])
    assert "re-opened" in reopened.output


def test_done_unknown_task(db_args):
    result = runner.invoke(app, ["tasks", "done", "nope", *db_args])
    assert result.exit_code == 1
    assert "Task not found" in result.output


def test_delete(tmp_path, db_args, llm_response):
    _add(db_args, llm_response, "Buy milk")
    [task] = _tasks(tmp_path / "cli.db")
    result = runner.invoke(app, ["tasks", "delete", task.id, *db_args])
    assert result.exit_code == 0
    assert _tasks(tmp_path / "cli.db") == []
    assert runner.invoke(app, ["tasks", "delete", task.id, *db_args]).exit_code == 1


def test_tasks_scoped_to_user(tmp_path, db_args, llm_response):
    _add(db_args, llm_response, "Buy milk")
    result = runner.invoke(app, ["tasks", "list", "--user", "bob", *db_args])
    assert "No tasks" in result.output


def test_list_shows_full_titles(db_args, llm_response):
    title = "Pick up the dry cleaning before the shop closes on Friday"
    _add(db_args, llm_response, title)
    result = runner.invoke(app, ["tasks", "list", *db_args])
    assert title in result.output

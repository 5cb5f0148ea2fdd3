"""Tests for schema initialisation and the status transition table."""

from __future__ import annotations

from stickies.db.schema import (
    ALLOWED_TRANSITIONS,
    INGESTION_STATUSES,
    TERMINAL_STATUSES,
    initialize,
)


def test_initialize_idempotent(tmp_db):
    initialize(tmp_db)
    initialize(tmp_db)
    tables = {
        r[0] for r in tmp_db.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    }
    assert {"ingestions", "tasks", "learning_stickies", "schema_version"} <= tables


def test_no_transition_leaves_a_terminal_status():
    for allowed_from in ALLOWED_TRANSITIONS.values():
        assert not set(allowed_from) & set(TERMINAL_STATUSES)


def test_transitions_only_move_forward():
    order = {status: i for i, status in enumerate(INGESTION_STATUSES)}
    for target, sources in ALLOWED_TRANSITIONS.items():
        for source in sources:
            assert order[source] < order[target]

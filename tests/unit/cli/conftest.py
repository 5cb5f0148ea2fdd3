"""CLI fixtures: isolated config, a tmp database and the faked service."""

from __future__ import annotations

from contextlib import contextmanager

import pytest

from stickies.cli.common import console


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path, monkeypatch):
    """Ignore ~/.stickies/config.yaml and any stickies.yaml in the working dir."""
    monkeypatch.setattr("stickies.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db_args(tmp_path):
    return ["--db", str(tmp_path / "cli.db")]


@pytest.fixture
def fake_service(service, monkeypatch):
    """Route the voice commands through the service with fake ffmpeg and transcriber."""

    @contextmanager
    def _open(db=None):
        yield service

    monkeypatch.setattr("stickies.cli.voice.open_service", _open)
    return service


@pytest.fixture(autouse=True)
def _wide_console(monkeypatch):
    """Render tables at a fixed width so no column is truncated."""
    monkeypatch.setattr(console, "width", 200)

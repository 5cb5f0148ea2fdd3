"""API fixtures: the real app over the tmp DB with the faked service injected."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from stickies.api.app import create_app
from stickies.api.deps import get_service
from stickies.config import StickiesConfig

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def app(tmp_path, service):
    cfg = StickiesConfig()
    cfg.database.path = str(tmp_path / "stickies.db")
    cfg.audio.work_dir = str(tmp_path / "uploads")
    app = create_app(cfg)
    app.dependency_overrides[get_service] = lambda: service
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c

"""Request-scoped dependencies: caller identity, repository and service."""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Header, HTTPException, Request

from stickies.config import StickiesConfig
from stickies.db.connection import Database
from stickies.db.repository import Repository
from stickies.service import StickiesService


def get_config(request: Request) -> StickiesConfig:
    return request.app.state.config


def require_user(
    x_user_id: str | None = Header(None, alias="X-User-Id", description="Resolved owner id"),
) -> str:
    """Return the caller's owner id; credentials are validated upstream."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


def get_repository(cfg: StickiesConfig = Depends(get_config)) -> Iterator[Repository]:
    """One sqlite connection per request, closed when the response is sent."""
    conn = Database(cfg.database.path).connect()
    try:
        yield Repository(conn)
    finally:
        conn.close()


def get_service(
    repo: Repository = Depends(get_repository),
    cfg: StickiesConfig = Depends(get_config),
) -> StickiesService:
    return StickiesService.from_config(repo, cfg)

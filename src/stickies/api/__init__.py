"""HTTP surface (FastAPI)."""

from stickies.api.app import create_app

__all__ = ["create_app"]

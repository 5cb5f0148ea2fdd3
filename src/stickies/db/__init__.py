"""Stickies database layer."""

from stickies.db.connection import Database
from stickies.db.migrations import MIGRATIONS, run_migrations
from stickies.db.repository import Repository
from stickies.db.schema import initialize

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
]

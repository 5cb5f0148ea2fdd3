"""Stickies: voice and text notes turned into tasks and learning stickies."""

__version__ = "0.1.0"

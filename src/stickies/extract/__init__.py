"""Structured extraction: tasks and learning stickies from free text."""

"""Capture/upload client: HTTP API, polling, recorder and state machine."""

"""Stickies rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from stickies.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*."""
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
        "groq": "GROQ_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    """Config file rejected by the loader."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix stickies.yaml (or ~/.stickies/config.yaml) and retry."
    )


def err_invalid_input(message: str) -> str:
    """The user's input was rejected (empty text, unsupported or too long audio)."""
    return f"[red]Error:[/] {message}\n  Fix the input and run the command again."


def err_audio_file_missing(path: str) -> str:
    return (
        f"[red]Error:[/] Audio file not found: '{path}'\n"
        "  Check the path and try again."
    )


def err_not_found(kind: str, ident: str, hint: str) -> str:
    """A record does not exist for this user."""
    return (
        f"[yellow]{kind} not found:[/] '{ident}'\n"
        f"  Run:  {hint}"
    )


def err_ingestion_failed(ingestion_id: str, message: str) -> str:
    return (
        f"[red]Error:[/] Ingestion {ingestion_id} failed.\n"
        f"  {message}\n"
        "  Record again, or check the file with:  stickies doctor"
    )


def err_extraction(message: str) -> str:
    """The completion model returned something unusable."""
    return (
        f"[red]Error:[/] {message}\n"
        "  The language model output was not usable.\n"
        "  Retry:  run the command again."
    )


def err_ffmpeg_missing(instructions: str) -> str:
    return f"[red]Error:[/] ffmpeg is required to process audio.\n{instructions}"


def err_server_unreachable(url: str, message: str) -> str:
    return (
        f"[red]Error:[/] Could not talk to the stickies server at {url}.\n"
        f"  {message}\n"
        "  Start it with:  stickies serve   (or set STICKIES_API_URL)"
    )


def err_storage(message: str) -> str:
    return (
        f"[red]Error:[/] Database error: {message}\n"
        "  Check the database path (STICKIES_DB) and disk space."
    )


def warn_transcription_timeout(ingestion_id: str) -> str:
    """Polling gave up; the server may still finish."""
    return (
        f"[yellow]Warning:[/] Transcription of {ingestion_id} is taking longer than expected.\n"
        f"  Check later with:  stickies status {ingestion_id}"
    )

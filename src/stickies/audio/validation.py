"""Upload validation: checked BEFORE any record is created or ffmpeg runs.

- Only supported audio extensions are accepted.
- Empty files are rejected.
- File size checked before probing: > max_file_bytes → hard fail.
- Duration (via ffprobe) above max_duration_seconds → hard fail.
"""

from __future__ import annotations

from pathlib import Path

from stickies.audio.transcoder import AudioMetadata, Transcoder
from stickies.errors import ProbeError, ValidationError

SUPPORTED_EXTENSIONS = frozenset(
    {".wav", ".webm", ".m4a", ".mp3", ".mp4", ".mpeg", ".mpga", ".ogg", ".flac"}
)
MAX_FILE_BYTES = 25 * 1024 * 1024
MAX_DURATION_SECONDS = 30.0


def validate_upload(
    path: Path | str,
    transcoder: Transcoder,
    *,
    filename: str | None = None,
    max_file_bytes: int = MAX_FILE_BYTES,
    max_duration_seconds: float = MAX_DURATION_SECONDS,
) -> AudioMetadata:
    """Validate an uploaded audio file and return its probed metadata.

    Args:
        path: Location of the uploaded bytes on disk.
        transcoder: Used for the ffprobe duration check.
        filename: Client-supplied name; its extension is checked (defaults to *path*).
        max_file_bytes: Size ceiling.
        max_duration_seconds: Duration ceiling.

    Raises:
        ValidationError: With a message the user can act on.
    """
    p = Path(path)
    name = filename or p.name
    ext = Path(name).suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported audio format '{ext or name}'. "
            f"Supported: {', '.join(sorted(e.lstrip('.') for e in SUPPORTED_EXTENSIONS))}"
        )

    try:
        size = p.stat().st_size
    except OSError as exc:
        raise ValidationError(f"Cannot access audio file '{name}': {exc}") from exc

    if size == 0:
        raise ValidationError("Audio file is empty")
    if size > max_file_bytes:
        raise ValidationError(
            f"Audio file '{name}' exceeds the {max_file_bytes / (1024 * 1024):.0f} MB limit "
            f"({size / (1024 * 1024):.1f} MB)."
        )

    try:
        meta = transcoder.probe(p)
    except ProbeError as exc:
        raise ValidationError(f"Invalid audio file: {exc}") from exc

    if meta.duration_seconds > max_duration_seconds:
        raise ValidationError(
            f"Recording is too long ({meta.duration_seconds:.1f}s). "
            f"Maximum is {max_duration_seconds:g} seconds."
        )
    return meta

"""Audio transcoder: ffprobe/ffmpeg wrapper producing canonical speech audio.

Every step writes a new file allocated from a :class:`WorkArena`; nothing is
written next to the input and there is no process-wide temp directory. The
arena owns the list of paths and deletes them on exit (success or failure).

Step chain (each a separate ffmpeg run):
  1. ``format``    always (mp3 → libmp3lame 128k; wav → pcm_s16le)
  2. ``resample``  only when the probed sample rate differs from the target
  3. ``rechannel`` only when the probed channel count differs from the target
  4. ``volume``    when volume normalisation is enabled
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import subprocess
import sys
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from stickies.errors import ProbeError, TranscoderError

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]

_CODEC_ARGS: dict[str, list[str]] = {
    "mp3": ["-c:a", "libmp3lame", "-b:a", "128k"],
    "wav": ["-c:a", "pcm_s16le"],
}
_STDERR_TAIL = 500
CONVERSION_STEPS = ("resample", "rechannel")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class AudioMetadata:
    duration_seconds: float
    format: str
    size_bytes: int
    sample_rate: int | None = None
    channels: int | None = None
    bitrate_kbps: int | None = None


@dataclass
class TranscodeOptions:
    target_format: str = "mp3"
    target_sample_rate: int = 16_000
    target_channels: int = 1
    normalize_volume: bool = True
    volume_db: float = -1.0


@dataclass
class TranscodeResult:
    output_path: Path
    steps: list[str]
    original: AudioMetadata
    final: AudioMetadata

    @property
    def conversion_steps(self) -> list[str]:
        """Steps that changed the signal layout (sample rate / channel count)."""
        return [s for s in self.steps if s in CONVERSION_STEPS]


@dataclass
class FFmpegInfo:
    available: bool
    version: str | None = None
    path: str | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Work arena
# ---------------------------------------------------------------------------


@dataclass
class WorkArena:
    """Per-invocation scratch area with an owned list of paths to delete.

    Use as a context manager; ``cleanup()`` runs on exit whether the body
    succeeded or raised. If *root* is not given a private temp directory is
    created and removed together with the files.
    """

    root: Path | None = None
    parent: Path | str | None = None
    _paths: list[Path] = field(default_factory=list, init=False, repr=False)
    _owns_root: bool = field(default=False, init=False, repr=False)
    _counter: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.root is None:
            if self.parent is not None:
                Path(self.parent).mkdir(parents=True, exist_ok=True)
            self.root = Path(tempfile.mkdtemp(prefix="stickies-", dir=self.parent))
            self._owns_root = True
        else:
            self.root = Path(self.root)
            self.root.mkdir(parents=True, exist_ok=True)

    def allocate(self, prefix: str, suffix: str) -> Path:
        """Return a fresh, registered path inside the arena (the file is not created)."""
        assert self.root is not None
        self._counter += 1
        path = self.root / f"{prefix}-{self._counter}{suffix}"
        self._paths.append(path)
        return path

    def adopt(self, path: Path) -> Path:
        """Register an externally created file for deletion on cleanup."""
        self._paths.append(Path(path))
        return Path(path)

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def cleanup(self) -> None:
        """Delete every registered path that exists. Never raises; idempotent."""
        for path in self._paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not delete temp file %s: %s", path, exc)
        self._paths.clear()
        if self._owns_root and self.root is not None and self.root.exists():
            try:
                shutil.rmtree(self.root)
            except OSError as exc:
                logger.warning("Could not remove work directory %s: %s", self.root, exc)

    def __enter__(self) -> WorkArena:
        return self

    def __exit__(self, *args: object) -> None:
        self.cleanup()


# ---------------------------------------------------------------------------
# Transcoder
# ---------------------------------------------------------------------------


class Transcoder:
    """Probe and normalise audio via the ffprobe / ffmpeg binaries.

    Args:
        ffmpeg_path: ffmpeg executable.
        ffprobe_path: ffprobe executable.
        runner: Callable with ``subprocess.run``'s signature. Injected in tests.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        runner: Runner | None = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self._run = runner or subprocess.run

    def probe(self, path: Path | str) -> AudioMetadata:
        """Inspect *path* with ffprobe.

        Raises:
            ProbeError: ffprobe is missing or failed, printed invalid JSON, or the
                file has no audio stream.
        """
        path = Path(path)
        argv = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            proc = self._run(argv, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise ProbeError(f"Could not run ffprobe: {exc}") from exc
        if proc.returncode != 0:
            raise ProbeError(
                f"Could not read audio file '{path.name}': {_tail(proc.stderr) or 'ffprobe failed'}"
            )
        try:
            info = json.loads(proc.stdout or "")
        except json.JSONDecodeError as exc:
            raise ProbeError(f"ffprobe returned invalid output for '{path.name}'") from exc

        streams = info.get("streams") or []
        audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
        if audio is None:
            raise ProbeError(f"No audio stream found in '{path.name}'")

        fmt = info.get("format") or {}
        format_name = str(fmt.get("format_name") or "unknown").split(",")[0]
        size = _to_int(fmt.get("size"))
        if size is None:
            size = path.stat().st_size if path.exists() else 0
        bit_rate = _to_int(fmt.get("bit_rate"))

        return AudioMetadata(
            duration_seconds=_to_float(fmt.get("duration")) or 0.0,
            format=format_name,
            size_bytes=size,
            sample_rate=_to_int(audio.get("sample_rate")),
            channels=_to_int(audio.get("channels")),
            bitrate_kbps=round(bit_rate / 1000) if bit_rate else None,
        )

    def transcode(
        self,
        path: Path | str,
        arena: WorkArena,
        options: TranscodeOptions | None = None,
    ) -> TranscodeResult:
        """Run the step chain on *path*, writing every intermediate into *arena*.

        Raises:
            ProbeError: The input (or the final output) cannot be probed.
            TranscoderError: An ffmpeg step failed; the message names the step.
        """
        opts = options or TranscodeOptions()
        if opts.target_format not in _CODEC_ARGS:
            raise TranscoderError(f"Unsupported target format '{opts.target_format}'")
        codec = _CODEC_ARGS[opts.target_format]
        suffix = f".{opts.target_format}"

        original = self.probe(path)
        steps: list[str] = []
        current = Path(path)

        current = self._step("format", current, arena, suffix, codec)
        steps.append("format")

        if original.sample_rate != opts.target_sample_rate:
            current = self._step(
                "resample", current, arena, suffix,
                ["-ar", str(opts.target_sample_rate), *codec],
            )
            steps.append("resample")

        if original.channels != opts.target_channels:
            current = self._step(
                "rechannel", current, arena, suffix,
                ["-ac", str(opts.target_channels), *codec],
            )
            steps.append("rechannel")

        if opts.normalize_volume:
            current = self._step(
                "volume", current, arena, suffix,
                ["-af", f"volume={opts.volume_db:g}dB", *codec],
            )
            steps.append("volume")

        final = self.probe(current)
        logger.debug("Transcoded %s via %s", Path(path).name, ", ".join(steps))
        return TranscodeResult(output_path=current, steps=steps, original=original, final=final)

    def _step(
        self,
        name: str,
        src: Path,
        arena: WorkArena,
        suffix: str,
        args: list[str],
    ) -> Path:
        out = arena.allocate(name, suffix)
        argv = [self.ffmpeg_path, "-y", "-i", str(src), "-vn", *args, str(out)]
        try:
            proc = self._run(argv, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise TranscoderError(f"Audio {name} step failed: {exc}") from exc
        if proc.returncode != 0:
            raise TranscoderError(
                f"Audio {name} step failed: {_tail(proc.stderr) or f'exit code {proc.returncode}'}"
            )
        return out


# ---------------------------------------------------------------------------
# ffmpeg availability (doctor)
# ---------------------------------------------------------------------------


def ffmpeg_available(ffmpeg_path: str = "ffmpeg", runner: Runner | None = None) -> FFmpegInfo:
    """Report whether ffmpeg can be executed, with its version and location."""
    run = runner or subprocess.run
    try:
        proc = run([ffmpeg_path, "-version"], capture_output=True, text=True, check=False)
    except OSError as exc:
        return FFmpegInfo(available=False, error=str(exc))
    if proc.returncode != 0:
        return FFmpegInfo(available=False, error=_tail(proc.stderr) or "ffmpeg -version failed")
    match = re.search(r"ffmpeg version (\S+)", proc.stdout or "")
    return FFmpegInfo(
        available=True,
        version=match.group(1) if match else "unknown",
        path=shutil.which(ffmpeg_path),
    )


def install_instructions(platform: str | None = None) -> str:
    """Return ffmpeg installation instructions for *platform* (defaults to this one)."""
    platform = platform or sys.platform
    if platform == "darwin":
        return (
            "FFmpeg is not installed. To install on macOS:\n"
            "  brew install ffmpeg\n"
            "  (or: sudo port install ffmpeg)"
        )
    if platform.startswith("linux"):
        return (
            "FFmpeg is not installed. To install on Linux:\n"
            "  Ubuntu/Debian: sudo apt-get install ffmpeg\n"
            "  Fedora/RHEL:   sudo dnf install ffmpeg\n"
            "  Arch Linux:    sudo pacman -S ffmpeg"
        )
    if platform in ("win32", "cygwin"):
        return (
            "FFmpeg is not installed. To install on Windows:\n"
            "  choco install ffmpeg\n"
            "  (or: scoop install ffmpeg, then make sure it is on PATH)"
        )
    return "FFmpeg is not installed. See https://ffmpeg.org/download.html"


# ---------------------------------------------------------------------------
# Helpers (private)
# ---------------------------------------------------------------------------


def _tail(text: str | None) -> str:
    return (text or "").strip()[-_STDERR_TAIL:]


def _to_int(value: Any) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

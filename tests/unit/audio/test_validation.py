"""Tests for upload validation (runs before any record is created)."""

from __future__ import annotations

import pytest

from stickies.audio.transcoder import Transcoder
from stickies.audio.validation import validate_upload
from stickies.errors import ValidationError


def test_valid_upload_returns_metadata(fake_ffmpeg, audio_file):
    meta = validate_upload(audio_file, Transcoder(runner=fake_ffmpeg))
    assert meta.duration_seconds == 3.0


def test_unsupported_extension(fake_ffmpeg, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")
    with pytest.raises(ValidationError, match="Unsupported audio format"):
        validate_upload(path, Transcoder(runner=fake_ffmpeg))
    assert fake_ffmpeg.calls == []


def test_client_filename_extension_is_checked(fake_ffmpeg, audio_file):
    with pytest.raises(ValidationError, match="Unsupported"):
        validate_upload(audio_file, Transcoder(runner=fake_ffmpeg), filename="clip.exe")


@pytest.mark.parametrize("ext", [".m4a", ".webm", ".MP3", ".flac", ".ogg"])
def test_supported_extensions(fake_ffmpeg, audio_file, ext):
    validate_upload(audio_file, Transcoder(runner=fake_ffmpeg), filename=f"clip{ext}")


def test_empty_file_rejected(fake_ffmpeg, tmp_path):
    path = tmp_path / "empty.wav"
    path.write_bytes(b"")
    with pytest.raises(ValidationError, match="empty"):
        validate_upload(path, Transcoder(runner=fake_ffmpeg))


def test_missing_file_rejected(fake_ffmpeg, tmp_path):
    with pytest.raises(ValidationError, match="Cannot access"):
        validate_upload(tmp_path / "gone.wav", Transcoder(runner=fake_ffmpeg))


def test_oversized_file_rejected_before_probe(fake_ffmpeg, audio_file):
    with pytest.raises(ValidationError, match="exceeds"):
        validate_upload(audio_file, Transcoder(runner=fake_ffmpeg), max_file_bytes=100)
    assert fake_ffmpeg.calls == []


def test_too_long_rejected(ffmpeg_factory, audio_file):
    runner = ffmpeg_factory(duration=31.0)
    with pytest.raises(ValidationError, match="too long"):
        validate_upload(audio_file, Transcoder(runner=runner))


def test_exactly_at_ceiling_accepted(ffmpeg_factory, audio_file):
    validate_upload(audio_file, Transcoder(runner=ffmpeg_factory(duration=30.0)))


def test_unreadable_audio_is_a_validation_error(ffmpeg_factory, audio_file):
    with pytest.raises(ValidationError, match="Invalid audio file"):
        validate_upload(audio_file, Transcoder(runner=ffmpeg_factory(probe_fails=True)))

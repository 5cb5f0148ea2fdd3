"""Shared pytest fixtures."""

from __future__ import annotations

import json
import subprocess
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from stickies.audio.transcoder import Transcoder
from stickies.audio.transcription import TranscriptionResult
from stickies.db.connection import Database
from stickies.db.models import Segment
from stickies.db.repository import Repository
from stickies.db.schema import initialize
from stickies.extract.learning import LearningGenerator
from stickies.extract.tasks import TaskExtractor
from stickies.pipeline import IngestionPipeline
from stickies.service import StickiesService

_STEP_NAMES = ("format", "resample", "rechannel", "volume")


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "stickies.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep the developer's STICKIES_* variables out of every test."""
    for var in (
        "STICKIES_DB",
        "STICKIES_TRANSCRIPTION_MODEL",
        "STICKIES_TASK_MODEL",
        "STICKIES_LEARNING_MODEL",
        "STICKIES_MAX_RETRIES",
        "STICKIES_RETRY_DELAY",
        "STICKIES_API_URL",
        "STICKIES_USER",
    ):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Audio fakes
# ---------------------------------------------------------------------------


class FakeFFmpeg:
    """Stands in for ``subprocess.run`` when the transcoder shells out.

    ffprobe reports the configured input layout for the original file and the
    canonical layout (16 kHz mono mp3) for anything a step produced. ffmpeg
    steps write a small placeholder file, or fail when named in *fail_step*.
    """

    def __init__(
        self,
        sample_rate: int = 16_000,
        channels: int = 1,
        duration: float = 3.0,
        fmt: str = "wav",
        fail_step: str | None = None,
        probe_fails: bool = False,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.duration = duration
        self.fmt = fmt
        self.fail_step = fail_step
        self.probe_fails = probe_fails
        self.calls: list[list[str]] = []

    def __call__(self, argv, **kwargs) -> subprocess.CompletedProcess:
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        if argv[1:] == ["-version"]:
            return subprocess.CompletedProcess(argv, 0, "ffmpeg version 6.1.1 Copyright", "")
        if argv[0].endswith("ffprobe"):
            return self._probe(Path(argv[-1]))
        step = Path(argv[-1]).name.split("-")[0]
        if step == self.fail_step:
            return subprocess.CompletedProcess(argv, 1, "", "Conversion failed!")
        Path(argv[-1]).write_bytes(b"ID3fake")
        return subprocess.CompletedProcess(argv, 0, "", "")

    def _probe(self, path: Path) -> subprocess.CompletedProcess:
        argv = ["ffprobe", str(path)]
        if self.probe_fails:
            return subprocess.CompletedProcess(argv, 1, "", "Invalid data found when processing input")
        produced = path.name.split("-")[0] in _STEP_NAMES
        payload = {
            "streams": [
                {
                    "codec_type": "audio",
                    "sample_rate": str(16_000 if produced else self.sample_rate),
                    "channels": 1 if produced else self.channels,
                }
            ],
            "format": {
                "format_name": "mp3" if produced else self.fmt,
                "duration": str(self.duration),
                "size": "2048",
                "bit_rate": "128000",
            },
        }
        return subprocess.CompletedProcess(argv, 0, json.dumps(payload), "")

    @property
    def ffmpeg_steps(self) -> list[str]:
        return [
            Path(c[-1]).name.split("-")[0]
            for c in self.calls
            if c[0].endswith("ffmpeg") and c[1:] != ["-version"]
        ]

    @property
    def outputs(self) -> list[Path]:
        return [Path(c[-1]) for c in self.calls if c[0].endswith("ffmpeg") and c[1:] != ["-version"]]


class FakeTranscriber:
    """Returns a fixed transcript, or raises *error*."""

    def __init__(self, text: str = "buy milk tomorrow", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[str, Path, dict]] = []

    def _result(self) -> TranscriptionResult:
        if self.error is not None:
            raise self.error
        return TranscriptionResult(
            text=self.text,
            language="en",
            duration=2.5,
            segments=[Segment(0.0, 2.5, self.text)],
            confidence=0.8,
        )

    def transcribe(self, path, *, language=None, prompt=None) -> TranscriptionResult:
        self.calls.append(("transcribe", Path(path), {"language": language, "prompt": prompt}))
        return self._result()

    def translate(self, path, *, prompt=None) -> TranscriptionResult:
        self.calls.append(("translate", Path(path), {"prompt": prompt}))
        return self._result()


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def audio_file(tmp_path) -> Path:
    path = tmp_path / "note.wav"
    path.write_bytes(b"RIFF" + b"\x00" * 2048)
    return path


@pytest.fixture
def ffmpeg_factory():
    """Build a FakeFFmpeg with a custom input layout or failure."""
    return FakeFFmpeg


@pytest.fixture
def transcriber_factory():
    return FakeTranscriber


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

FIXED_NOW = datetime(2026, 3, 2, 9, 15)


@pytest.fixture
def service(repo, fake_ffmpeg, fake_transcriber, tmp_path, monkeypatch):
    """A StickiesService over the tmp DB with fake ffmpeg and a fake transcriber.

    Completion calls still go through litellm; patch
    ``stickies.extract.llm_client.litellm.completion`` in the test.
    """
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    transcoder = Transcoder(runner=fake_ffmpeg)
    return StickiesService(
        repo,
        transcoder=transcoder,
        pipeline=IngestionPipeline(repo, transcoder, fake_transcriber, work_dir=tmp_path / "work"),
        task_extractor=TaskExtractor(clock=lambda: FIXED_NOW),
        learning_generator=LearningGenerator(),
    )


def completion_response(content) -> MagicMock:
    """Mimic a litellm completion response carrying *content* (dict → JSON)."""
    mock = MagicMock()
    mock.choices[0].message.content = content if isinstance(content, str) else json.dumps(content)
    return mock


@pytest.fixture
def llm_response():
    return completion_response

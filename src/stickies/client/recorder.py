"""Microphone capture via a pw-record subprocess, with a live dBFS level."""

from __future__ import annotations

import logging
import math
import subprocess
import tempfile
import threading
import wave
from pathlib import Path
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)

# Settings required by the transcription service
SAMPLE_RATE = 16000
NUM_CHANNELS = 1
AUDIO_FORMAT = "s16"  # Signed 16-bit
SAMPLE_WIDTH = 2

# Define a buffer size for reading from stdout
BUFFER_SIZE = 4096

SILENCE_DB = -160.0


class Recorder(Protocol):
    """What the capture session needs from a microphone."""

    @property
    def level_db(self) -> float: ...

    def start(self) -> None: ...

    def stop(self) -> Path: ...

    def discard(self) -> None: ...


def dbfs(chunk: bytes) -> float:
    """RMS level of signed 16-bit PCM in dBFS, clamped to [-160, 0]."""
    samples = np.frombuffer(chunk[: len(chunk) - len(chunk) % SAMPLE_WIDTH], dtype=np.int16)
    if samples.size == 0:
        return SILENCE_DB
    rms = float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))
    if rms <= 0:
        return SILENCE_DB
    return max(SILENCE_DB, min(0.0, 20 * math.log10(rms / 32768.0)))


class SubprocessRecorder:
    """Captures audio using a pw-record subprocess and writes a WAV file on stop.

    Args:
        command: Recorder executable (``pw-record``).
        output_dir: Where the WAV file is written (system temp if None).
        popen: Injected in tests.
    """

    def __init__(
        self,
        command: str = "pw-record",
        output_dir: Path | str | None = None,
        popen=subprocess.Popen,
    ) -> None:
        self.command = command
        self.output_dir = Path(output_dir) if output_dir else Path(tempfile.gettempdir())
        self._popen = popen
        self._process: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._buffer: list[bytes] = []
        self._level = SILENCE_DB
        self._lock = threading.Lock()

    @property
    def level_db(self) -> float:
        return self._level

    @property
    def is_running(self) -> bool:
        return self._process is not None

    def start(self) -> None:
        if self._process is not None:
            logger.warning("Audio capture is already running.")
            return
        argv = [
            self.command,
            f"--rate={SAMPLE_RATE}",
            f"--format={AUDIO_FORMAT}",
            f"--channels={NUM_CHANNELS}",
            "-",
        ]
        try:
            self._process = self._popen(
                argv, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL
            )
        except FileNotFoundError:
            logger.error("'%s' command not found. Please ensure PipeWire is installed.", self.command)
            raise
        self._buffer = []
        self._reader = threading.Thread(target=self._read_stream, name="stickies-recorder", daemon=True)
        self._reader.start()
        logger.info("Started %s (pid %s)", self.command, self._process.pid)

    def _read_stream(self) -> None:
        process = self._process
        if process is None or process.stdout is None:
            return
        while True:
            data = process.stdout.read(BUFFER_SIZE)
            if not data:
                break
            with self._lock:
                self._buffer.append(data)
            self._level = dbfs(data)

    def _terminate(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                logger.warning("Timeout waiting for %s to terminate, killing.", self.command)
                process.kill()
                process.wait()
        if self._reader is not None:
            self._reader.join(timeout=2.0)
            self._reader = None
        self._level = SILENCE_DB

    def stop(self) -> Path:
        """Stop capture and write the recording to a new WAV file."""
        self._terminate()
        with self._lock:
            audio = b"".join(self._buffer)
            self._buffer = []
        self.output_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix="recording-", suffix=".wav", dir=self.output_dir)
        path = Path(name)
        with open(fd, "wb") as fh, wave.open(fh, "wb") as wav:
            wav.setnchannels(NUM_CHANNELS)
            wav.setsampwidth(SAMPLE_WIDTH)
            wav.setframerate(SAMPLE_RATE)
            wav.writeframes(audio)
        logger.info("Recorded %.1fs of audio", len(audio) / (SAMPLE_RATE * SAMPLE_WIDTH))
        return path

    def discard(self) -> None:
        """Stop capture (if running) and drop everything recorded."""
        self._terminate()
        with self._lock:
            self._buffer = []

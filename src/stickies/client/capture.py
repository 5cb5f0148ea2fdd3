"""Client capture/upload state machine.

idle → recording → uploading → transcribing → (summarizing) → done, with
error reachable from every non-idle phase. The microphone is held through a
``MicrophoneLease`` on an ExitStack, so every way out of ``recording``
(stop, cancel, exception, close) releases it.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from contextlib import ExitStack
from enum import Enum
from pathlib import Path
from typing import Any

from stickies.client.http import StickiesApiClient
from stickies.client.polling import poll_until_terminal
from stickies.client.recorder import SILENCE_DB, Recorder
from stickies.errors import IngestionTimeoutError, StickiesError

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "Something went wrong. Please try again."


class CapturePhase(str, Enum):
    """Phases of one capture session."""

    IDLE = "idle"
    RECORDING = "recording"
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    SUMMARIZING = "summarizing"
    DONE = "done"
    ERROR = "error"


class MicrophoneLease:
    """Scoped ownership of a recorder: started on enter, released on exit.

    ``finish()`` stops the recorder and keeps the recording; if the lease is
    exited without ``finish()`` the capture is discarded.
    """

    def __init__(self, recorder: Recorder) -> None:
        self.recorder = recorder
        self._finished = False

    def __enter__(self) -> MicrophoneLease:
        self.recorder.start()
        return self

    def finish(self) -> Path:
        self._finished = True
        return self.recorder.stop()

    def __exit__(self, *args: object) -> None:
        if not self._finished:
            self.recorder.discard()


class CaptureSession:
    """Drive one recording from the microphone to a transcript (and beyond).

    Args:
        api: Server client.
        recorder_factory: Returns a fresh Recorder for each recording.
        language: Optional language hint sent with the upload.
        poll_interval: Seconds between status checks.
        max_poll_attempts: Status checks before giving up.
        tick_interval: Seconds between duration ticks.
        sleep: Injected in tests.
    """

    def __init__(
        self,
        api: StickiesApiClient,
        recorder_factory: Callable[[], Recorder],
        *,
        language: str | None = None,
        poll_interval: float = 1.0,
        max_poll_attempts: int = 60,
        tick_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api = api
        self.recorder_factory = recorder_factory
        self.language = language
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.tick_interval = tick_interval
        self._sleep = sleep

        self._phase = CapturePhase.IDLE
        self._lock = threading.RLock()
        self._observers: list[Callable[[CapturePhase, str | None], Any]] = []
        self._stack: ExitStack | None = None
        self._lease: MicrophoneLease | None = None
        self._ticker: threading.Thread | None = None
        self._ticker_stop = threading.Event()
        self._duration_lock = threading.Lock()

        self.duration_seconds = 0.0
        self.ingestion_id: str | None = None
        self.transcript: str | None = None
        self.segments: list[dict] = []
        self.tasks: list[dict] = []
        self.domain: str | None = None
        self.stickies: list[dict] = []
        self.error_message: str | None = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def phase(self) -> CapturePhase:
        return self._phase

    @property
    def metering_db(self) -> float:
        lease = self._lease
        if self._phase is not CapturePhase.RECORDING or lease is None:
            return SILENCE_DB
        return lease.recorder.level_db

    def add_observer(self, observer: Callable[[CapturePhase, str | None], Any]) -> None:
        """Add a callback receiving (phase, error_message) on every phase change."""
        self._observers.append(observer)

    def _set_phase(self, phase: CapturePhase) -> None:
        with self._lock:
            if phase is not CapturePhase.ERROR and phase is not CapturePhase.DONE:
                self.error_message = None
            self._phase = phase
        for observer in list(self._observers):
            try:
                observer(phase, self.error_message)
            except Exception:
                logger.exception("Capture observer failed")

    def _fail(self, message: str) -> None:
        logger.warning("Capture failed: %s", message)
        with self._lock:
            self.error_message = message
        self._set_phase(CapturePhase.ERROR)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_recording(self) -> bool:
        """Acquire the microphone and start capturing. Only valid from idle."""
        with self._lock:
            if self._phase is not CapturePhase.IDLE:
                return False
            stack = ExitStack()
            try:
                self._lease = stack.enter_context(MicrophoneLease(self.recorder_factory()))
            except Exception as exc:
                stack.close()
                self._fail(f"Could not start recording: {exc}")
                return False
            self._stack = stack
            self.duration_seconds = 0.0
            self._start_ticker()
            self._set_phase(CapturePhase.RECORDING)
            return True

    def _start_ticker(self) -> None:
        self._ticker_stop.clear()

        def tick() -> None:
            while not self._ticker_stop.wait(self.tick_interval):
                with self._duration_lock:
                    self.duration_seconds += self.tick_interval

        self._ticker = threading.Thread(target=tick, name="stickies-ticker", daemon=True)
        self._ticker.start()

    def _release_microphone(self, keep: bool) -> Path | None:
        """Stop the ticker and release the recorder; returns the file if *keep*."""
        self._ticker_stop.set()
        if self._ticker is not None:
            self._ticker.join(timeout=self.tick_interval + 1)
            self._ticker = None
        stack, lease = self._stack, self._lease
        self._stack = None
        self._lease = None
        path = None
        try:
            if keep and lease is not None:
                path = lease.finish()
        finally:
            if stack is not None:
                stack.close()
        return path

    def cancel_recording(self) -> bool:
        """Discard the capture and return to idle. A no-op unless recording."""
        with self._lock:
            if self._phase is not CapturePhase.RECORDING:
                return False
            self._release_microphone(keep=False)
            self.duration_seconds = 0.0
            self._set_phase(CapturePhase.IDLE)
            return True

    def stop_and_upload(self) -> bool:
        """Stop recording, upload, and poll until the transcript is ready.

        Returns False when the session was not recording (e.g. cancel won the race).
        """
        with self._lock:
            if self._phase is not CapturePhase.RECORDING:
                return False
            self._set_phase(CapturePhase.UPLOADING)
            try:
                path = self._release_microphone(keep=True)
            except Exception as exc:
                self._fail(f"Could not finish recording: {exc}")
                return True

        if path is None:
            self._fail("No audio was recorded.")
            return True
        try:
            self._upload_and_wait(path)
        finally:
            path.unlink(missing_ok=True)
        return True

    def _upload_and_wait(self, path: Path) -> None:
        try:
            response = self.api.upload(path, language=self.language)
        except StickiesError as exc:
            self._fail(exc.user_message)
            return
        except Exception:
            logger.exception("Unexpected error during capture")
            self._fail(UNEXPECTED_ERROR)
            return
        self.ingestion_id = response.ingestion_id
        if response.status == "failed" or not response.ingestion_id:
            self._fail(response.error or "Upload failed")
            return

        self._set_phase(CapturePhase.TRANSCRIBING)
        try:
            status = poll_until_terminal(
                response.ingestion_id,
                lambda ingestion_id: self.api.get_status(ingestion_id)["status"],
                interval=self.poll_interval,
                max_attempts=self.max_poll_attempts,
                sleep=self._sleep,
            )
        except IngestionTimeoutError as exc:
            self._fail(str(exc))
            return
        except StickiesError as exc:
            self._fail(exc.user_message)
            return
        except Exception:
            logger.exception("Unexpected error during capture")
            self._fail(UNEXPECTED_ERROR)
            return
        self._settle(status)

    def _settle(self, status: str) -> None:
        """Fetch the outcome of a terminal ingestion and move to done or error."""
        assert self.ingestion_id is not None
        try:
            if status == "failed":
                record = self.api.get_status(self.ingestion_id)
                self._fail(record.get("errorMessage") or "Transcription failed")
                return
            payload = self.api.get_transcript(self.ingestion_id)
        except StickiesError as exc:
            self._fail(exc.user_message)
            return
        except Exception:
            logger.exception("Unexpected error during capture")
            self._fail(UNEXPECTED_ERROR)
            return
        self.transcript = payload.get("transcript") or ""
        self.segments = payload.get("segments") or []
        self._set_phase(CapturePhase.DONE)

    def recheck(self) -> CapturePhase:
        """Query a timed-out ingestion again; the server may have finished since."""
        if self._phase is not CapturePhase.ERROR or not self.ingestion_id:
            return self._phase
        try:
            status = self.api.get_status(self.ingestion_id)["status"]
        except StickiesError as exc:
            self._fail(exc.user_message)
            return self._phase
        except Exception:
            logger.exception("Unexpected error while re-checking %s", self.ingestion_id)
            self._fail(UNEXPECTED_ERROR)
            return self._phase
        if status in ("completed", "failed"):
            self._settle(status)
        else:
            self._fail(f"Still {status}; try again in a moment.")
        return self._phase

    # ------------------------------------------------------------------
    # Extraction (user-triggered)
    # ------------------------------------------------------------------

    def _extract(self, action: Callable[[], None]) -> bool:
        with self._lock:
            if self._phase is not CapturePhase.DONE or not self.ingestion_id:
                return False
            self.error_message = None
            self._set_phase(CapturePhase.SUMMARIZING)
        try:
            action()
        except StickiesError as exc:
            logger.warning("Extraction failed: %s", exc)
            self.error_message = exc.user_message
        except Exception:
            logger.exception("Extraction failed unexpectedly")
            self.error_message = UNEXPECTED_ERROR
        self._set_phase(CapturePhase.DONE)
        return self.error_message is None

    def extract_tasks(self) -> bool:
        """Turn the transcript into tasks. On failure the transcript is kept."""
        def run() -> None:
            assert self.ingestion_id is not None
            self.tasks = self.api.summarize(self.ingestion_id)

        return self._extract(run)

    def generate_stickies(self, refine: str | None = None) -> bool:
        """Turn the transcript into learning stickies, or refine the last domain."""
        def run() -> None:
            assert self.ingestion_id is not None
            if refine and self.domain:
                result = self.api.generate_stickies(self.domain, refine)
            else:
                result = self.api.learn(self.ingestion_id)
            self.domain = result.get("domain")
            self.stickies = result.get("learningStickies") or []

        return self._extract(run)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> bool:
        """Back to idle from done or error, dropping local results only."""
        with self._lock:
            if self._phase not in (CapturePhase.DONE, CapturePhase.ERROR):
                return False
            self.duration_seconds = 0.0
            self.ingestion_id = None
            self.transcript = None
            self.segments = []
            self.tasks = []
            self.domain = None
            self.stickies = []
            self.error_message = None
            self._set_phase(CapturePhase.IDLE)
            return True

    def close(self) -> None:
        """Release the microphone if still held (unexpected teardown)."""
        with self._lock:
            if self._stack is not None:
                self._release_microphone(keep=False)
                if self._phase is CapturePhase.RECORDING:
                    self._set_phase(CapturePhase.IDLE)

    def __enter__(self) -> CaptureSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

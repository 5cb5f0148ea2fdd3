"""Whisper transcription client with classified failures and exponential backoff.

Security / safety:
- API key absence detected early with a clear error message.
- Library-level retries are disabled; the loop in ``_with_retry`` is the only
  retry layer, so the attempt count is exactly ``max_retries``.
- The raw response is validated through a pydantic schema before it is mapped;
  anything partially typed is rejected as INVALID_RESPONSE.
"""

from __future__ import annotations

import logging
import os
import socket
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import litellm
import openai
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaError

from stickies.db.models import Segment
from stickies.errors import FailureKind, TranscriptionServiceError

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

T = TypeVar("T")

_DEFAULT_MODEL = "openai/whisper-1"
_NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)


# ---------------------------------------------------------------------------
# Response schema (validate, then map)
# ---------------------------------------------------------------------------


class _WhisperSegment(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    start: float
    end: float
    text: str
    avg_logprob: float | None = None


class _WhisperResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    text: str
    language: str | None = None
    duration: float | None = None
    segments: list[_WhisperSegment] | None = None


@dataclass
class TranscriptionResult:
    text: str
    language: str | None = None
    duration: float | None = None
    segments: list[Segment] = field(default_factory=list)
    confidence: float | None = None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_error(exc: BaseException) -> TranscriptionServiceError:
    """Map any exception raised by a service call onto exactly one FailureKind."""
    if isinstance(exc, TranscriptionServiceError):
        return exc

    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, _NETWORK_ERRORS) or "timeout" in message.lower():
        return TranscriptionServiceError(message, FailureKind.NETWORK_ERROR)

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if isinstance(status, int):
        if status == 429:
            return TranscriptionServiceError(message, FailureKind.RATE_LIMITED, status)
        if status >= 500:
            return TranscriptionServiceError(message, FailureKind.SERVER_ERROR, status)
        if 400 <= status < 500:
            return TranscriptionServiceError(message, FailureKind.CLIENT_ERROR, status)
    return TranscriptionServiceError(message, FailureKind.UNKNOWN, status if isinstance(status, int) else None)


def confidence_from_segments(segments: list[Any]) -> float | None:
    """Mean segment avg_logprob mapped into [0, 1]; None when no segment has one."""
    values = [s.avg_logprob for s in segments if isinstance(s.avg_logprob, (int, float))]
    if not values:
        return None
    mean = sum(values) / len(values)
    return max(0.0, min(1.0, (mean + 1) / 2))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TranscriptionClient:
    """Submit canonical audio to Whisper and return a validated result.

    Args:
        model: LiteLLM model string (provider/model format).
        max_retries: Total attempts per call (including the first).
        retry_delay: Base delay in seconds; attempt *n* waits ``retry_delay * 2**(n-1)``.
        timeout: Per-request timeout in seconds.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        model: str = _DEFAULT_MODEL,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep

    def transcribe(
        self,
        path: Path | str,
        *,
        language: str | None = None,
        prompt: str | None = None,
    ) -> TranscriptionResult:
        """Transcribe *path* in its spoken language."""
        self._require_api_key()

        def call() -> Any:
            kwargs: dict[str, Any] = {
                "model": self.model,
                "response_format": "verbose_json",
                "timestamp_granularities": ["segment"],
                "temperature": 0,
                "timeout": self.timeout,
                "max_retries": 0,
            }
            if language:
                kwargs["language"] = language
            if prompt:
                kwargs["prompt"] = prompt
            with open(path, "rb") as audio_file:
                return litellm.transcription(file=audio_file, **kwargs)

        return self._parse(self._with_retry(call))

    def translate(self, path: Path | str, *, prompt: str | None = None) -> TranscriptionResult:
        """Transcribe *path* and translate the speech into English."""
        self._require_api_key()

        def call() -> Any:
            client = openai.OpenAI(timeout=self.timeout, max_retries=0)
            kwargs: dict[str, Any] = {
                "model": self.model.split("/", 1)[-1],
                "response_format": "verbose_json",
                "temperature": 0,
            }
            if prompt:
                kwargs["prompt"] = prompt
            with open(path, "rb") as audio_file:
                return client.audio.translations.create(file=audio_file, **kwargs)

        return self._parse(self._with_retry(call))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_api_key(self) -> None:
        if not os.environ.get("OPENAI_API_KEY"):
            raise TranscriptionServiceError(
                "No OpenAI API key found. Set the OPENAI_API_KEY environment variable.",
                FailureKind.CLIENT_ERROR,
                hint="Transcription is not configured: set the OPENAI_API_KEY environment variable.",
            )

    def _with_retry(self, operation: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as exc:
                error = classify_error(exc)
                if not error.retryable or attempt >= self.max_retries:
                    if error is not exc:
                        raise error from exc
                    raise
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Transcription attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt,
                    self.max_retries,
                    error.kind.value,
                    delay,
                )
                self._sleep(delay)
                attempt += 1

    @staticmethod
    def _parse(response: Any) -> TranscriptionResult:
        raw = response
        if not isinstance(raw, dict) and hasattr(raw, "model_dump"):
            raw = raw.model_dump()
        try:
            parsed = _WhisperResponse.model_validate(raw)
        except SchemaError as exc:
            raise TranscriptionServiceError(
                "Transcription service returned an unexpected response",
                FailureKind.INVALID_RESPONSE,
            ) from exc

        segments = parsed.segments or []
        return TranscriptionResult(
            text=parsed.text.strip(),
            language=parsed.language,
            duration=parsed.duration,
            segments=[Segment(start=s.start, end=s.end, text=s.text.strip()) for s in segments],
            confidence=confidence_from_segments(segments),
        )

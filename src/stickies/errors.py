"""Exception taxonomy shared by the pipeline, the extraction engine and the API.

Every error carries a human-readable ``user_message``. Classification detail
(failure kind, upstream status code) stays on the exception object and is never
copied into client-visible payloads.
"""

from __future__ import annotations

from enum import Enum


class StickiesError(Exception):
    """Base class for all errors raised by the stickies core."""

    @property
    def user_message(self) -> str:
        return str(self) or "Something went wrong. Please try again."


class ValidationError(StickiesError):
    """Bad input the user has to fix (empty text, oversized or too-long audio)."""


class NotFoundError(StickiesError):
    """The requested record does not exist for this owner."""


class TranscoderError(StickiesError):
    """Audio could not be inspected or rewritten (malformed / unsupported input)."""


class ProbeError(TranscoderError):
    """ffprobe could not open the file or found no audio stream."""


class FailureKind(str, Enum):
    """Classification of a failed call to the speech-to-text service."""

    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    CLIENT_ERROR = "client_error"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self not in (FailureKind.CLIENT_ERROR, FailureKind.INVALID_RESPONSE)


_TRANSCRIPTION_MESSAGES = {
    FailureKind.RATE_LIMITED: "The transcription service is busy. Please try again in a moment.",
    FailureKind.SERVER_ERROR: "The transcription service is unavailable. Please try again later.",
    FailureKind.NETWORK_ERROR: "Could not reach the transcription service. Check your connection and try again.",
    FailureKind.CLIENT_ERROR: "The transcription service rejected the recording. Please record again.",
    FailureKind.INVALID_RESPONSE: "The transcription service returned an unexpected response. Please try again.",
    FailureKind.UNKNOWN: "Transcription failed. Please try again.",
}


class TranscriptionServiceError(StickiesError):
    """A speech-to-text call failed after classification (and retries, if any).

    ``str(exc)`` keeps the upstream detail for logs. ``user_message`` is fixed
    wording per failure kind unless *hint* supplies our own text.
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind = FailureKind.UNKNOWN,
        status_code: int | None = None,
        *,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.hint = hint

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    @property
    def user_message(self) -> str:
        return self.hint or _TRANSCRIPTION_MESSAGES[self.kind]


class ExtractionServiceError(StickiesError):
    """The completion model returned something we could not use."""

    @property
    def user_message(self) -> str:
        return f"{self} Please try again."


class PersistenceError(StickiesError):
    """Storage failure or an illegal status transition."""


class IngestionTimeoutError(StickiesError, TimeoutError):
    """The client gave up polling before the ingestion reached a terminal status.

    The server may still finish; ``ingestion_id`` allows a later re-check.
    """

    def __init__(self, ingestion_id: str, attempts: int) -> None:
        super().__init__(
            f"Timed out waiting for transcription of {ingestion_id} "
            f"after {attempts} status checks."
        )
        self.ingestion_id = ingestion_id
        self.attempts = attempts

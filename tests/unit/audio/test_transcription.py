"""Tests for the Whisper transcription client."""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import litellm
import openai
import pytest

from stickies.audio import transcription
from stickies.audio.transcription import (
    TranscriptionClient,
    classify_error,
    confidence_from_segments,
)
from stickies.errors import FailureKind, TranscriptionServiceError

_OK = {
    "text": " Buy milk tomorrow. ",
    "language": "english",
    "duration": 2.4,
    "segments": [
        {"start": 0.0, "end": 1.2, "text": " Buy milk", "avg_logprob": -0.2},
        {"start": 1.2, "end": 2.4, "text": " tomorrow.", "avg_logprob": -0.4},
    ],
}


class StatusError(Exception):
    def __init__(self, status_code: int, message: str = "upstream error") -> None:
        super().__init__(message)
        self.status_code = status_code


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


@pytest.fixture
def audio(tmp_path):
    path = tmp_path / "canonical.mp3"
    path.write_bytes(b"ID3")
    return path


def _client(sleeps: list[float], **kw) -> TranscriptionClient:
    return TranscriptionClient(sleep=sleeps.append, **kw)


def _patch_transcription(monkeypatch, outcomes):
    """Make litellm.transcription return/raise each outcome in turn."""
    calls: list[dict] = []
    remaining = list(outcomes)

    def fake(**kwargs):
        calls.append(kwargs)
        outcome = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    monkeypatch.setattr(transcription.litellm, "transcription", fake)
    return calls


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "status, kind",
    [
        (429, FailureKind.RATE_LIMITED),
        (500, FailureKind.SERVER_ERROR),
        (503, FailureKind.SERVER_ERROR),
        (400, FailureKind.CLIENT_ERROR),
        (401, FailureKind.CLIENT_ERROR),
    ],
)
def test_classify_by_status(status, kind):
    error = classify_error(StatusError(status))
    assert error.kind is kind
    assert error.status_code == status


def test_classify_network_errors():
    assert classify_error(ConnectionError("reset")).kind is FailureKind.NETWORK_ERROR
    assert classify_error(TimeoutError()).kind is FailureKind.NETWORK_ERROR
    assert classify_error(RuntimeError("Request timeout")).kind is FailureKind.NETWORK_ERROR


def test_classify_openai_connection_error():
    exc = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com"))
    assert classify_error(exc).kind is FailureKind.NETWORK_ERROR


def test_classify_unknown():
    assert classify_error(ValueError("weird")).kind is FailureKind.UNKNOWN


def test_retryable_kinds():
    assert FailureKind.RATE_LIMITED.retryable
    assert FailureKind.SERVER_ERROR.retryable
    assert FailureKind.NETWORK_ERROR.retryable
    assert FailureKind.UNKNOWN.retryable
    assert not FailureKind.CLIENT_ERROR.retryable
    assert not FailureKind.INVALID_RESPONSE.retryable


# ---------------------------------------------------------------------------
# transcribe
# ---------------------------------------------------------------------------


def test_transcribe_success(monkeypatch, audio):
    calls = _patch_transcription(monkeypatch, [_OK])
    result = _client([]).transcribe(audio, language="en", prompt="groceries")

    assert result.text == "Buy milk tomorrow."
    assert result.language == "english"
    assert result.duration == 2.4
    assert [s.text for s in result.segments] == ["Buy milk", "tomorrow."]
    assert result.confidence == pytest.approx(0.35)
    assert calls[0]["response_format"] == "verbose_json"
    assert calls[0]["language"] == "en"
    assert calls[0]["prompt"] == "groceries"
    assert calls[0]["temperature"] == 0
    assert calls[0]["max_retries"] == 0


def test_transcribe_accepts_model_objects(monkeypatch, audio):
    response = SimpleNamespace(model_dump=lambda: {"text": "hi", "segments": []})
    _patch_transcription(monkeypatch, [response])
    result = _client([]).transcribe(audio)
    assert result.text == "hi"
    assert result.confidence is None


def test_rate_limited_exhausts_exactly_max_retries(monkeypatch, audio):
    calls = _patch_transcription(monkeypatch, [StatusError(429)])
    sleeps: list[float] = []

    with pytest.raises(TranscriptionServiceError) as info:
        _client(sleeps, max_retries=3, retry_delay=1.0).transcribe(audio)

    assert info.value.kind is FailureKind.RATE_LIMITED
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]
    assert sleeps == sorted(sleeps)


def test_server_error_then_success(monkeypatch, audio):
    calls = _patch_transcription(monkeypatch, [StatusError(503), _OK])
    sleeps: list[float] = []

    result = _client(sleeps).transcribe(audio)
    assert result.text == "Buy milk tomorrow."
    assert len(calls) == 2
    assert sleeps == [1.0]


def test_client_error_not_retried(monkeypatch, audio):
    calls = _patch_transcription(monkeypatch, [StatusError(400, "bad audio")])
    sleeps: list[float] = []

    with pytest.raises(TranscriptionServiceError) as info:
        _client(sleeps, max_retries=5).transcribe(audio)

    assert info.value.kind is FailureKind.CLIENT_ERROR
    assert len(calls) == 1
    assert sleeps == []


def test_invalid_response_not_retried(monkeypatch, audio):
    calls = _patch_transcription(monkeypatch, [{"segments": "nope"}])
    with pytest.raises(TranscriptionServiceError) as info:
        _client([], max_retries=3).transcribe(audio)

    assert info.value.kind is FailureKind.INVALID_RESPONSE
    assert len(calls) == 1


def test_partially_typed_segment_rejected(monkeypatch, audio):
    bad = {"text": "hi", "segments": [{"start": "soon", "end": 1.0, "text": "hi"}]}
    _patch_transcription(monkeypatch, [bad])
    with pytest.raises(TranscriptionServiceError) as info:
        _client([]).transcribe(audio)
    assert info.value.kind is FailureKind.INVALID_RESPONSE


def test_missing_api_key_is_client_error(monkeypatch, audio):
    monkeypatch.delenv("OPENAI_API_KEY")
    calls = _patch_transcription(monkeypatch, [_OK])
    with pytest.raises(TranscriptionServiceError) as info:
        _client([]).transcribe(audio)
    assert info.value.kind is FailureKind.CLIENT_ERROR
    assert calls == []


def test_user_message_hides_upstream_text(monkeypatch, audio):
    _patch_transcription(monkeypatch, [StatusError(400, "bad audio")])
    with pytest.raises(TranscriptionServiceError) as info:
        _client([]).transcribe(audio)
    assert str(info.value) == "bad audio"
    assert info.value.user_message == (
        "The transcription service rejected the recording. Please record again."
    )


def test_litellm_rate_limit_message_is_not_exposed(monkeypatch, audio):
    response = httpx.Response(
        429, request=httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")
    )
    rate_limited = litellm.RateLimitError(
        message="Rate limit reached",
        llm_provider="openai",
        model="whisper-1",
        response=response,
    )
    _patch_transcription(monkeypatch, [rate_limited])
    with pytest.raises(TranscriptionServiceError) as info:
        _client([], max_retries=2).transcribe(audio)

    assert info.value.kind is FailureKind.RATE_LIMITED
    message = info.value.user_message
    assert message == "The transcription service is busy. Please try again in a moment."
    assert "litellm" not in message
    assert "RateLimitError" not in message


def test_missing_key_message_is_actionable(monkeypatch, audio):
    monkeypatch.delenv("OPENAI_API_KEY")
    with pytest.raises(TranscriptionServiceError) as info:
        _client([]).transcribe(audio)
    assert "OPENAI_API_KEY" in info.value.user_message


@pytest.mark.parametrize("kind", list(FailureKind))
def test_every_kind_has_fixed_wording(kind):
    error = TranscriptionServiceError("HTTP 418 teapot from upstream", kind, 418)
    assert "418" not in error.user_message
    assert "teapot" not in error.user_message


# ---------------------------------------------------------------------------
# translate
# ---------------------------------------------------------------------------


def test_translate_uses_openai_translations(monkeypatch, audio):
    created: list[dict] = []

    class FakeTranslations:
        def create(self, **kwargs):
            created.append(kwargs)
            return {"text": "Buy milk tomorrow.", "language": "english", "segments": []}

    class FakeOpenAI:
        def __init__(self, **kwargs):
            self.audio = SimpleNamespace(translations=FakeTranslations())

    monkeypatch.setattr(transcription.openai, "OpenAI", FakeOpenAI)
    result = _client([]).translate(audio)

    assert result.text == "Buy milk tomorrow."
    assert created[0]["model"] == "whisper-1"


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------


def test_confidence_none_without_logprobs():
    assert confidence_from_segments([SimpleNamespace(avg_logprob=None)]) is None
    assert confidence_from_segments([]) is None


def test_confidence_clamped():
    assert confidence_from_segments([SimpleNamespace(avg_logprob=-5.0)]) == 0.0
    assert confidence_from_segments([SimpleNamespace(avg_logprob=2.0)]) == 1.0

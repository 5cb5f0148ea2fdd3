"""Tests for the LiteLLM completion wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from stickies.errors import ExtractionServiceError
from stickies.extract.llm_client import JSON_OBJECT, complete, provider_of, validate_api_key


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o-mini")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o-mini")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/llama3")


def test_provider_of():
    assert provider_of("anthropic/claude-3-haiku") == "anthropic"
    assert provider_of("gpt-4o-mini") == "openai"


# ------------------------------------------------------------------
# complete()
# ------------------------------------------------------------------


def test_complete_returns_content():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = '{"tasks": []}'

    with patch("stickies.extract.llm_client.litellm.completion", return_value=mock_response) as m:
        result = complete(
            "openai/gpt-4o-mini",
            [{"role": "user", "content": "hi"}],
            temperature=0.3,
            response_format=JSON_OBJECT,
        )

    assert result == '{"tasks": []}'
    kwargs = m.call_args.kwargs
    assert kwargs["temperature"] == 0.3
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["num_retries"] == 0
    assert "max_tokens" not in kwargs


def test_complete_passes_max_tokens():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "none"

    with patch("stickies.extract.llm_client.litellm.completion", return_value=mock_response) as m:
        complete("openai/gpt-4o-mini", [], max_tokens=50)

    assert m.call_args.kwargs["max_tokens"] == 50


def test_complete_wraps_transport_errors():
    with patch(
        "stickies.extract.llm_client.litellm.completion", side_effect=RuntimeError("503")
    ):
        with pytest.raises(ExtractionServiceError, match="request failed"):
            complete("openai/gpt-4o-mini", [])


def test_complete_empty_content_raises():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = ""

    with patch("stickies.extract.llm_client.litellm.completion", return_value=mock_response):
        with pytest.raises(ExtractionServiceError, match="No response"):
            complete("openai/gpt-4o-mini", [])

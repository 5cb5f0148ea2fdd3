"""Tests for learning-sticky generation and area de-duplication."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from stickies.errors import ExtractionServiceError
from stickies.extract.learning import LearningGenerator

_PAYLOAD = {
    "areaSummary": "Driver's License",
    "learningStickies": [
        {
            "concept": "Right of way",
            "definition": "Vehicles on the right go first at unmarked intersections.",
            "example": None,
            "relatedTerms": ["yield"],
        },
        {"concept": "Speed limit", "definition": "50 km/h in built-up areas."},
    ],
}


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def _response(content: str) -> MagicMock:
    mock = MagicMock()
    mock.choices[0].message.content = content
    return mock


def test_generate_uses_area_label():
    with patch(
        "stickies.extract.llm_client.litellm.completion",
        return_value=_response(json.dumps(_PAYLOAD)),
    ) as m:
        area = LearningGenerator().generate_for_domain(
            "help me prepare for my driver's license test"
        )

    assert area.area_summary == "Driver's License"
    assert [s.concept for s in area.stickies] == ["Right of way", "Speed limit"]
    assert area.stickies[0].related_terms == ["yield"]
    assert m.call_args.kwargs["temperature"] == 0.5
    assert "driver's license test" in m.call_args.kwargs["messages"][1]["content"]


def test_generate_without_area_falls_back_to_request():
    payload = dict(_PAYLOAD, areaSummary=None)
    with patch(
        "stickies.extract.llm_client.litellm.completion",
        return_value=_response(json.dumps(payload)),
    ):
        area = LearningGenerator().generate_for_domain("  " + "x" * 100 + "  ")
    assert area.area_summary == "x" * 80


def test_generate_malformed_raises():
    with patch(
        "stickies.extract.llm_client.litellm.completion", return_value=_response("oops")
    ):
        with pytest.raises(ExtractionServiceError):
            LearningGenerator().generate_for_domain("Rust")


# ---------------------------------------------------------------------------
# find_similar_domain
# ---------------------------------------------------------------------------


def test_similar_exact_case_insensitive_match_skips_model():
    with patch("stickies.extract.llm_client.litellm.completion") as m:
        match = LearningGenerator().find_similar_domain("react hooks", ["Rust", "React Hooks"])
    assert match == "React Hooks"
    m.assert_not_called()


def test_similar_no_existing_domains():
    assert LearningGenerator().find_similar_domain("Rust", []) is None


def test_similar_single_existing_domain_skips_model():
    with patch("stickies.extract.llm_client.litellm.completion") as m:
        assert LearningGenerator().find_similar_domain("Driving test", ["Driver's License"]) is None
    m.assert_not_called()


def test_similar_model_match_mapped_to_existing_label():
    with patch(
        "stickies.extract.llm_client.litellm.completion",
        return_value=_response('"driver\'s license"'),
    ) as m:
        match = LearningGenerator().find_similar_domain(
            "Driving test", ["Driver's License", "Investing Basics"]
        )
    assert match == "Driver's License"
    assert m.call_args.kwargs["temperature"] == 0.0
    assert m.call_args.kwargs["max_tokens"] == 50


def test_similar_model_containment_match():
    with patch(
        "stickies.extract.llm_client.litellm.completion",
        return_value=_response("The match is: Investing Basics"),
    ):
        match = LearningGenerator().find_similar_domain(
            "Stock investing", ["Driver's License", "Investing Basics"]
        )
    assert match == "Investing Basics"


def test_similar_model_none():
    with patch("stickies.extract.llm_client.litellm.completion", return_value=_response("none")):
        assert LearningGenerator().find_similar_domain("Rust", ["React", "Go"]) is None


def test_similar_model_failure_means_no_merge():
    with patch(
        "stickies.extract.llm_client.litellm.completion", side_effect=RuntimeError("down")
    ):
        assert LearningGenerator().find_similar_domain("Rust", ["React", "Go"]) is None

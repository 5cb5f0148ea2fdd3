"""Tests for the learning-sticky endpoints."""

from __future__ import annotations

from unittest.mock import patch

HEADERS = {"X-User-Id": "user-1"}
COMPLETION = "stickies.extract.llm_client.litellm.completion"


def _payload(area, *concepts):
    return {
        "areaSummary": area,
        "learningStickies": [{"concept": c, "definition": f"About {c}."} for c in concepts],
    }


def _generate(client, llm_response, domain, area, *concepts, refine=None):
    with patch(COMPLETION, return_value=llm_response(_payload(area, *concepts))):
        return client.post(
            "/api/learning-stickies/generate",
            json={"domain": domain, "refine": refine},
            headers=HEADERS,
        )


def test_generate(client, llm_response):
    resp = _generate(client, llm_response, "help me with react hooks", "React Hooks", "useEffect")
    assert resp.status_code == 200
    body = resp.json()
    assert body["domain"] == "React Hooks"
    assert body["learningStickiesCreated"] == 1
    assert body["learningStickies"][0]["domain"] == "React Hooks"


def test_generate_requires_domain(client):
    resp = client.post("/api/learning-stickies/generate", json={"domain": " "}, headers=HEADERS)
    assert resp.status_code == 400


def test_generate_malformed_is_502(client, llm_response):
    with patch(COMPLETION, return_value=llm_response('{"areaSummary": "x"}')):
        resp = client.post(
            "/api/learning-stickies/generate", json={"domain": "x"}, headers=HEADERS
        )
    assert resp.status_code == 502


def test_list_and_domains(client, llm_response):
    _generate(client, llm_response, "react", "React Hooks", "useEffect", "useState")
    _generate(client, llm_response, "rust", "Rust", "Ownership")

    listed = client.get("/api/learning-stickies", headers=HEADERS).json()
    assert listed["count"] == 3
    only_rust = client.get(
        "/api/learning-stickies", params={"domain": "Rust"}, headers=HEADERS
    ).json()
    assert [s["concept"] for s in only_rust["learningStickies"]] == ["Ownership"]

    domains = client.get("/api/learning-stickies/domains", headers=HEADERS).json()["domains"]
    assert {(d["domain"], d["count"]) for d in domains} == {("React Hooks", 2), ("Rust", 1)}


def test_delete_by_id_and_domain(client, llm_response):
    body = _generate(client, llm_response, "react", "React Hooks", "useEffect", "useState").json()
    sticky_id = body["learningStickies"][0]["id"]

    resp = client.delete("/api/learning-stickies", params={"id": sticky_id}, headers=HEADERS)
    assert resp.json() == {"success": True, "deleted": 1}
    resp = client.delete("/api/learning-stickies", params={"domain": "React Hooks"}, headers=HEADERS)
    assert resp.json() == {"success": True, "deleted": 1}


def test_delete_needs_id_or_domain(client):
    resp = client.delete("/api/learning-stickies", headers=HEADERS)
    assert resp.status_code == 400
    assert "id or domain" in resp.json()["error"]


def test_combine(client, llm_response):
    _generate(client, llm_response, "react", "React", "JSX")
    _generate(client, llm_response, "hooks", "React Hooks", "useEffect")

    resp = client.post(
        "/api/learning-stickies/combine",
        json={"domains": ["React", "React Hooks"], "newDomain": " React All "},
        headers=HEADERS,
    )
    assert resp.json() == {"combined": True, "newDomain": "React All", "stickiesMoved": 2}


def test_combine_needs_two_domains(client):
    resp = client.post(
        "/api/learning-stickies/combine",
        json={"domains": ["React"], "newDomain": "X"},
        headers=HEADERS,
    )
    assert resp.status_code == 400

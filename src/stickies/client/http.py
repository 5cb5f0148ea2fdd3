"""HTTP client for the stickies API (used by the capture session and the CLI)."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from stickies.errors import StickiesError

logger = logging.getLogger(__name__)


class ApiError(StickiesError):
    """The server answered with an error status (or could not be reached)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class UploadResponse:
    ingestion_id: str | None
    status: str
    message: str | None = None
    error: str | None = None


class StickiesApiClient:
    """Thin synchronous wrapper around the REST endpoints.

    Args:
        base_url: Server root, e.g. ``http://localhost:8000``.
        user_id: Sent as ``X-User-Id`` on every request.
        timeout: Per-request timeout in seconds (uploads block until transcribed).
        transport: Injected in tests (``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"X-User-Id": user_id},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> StickiesApiClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, *, ok: tuple[int, ...] = (200,), **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ApiError(f"Request to {url} timed out") from exc
        except httpx.RequestError as exc:
            raise ApiError(f"Could not reach the stickies server: {exc}") from exc
        if response.status_code not in ok:
            raise ApiError(_error_text(response), response.status_code)
        return response

    # ------------------------------------------------------------------
    # Voice
    # ------------------------------------------------------------------

    def upload(
        self,
        path: Path | str,
        *,
        language: str | None = None,
        translate: bool = False,
        prompt: str | None = None,
    ) -> UploadResponse:
        """Upload a recording. A pipeline failure comes back as ``status="failed"``."""
        path = Path(path)
        data: dict[str, str] = {"translate": "true" if translate else "false"}
        if language:
            data["language"] = language
        if prompt:
            data["prompt"] = prompt
        mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        with open(path, "rb") as fh:
            response = self._request(
                "POST",
                "/api/voice/upload",
                ok=(200, 500),
                files={"file": (path.name, fh, mime)},
                data=data,
            )
        body = _json(response)
        if response.status_code == 500 and body.get("status") != "failed":
            raise ApiError(_error_text(response), 500)
        return UploadResponse(
            ingestion_id=body.get("ingestionId"),
            status=body.get("status", "failed"),
            message=body.get("message"),
            error=body.get("error"),
        )

    def get_status(self, ingestion_id: str) -> dict:
        body = _json(self._request("GET", f"/api/voice/status/{ingestion_id}"))
        _require(body, "status", str)
        return body

    def get_transcript(self, ingestion_id: str) -> dict:
        """Return the transcript payload; in-flight or failed ingestions raise ApiError."""
        response = self._request(
            "GET", f"/api/voice/transcript/{ingestion_id}", ok=(200, 202, 500)
        )
        body = _json(response)
        if response.status_code == 202:
            raise ApiError("Transcription is still in progress", 202)
        if response.status_code == 500:
            raise ApiError(body.get("error") or "Transcription failed", 500)
        return body

    def summarize(self, ingestion_id: str) -> list[dict]:
        return _require(
            _json(self._request("POST", f"/api/voice/summarize/{ingestion_id}")), "tasks", list
        )

    def learn(self, ingestion_id: str) -> dict:
        return _json(self._request("POST", f"/api/voice/learn/{ingestion_id}"))

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def tasks_from_text(self, text: str) -> dict:
        return _json(self._request("POST", "/api/tasks/from-text", json={"text": text}))

    def list_tasks(self, **filters: Any) -> list[dict]:
        params = {k: _param(v) for k, v in filters.items() if v is not None}
        return _require(_json(self._request("GET", "/api/tasks", params=params)), "tasks", list)

    def update_task(self, task_id: str, **changes: Any) -> dict:
        return _require(
            _json(self._request("PATCH", f"/api/task/{task_id}", json=changes)), "task", dict
        )

    def delete_task(self, task_id: str) -> None:
        self._request("DELETE", f"/api/task/{task_id}")

    # ------------------------------------------------------------------
    # Learning stickies
    # ------------------------------------------------------------------

    def generate_stickies(self, domain: str, refine: str | None = None) -> dict:
        body: dict[str, str] = {"domain": domain}
        if refine:
            body["refine"] = refine
        return _json(self._request("POST", "/api/learning-stickies/generate", json=body))

    def get_domains(self) -> list[dict]:
        return _require(
            _json(self._request("GET", "/api/learning-stickies/domains")), "domains", list
        )

    def combine_domains(self, domains: list[str], new_domain: str) -> dict:
        return _json(
            self._request(
                "POST",
                "/api/learning-stickies/combine",
                json={"domains": domains, "newDomain": new_domain},
            )
        )


def _param(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _require(body: dict, key: str, kind: type) -> Any:
    """Return body[key], or raise ApiError when the server sent another shape."""
    value = body.get(key)
    if not isinstance(value, kind):
        raise ApiError(f"Unexpected response from the stickies server (missing '{key}')")
    return value


def _json(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError as exc:
        raise ApiError(
            f"Server returned a non-JSON response ({response.status_code})", response.status_code
        ) from exc
    return body if isinstance(body, dict) else {}


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Server error ({response.status_code})"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"Server error ({response.status_code})"

"""FastAPI application factory and error mapping."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from stickies import __version__
from stickies.api.learning import router as learning_router
from stickies.api.tasks import router as tasks_router
from stickies.api.voice import router as voice_router
from stickies.config import StickiesConfig, load_config
from stickies.db.connection import Database
from stickies.db.schema import initialize
from stickies.errors import (
    ExtractionServiceError,
    NotFoundError,
    PersistenceError,
    StickiesError,
    TranscoderError,
    TranscriptionServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_BY_ERROR: list[tuple[type[StickiesError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (TranscoderError, 422),
    (ExtractionServiceError, 502),
    (TranscriptionServiceError, 502),
    (PersistenceError, 500),
]


def status_for(exc: StickiesError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def create_app(cfg: StickiesConfig | None = None) -> FastAPI:
    """Build the API. The schema is created (or migrated) once, here."""
    cfg = cfg or load_config()
    with Database(cfg.database.path) as conn:
        initialize(conn)

    app = FastAPI(title="Stickies API", version=__version__)
    app.state.config = cfg

    app.include_router(voice_router, prefix="/api/voice", tags=["voice"])
    app.include_router(tasks_router, prefix="/api", tags=["tasks"])
    app.include_router(learning_router, prefix="/api/learning-stickies", tags=["learning"])

    @app.exception_handler(StickiesError)
    async def stickies_error_handler(request: Request, exc: StickiesError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"error": exc.user_message})

    @app.exception_handler(EnvironmentError)
    async def environment_error_handler(request: Request, exc: EnvironmentError) -> JSONResponse:
        logger.error("Server misconfigured: %s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content={"error": f"{field}: {message}" if field else message},
        )

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app

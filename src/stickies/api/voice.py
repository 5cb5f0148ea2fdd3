"""Voice ingestion endpoints: upload, status polling, transcript and extraction."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from stickies.api.deps import get_config, get_service, require_user
from stickies.audio.transcoder import WorkArena
from stickies.config import StickiesConfig
from stickies.db.models import IngestionRecord
from stickies.pipeline import ProcessingOptions
from stickies.service import StickiesService

logger = logging.getLogger(__name__)

router = APIRouter()


def _record_metadata(record: IngestionRecord) -> dict:
    return {
        "originalFilename": record.original_filename,
        "fileSizeBytes": record.file_size_bytes,
        "durationSeconds": record.duration_seconds,
        "audioFormat": record.audio_format,
        "language": record.language,
        **record.metadata,
    }


@router.post("/upload")
def upload_audio(
    file: UploadFile = File(...),
    language: str | None = Form(None),
    translate: bool = Form(False),
    prompt: str | None = Form(None),
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
    cfg: StickiesConfig = Depends(get_config),
):
    """Accept an audio file, run the pipeline, and report the ingestion outcome.

    Rejected uploads (format, size, duration) return 400 before any record exists.
    """
    filename = file.filename or "recording.webm"
    with WorkArena(parent=cfg.audio.work_dir) as arena:
        upload_path = arena.allocate("upload", Path(filename).suffix.lower() or ".bin")
        with open(upload_path, "wb") as out:
            shutil.copyfileobj(file.file, out)

        result = service.upload(
            owner_id,
            upload_path,
            filename,
            ProcessingOptions(language=language or None, translate=translate, prompt=prompt or None),
        )

    if result.status == "failed":
        return JSONResponse(
            status_code=500,
            content={
                "ingestionId": result.ingestion_id,
                "status": "failed",
                "error": result.error,
            },
        )
    return {
        "ingestionId": result.ingestion_id,
        "status": result.status,
        "message": "Audio uploaded and transcribed successfully",
    }


@router.get("/status/{ingestion_id}")
def ingestion_status(
    ingestion_id: str,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    record = service.get_ingestion(owner_id, ingestion_id)
    return {
        "ingestionId": record.ingestion_id,
        "status": record.status,
        "createdAt": record.created_at,
        "completedAt": record.completed_at,
        "errorMessage": record.error_message,
        "metadata": _record_metadata(record),
    }


@router.get("/transcript/{ingestion_id}")
def ingestion_transcript(
    ingestion_id: str,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    """202 while the ingestion is in flight, 500 if it failed, 200 with the transcript."""
    record = service.get_ingestion(owner_id, ingestion_id)
    if record.status in ("pending", "processing"):
        return JSONResponse(
            status_code=202,
            content={
                "ingestionId": record.ingestion_id,
                "status": record.status,
                "message": "Transcription in progress",
            },
        )
    if record.status == "failed":
        return JSONResponse(
            status_code=500,
            content={
                "ingestionId": record.ingestion_id,
                "status": "failed",
                "error": record.error_message or "Transcription failed",
            },
        )
    return {
        "ingestionId": record.ingestion_id,
        "status": record.status,
        "transcript": record.transcript,
        "segments": [s.to_dict() for s in record.segments],
        "language": record.language,
        "confidence": record.confidence,
        "metadata": _record_metadata(record),
    }


@router.post("/summarize/{ingestion_id}")
def summarize_ingestion(
    ingestion_id: str,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    tasks = service.summarize(owner_id, ingestion_id)
    return {
        "ingestionId": ingestion_id,
        "tasksCreated": len(tasks),
        "tasks": [t.to_dict() for t in tasks],
    }


@router.post("/learn/{ingestion_id}")
def learn_from_ingestion(
    ingestion_id: str,
    owner_id: str = Depends(require_user),
    service: StickiesService = Depends(get_service),
):
    generated = service.learn_from_ingestion(owner_id, ingestion_id)
    return {
        "ingestionId": ingestion_id,
        "domain": generated.domain,
        "learningStickiesCreated": len(generated.stickies),
        "learningStickies": [s.to_dict() for s in generated.stickies],
    }

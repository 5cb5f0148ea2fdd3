"""Ingestion pipeline: transcode → transcribe → persist, one record per upload.

The record is the contract with the client: every stage failure is written
to it (``failed`` + user-facing message) before ``process`` returns, and the
error is not re-raised. Only a PersistenceError while writing that failure
escapes, because then there is no record to report through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from stickies.audio.transcoder import Transcoder, TranscodeOptions, WorkArena
from stickies.audio.transcription import TranscriptionClient, TranscriptionResult
from stickies.db.models import IngestionRecord, Segment
from stickies.db.repository import Repository
from stickies.errors import StickiesError
from stickies.ids import new_voice_ingestion_id

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong. Please try again."


@dataclass
class ProcessingOptions:
    language: str | None = None
    translate: bool = False
    prompt: str | None = None


@dataclass
class ProcessingResult:
    ingestion_id: str
    status: str
    transcript: str | None = None
    language: str | None = None
    duration_seconds: float | None = None
    segments: list[Segment] = field(default_factory=list)
    confidence: float | None = None
    steps: list[str] = field(default_factory=list)
    error: str | None = None


class IngestionPipeline:
    """Coordinate one audio ingestion end to end.

    Args:
        repo: Storage for the ingestion record.
        transcoder: Produces canonical audio.
        transcriber: Speech-to-text client.
        transcode_options: Target format / rate / channels / volume.
        work_dir: Parent directory for per-call work arenas (system temp if None).
    """

    def __init__(
        self,
        repo: Repository,
        transcoder: Transcoder,
        transcriber: TranscriptionClient,
        transcode_options: TranscodeOptions | None = None,
        work_dir: Path | str | None = None,
    ) -> None:
        self.repo = repo
        self.transcoder = transcoder
        self.transcriber = transcriber
        self.transcode_options = transcode_options or TranscodeOptions()
        self.work_dir = work_dir

    def process(
        self,
        owner_id: str,
        audio_path: Path | str,
        original_filename: str | None = None,
        options: ProcessingOptions | None = None,
        *,
        ingestion_id: str | None = None,
    ) -> ProcessingResult:
        """Run the full pipeline for one uploaded file and return its outcome."""
        opts = options or ProcessingOptions()
        audio_path = Path(audio_path)
        ingestion_id = ingestion_id or new_voice_ingestion_id()

        self.repo.create_ingestion(
            IngestionRecord(
                ingestion_id=ingestion_id,
                owner_id=owner_id,
                original_filename=original_filename or audio_path.name,
                file_size_bytes=audio_path.stat().st_size if audio_path.exists() else None,
                language=opts.language,
            )
        )

        try:
            self.repo.mark_processing(ingestion_id)
            with WorkArena(parent=self.work_dir) as arena:
                transcoded = self.transcoder.transcode(audio_path, arena, self.transcode_options)
                self.repo.update_ingestion_metadata(
                    ingestion_id,
                    duration_seconds=transcoded.original.duration_seconds,
                    audio_format=transcoded.original.format,
                )
                result = self._transcribe(transcoded.output_path, opts)
        except StickiesError as exc:
            logger.warning("Ingestion %s failed: %s", ingestion_id, exc)
            self.repo.mark_failed(ingestion_id, exc.user_message)
            return ProcessingResult(
                ingestion_id=ingestion_id, status="failed", error=exc.user_message
            )
        except Exception:
            logger.exception("Ingestion %s failed unexpectedly", ingestion_id)
            self.repo.mark_failed(ingestion_id, GENERIC_FAILURE)
            return ProcessingResult(ingestion_id=ingestion_id, status="failed", error=GENERIC_FAILURE)

        duration = result.duration or transcoded.original.duration_seconds
        self.repo.mark_completed(
            ingestion_id,
            transcript=result.text,
            segments=result.segments,
            confidence=result.confidence,
            language=result.language,
            duration_seconds=duration,
            metadata={
                "word_count": len(result.text.split()),
                "translated": opts.translate,
                "steps": transcoded.steps,
            },
        )
        logger.info("Ingestion %s completed (%d segments)", ingestion_id, len(result.segments))
        return ProcessingResult(
            ingestion_id=ingestion_id,
            status="completed",
            transcript=result.text,
            language=result.language,
            duration_seconds=duration,
            segments=result.segments,
            confidence=result.confidence,
            steps=transcoded.steps,
        )

    def _transcribe(self, path: Path, opts: ProcessingOptions) -> TranscriptionResult:
        if opts.translate:
            return self.transcriber.translate(path, prompt=opts.prompt)
        return self.transcriber.transcribe(path, language=opts.language, prompt=opts.prompt)

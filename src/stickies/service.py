"""Application service: the operations behind every HTTP endpoint and CLI command.

Owns no transport concerns. Raises the ``stickies.errors`` taxonomy; callers
map it to status codes (API) or rich error messages (CLI).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from stickies.audio.transcoder import Transcoder, TranscodeOptions
from stickies.audio.transcription import TranscriptionClient
from stickies.audio.validation import validate_upload
from stickies.config import StickiesConfig
from stickies.db.models import DomainCount, IngestionRecord, LearningSticky, TaskItem
from stickies.db.repository import Repository
from stickies.errors import NotFoundError, ValidationError
from stickies.extract.learning import LearningGenerator
from stickies.extract.tasks import ExtractedTask, TaskExtractor
from stickies.ids import new_text_ingestion_id
from stickies.pipeline import IngestionPipeline, ProcessingOptions, ProcessingResult

logger = logging.getLogger(__name__)


@dataclass
class GeneratedStickies:
    domain: str
    stickies: list[LearningSticky]


class StickiesService:
    """Facade over the pipeline, the extraction engine and the repository."""

    def __init__(
        self,
        repo: Repository,
        *,
        transcoder: Transcoder,
        pipeline: IngestionPipeline,
        task_extractor: TaskExtractor,
        learning_generator: LearningGenerator,
        max_file_bytes: int = 25 * 1024 * 1024,
        max_duration_seconds: float = 30.0,
    ) -> None:
        self.repo = repo
        self.transcoder = transcoder
        self.pipeline = pipeline
        self.task_extractor = task_extractor
        self.learning_generator = learning_generator
        self.max_file_bytes = max_file_bytes
        self.max_duration_seconds = max_duration_seconds

    @classmethod
    def from_config(cls, repo: Repository, cfg: StickiesConfig) -> StickiesService:
        """Wire every collaborator from a loaded configuration."""
        transcoder = Transcoder(cfg.audio.ffmpeg_path, cfg.audio.ffprobe_path)
        transcriber = TranscriptionClient(
            model=cfg.transcription.model,
            max_retries=cfg.transcription.max_retries,
            retry_delay=cfg.transcription.retry_delay,
            timeout=cfg.transcription.timeout,
        )
        pipeline = IngestionPipeline(
            repo,
            transcoder,
            transcriber,
            TranscodeOptions(
                target_format=cfg.audio.target_format,
                target_sample_rate=cfg.audio.sample_rate,
                target_channels=cfg.audio.channels,
                normalize_volume=cfg.audio.normalize_volume,
                volume_db=cfg.audio.volume_db,
            ),
            work_dir=cfg.audio.work_dir,
        )
        ext = cfg.extraction
        return cls(
            repo,
            transcoder=transcoder,
            pipeline=pipeline,
            task_extractor=TaskExtractor(
                ext.task_model, ext.task_temperature, ext.timeout, ext.num_retries
            ),
            learning_generator=LearningGenerator(
                ext.learning_model, ext.learning_temperature, ext.timeout, ext.num_retries
            ),
            max_file_bytes=cfg.audio.max_file_bytes,
            max_duration_seconds=cfg.audio.max_duration_seconds,
        )

    # ------------------------------------------------------------------
    # Voice ingestion
    # ------------------------------------------------------------------

    def upload(
        self,
        owner_id: str,
        path: Path | str,
        filename: str | None = None,
        options: ProcessingOptions | None = None,
    ) -> ProcessingResult:
        """Validate an uploaded file, then run the pipeline on it.

        Raises:
            ValidationError: Rejected before any record is created.
        """
        validate_upload(
            path,
            self.transcoder,
            filename=filename,
            max_file_bytes=self.max_file_bytes,
            max_duration_seconds=self.max_duration_seconds,
        )
        return self.pipeline.process(owner_id, path, filename, options)

    def get_ingestion(self, owner_id: str, ingestion_id: str) -> IngestionRecord:
        record = self.repo.get_ingestion(owner_id, ingestion_id)
        if record is None:
            raise NotFoundError(f"Ingestion not found: {ingestion_id}")
        return record

    def _completed_transcript(self, owner_id: str, ingestion_id: str) -> str:
        record = self.get_ingestion(owner_id, ingestion_id)
        if record.status != "completed":
            raise ValidationError(
                f"Transcription is not completed yet (status: {record.status})."
            )
        if not record.transcript or not record.transcript.strip():
            raise ValidationError("The transcript is empty; there is nothing to extract.")
        return record.transcript

    def summarize(self, owner_id: str, ingestion_id: str) -> list[TaskItem]:
        """Extract tasks from a completed voice ingestion and store them."""
        transcript = self._completed_transcript(owner_id, ingestion_id)
        extracted = self.task_extractor.extract(transcript)
        return self._save_tasks(owner_id, ingestion_id, extracted)

    def learn_from_ingestion(self, owner_id: str, ingestion_id: str) -> GeneratedStickies:
        """Generate learning stickies from a completed voice ingestion's transcript."""
        transcript = self._completed_transcript(owner_id, ingestion_id)
        return self.generate_stickies(owner_id, transcript, ingestion_id=ingestion_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def tasks_from_text(self, owner_id: str, text: str) -> tuple[str, list[TaskItem]]:
        """Typed path: extract tasks from *text* under a fresh ``text:`` id."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Text is required.")
        ingestion_id = new_text_ingestion_id()
        extracted = self.task_extractor.extract(text)
        return ingestion_id, self._save_tasks(owner_id, ingestion_id, extracted)

    def _save_tasks(
        self, owner_id: str, ingestion_id: str, extracted: list[ExtractedTask]
    ) -> list[TaskItem]:
        tasks = [
            TaskItem(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                ingestion_id=ingestion_id,
                title=t.title,
                description=t.description,
                type=t.type,
                priority=t.priority,
                due_date=t.due_date,
                metadata=_task_metadata(t),
            )
            for t in extracted
        ]
        self.repo.add_tasks(tasks)
        return self.repo.get_tasks(owner_id, [t.id for t in tasks])

    def list_tasks(self, owner_id: str, **filters: Any) -> list[TaskItem]:
        return self.repo.list_tasks(owner_id, **filters)

    def get_task(self, owner_id: str, task_id: str) -> TaskItem:
        task = self.repo.get_task(owner_id, task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    def update_task(
        self, owner_id: str, task_id: str, *, completed: bool | None = None, **fields: Any
    ) -> TaskItem:
        self.get_task(owner_id, task_id)
        if "type" in fields and fields["type"] is None:
            del fields["type"]
        if "title" in fields and not (fields["title"] or "").strip():
            raise ValidationError("Task title cannot be empty.")
        if fields.get("type") not in (None, "task", "reminder", "note"):
            raise ValidationError(f"Invalid task type: {fields['type']}")
        if fields.get("priority") not in (None, "low", "medium", "high"):
            raise ValidationError(f"Invalid priority: {fields['priority']}")
        try:
            task = self.repo.update_task(owner_id, task_id, completed=completed, **fields)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        assert task is not None
        return task

    def delete_task(self, owner_id: str, task_id: str) -> None:
        if not self.repo.delete_task(owner_id, task_id):
            raise NotFoundError(f"Task not found: {task_id}")

    # ------------------------------------------------------------------
    # Learning stickies
    # ------------------------------------------------------------------

    def generate_stickies(
        self,
        owner_id: str,
        domain: str,
        refine: str | None = None,
        *,
        ingestion_id: str | None = None,
    ) -> GeneratedStickies:
        """Generate and store learning stickies.

        New areas are stored under the model's short label, merged into an
        existing near-duplicate domain when one is found. A refinement keeps the
        given *domain* and skips de-duplication.
        """
        domain = (domain or "").strip()
        refine = (refine or "").strip() or None
        if not domain:
            raise ValidationError(
                'A domain is required: describe your area of interest (e.g. "React hooks").'
            )

        request = f"{domain}. {refine}" if refine else domain
        area = self.learning_generator.generate_for_domain(request)

        if refine:
            store_domain = domain
        else:
            store_domain = area.area_summary
            existing = [d.domain for d in self.repo.get_domains(owner_id)]
            similar = self.learning_generator.find_similar_domain(area.area_summary, existing)
            if similar:
                store_domain = similar

        stickies = [
            LearningSticky(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                ingestion_id=ingestion_id,
                domain=store_domain,
                concept=s.concept,
                definition=s.definition,
                example=s.example,
                related_terms=s.related_terms,
            )
            for s in area.stickies
        ]
        self.repo.add_learning_stickies(stickies)
        logger.info("Stored %d learning sticky(ies) under %r", len(stickies), store_domain)
        return GeneratedStickies(
            domain=store_domain,
            stickies=self.repo.get_learning_stickies(owner_id, [s.id for s in stickies]),
        )

    def list_stickies(self, owner_id: str, **filters: Any) -> list[LearningSticky]:
        return self.repo.list_learning_stickies(owner_id, **filters)

    def get_domains(self, owner_id: str) -> list[DomainCount]:
        return self.repo.get_domains(owner_id)

    def delete_sticky(self, owner_id: str, sticky_id: str) -> None:
        if not self.repo.delete_learning_sticky(owner_id, sticky_id):
            raise NotFoundError(f"Learning sticky not found: {sticky_id}")

    def delete_domain(self, owner_id: str, domain: str) -> int:
        domain = (domain or "").strip()
        if not domain:
            raise ValidationError("A domain name is required.")
        return self.repo.delete_domain(owner_id, domain)

    def combine_domains(self, owner_id: str, domains: list[str], new_domain: str) -> int:
        """Move every sticky in *domains* under *new_domain*. Returns the number moved."""
        names = [d.strip() for d in domains if isinstance(d, str) and d.strip()]
        if len(names) < 2:
            raise ValidationError("Provide at least 2 area names to combine.")
        new_domain = (new_domain or "").strip()
        if not new_domain:
            raise ValidationError("Provide a name for the combined area.")
        return self.repo.combine_domains(owner_id, names, new_domain)


def _task_metadata(task: ExtractedTask) -> dict[str, Any]:
    meta: dict[str, Any] = {"original_due_date": task.raw_due_date}
    if task.date_flagged:
        meta["date_flagged"] = True
    return meta

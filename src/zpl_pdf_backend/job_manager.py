"""
Job orchestration and lifecycle management for ZPL conversions.

This module manages the end-to-end lifecycle of conversion jobs:
- Validation of submitted ZPL and job creation
- Exclusive processing (one worker per job) through the store's compare-and-set
- Progress and status tracking while labels are rendered
- Artifact storage and download resolution

The JobManager class provides the core business logic for the API. ``submit`` is
cheap and runs on the request path; ``process`` does the rendering and can run on
the manager's thread pool (``auto_process``) or be called by an external worker.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, List, Optional, Union

from .artifact_store import ArtifactRef, ArtifactStore, build_artifact_store
from .database import JobDatabase
from .engine import ConversionEngine
from .errors import (
    AlreadyProcessedError,
    ArtifactNotFoundError,
    ConversionError,
    InvalidTransitionError,
    JobNotFoundError,
)
from .job_store import JobStore
from .messages import normalize_language, translate
from .models import DownloadReference, JobDetail, JobStatus, JobStatusResponse, JobSummary, LabelSize
from .validator import validate_zpl_content

if TYPE_CHECKING:
    from .configuration import Settings

logger = logging.getLogger(__name__)

# Progress milestones (percent) while a job is processing.
PROGRESS_STARTED = 5
PROGRESS_RENDERED = 90
PROGRESS_STORING = 95


class JobManager:
    """
    Central coordinator for conversion jobs.

    Thread Safety:
        All job state lives in the JobStore, whose updates are atomic. The engine
        and artifact store keep no per-job state, so any number of jobs may be
        processed concurrently; the pending -> processing compare-and-set ensures
        a single job is never processed twice.

    Attributes:
        store: Owner of every job record
        engine: ZPL to PDF converter
        artifacts: Where finished PDFs are kept
        auto_process: Schedule processing on the thread pool right after submit
    """

    def __init__(
        self,
        store: JobStore,
        engine: ConversionEngine,
        artifacts: ArtifactStore,
        max_workers: int = 1,
        auto_process: bool = False,
        default_language: str = "en",
    ) -> None:
        self.store = store
        self.engine = engine
        self.artifacts = artifacts
        self.auto_process = auto_process
        self.default_language = normalize_language(default_language)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="zpl-worker")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "JobManager":
        database = JobDatabase(settings.database_path) if settings.database_path else None
        return cls(
            store=JobStore(database=database),
            engine=ConversionEngine(dpi=settings.dpi, strict=settings.unsupported_policy == "strict"),
            artifacts=build_artifact_store(settings),
            max_workers=settings.max_workers,
            auto_process=settings.auto_process,
            default_language=settings.default_language,
        )

    def submit(
        self,
        content: str,
        label_size: Union[LabelSize, str] = LabelSize.TWO_BY_ONE,
        language: Optional[str] = None,
    ) -> str:
        """
        Validate content and register a pending job.

        Args:
            content: Raw ZPL markup
            label_size: Physical label format
            language: Language for status messages (falls back to the default)

        Returns:
            The new job id

        Raises:
            InvalidInputError: If the content fails validation; no job is created
        """
        validate_zpl_content(content)
        record = self.store.create(
            source_content=content,
            label_size=LabelSize(label_size),
            language=normalize_language(language, self.default_language),
        )
        logger.info(f"Job {record.id} submitted ({record.label_size.value}, {len(content)} chars)")

        if self.auto_process:
            self.schedule(record.id)
        return record.id

    def schedule(self, job_id: str) -> Future:
        """Run ``process`` for a job on the worker pool."""
        return self._executor.submit(self._process_in_background, job_id)

    def _process_in_background(self, job_id: str) -> None:
        try:
            self.process(job_id)
        except AlreadyProcessedError as exc:
            logger.info(f"Background run skipped: {exc}")
        except JobNotFoundError as exc:
            logger.warning(f"Background run skipped: {exc}")

    def process(self, job_id: str) -> None:
        """
        Drive one pending job through rendering and storage.

        Failures while rendering or storing are recorded as the job's failed state
        and are not raised; callers learn about them by polling ``status``.

        Raises:
            JobNotFoundError: If the job does not exist
            AlreadyProcessedError: If the job is not pending
            Exception: Whatever the job database raised when a change could not be
                written; the job is already failed or completed in memory by then
        """
        record = self.store.get(job_id)
        language = record.language
        try:
            record = self.store.update(
                job_id,
                expected_status=JobStatus.PENDING,
                status=JobStatus.PROCESSING,
                progress=PROGRESS_STARTED,
                message=translate("processing", language),
            )
        except InvalidTransitionError as exc:
            current = self.store.get(job_id).status
            raise AlreadyProcessedError(job_id, current.value) from exc
        except Exception as exc:
            if self.store.get(job_id).status == JobStatus.PROCESSING:
                self._finish(job_id, JobStatus.FAILED, translate("internal_error", language, detail=str(exc)))
            raise

        def on_progress(done: int, total: int) -> None:
            span = PROGRESS_RENDERED - PROGRESS_STARTED
            self.store.update(
                job_id,
                progress=PROGRESS_STARTED + span * done // max(total, 1),
                message=translate("rendering", language, done=done, total=total),
            )

        try:
            document = self.engine.render(
                record.source_content,
                record.label_size,
                job_id=job_id,
                on_progress=on_progress,
            )
            self.store.update(job_id, progress=PROGRESS_STORING, message=translate("storing", language))
            artifact = self.artifacts.store(job_id, document)
        except ConversionError as exc:
            logger.warning(f"Job {job_id} failed ({exc.kind}): {exc}")
            self._finish(job_id, JobStatus.FAILED, translate("failed", language, kind=exc.kind, detail=str(exc)))
            return
        except Exception as exc:
            logger.exception(f"Job {job_id} failed with an internal error")
            self._finish(job_id, JobStatus.FAILED, translate("internal_error", language, detail=str(exc)))
            return

        if document.warnings:
            message = translate(
                "completed_with_warnings",
                language,
                count=len(document.warnings),
                warnings="; ".join(document.warnings),
            )
        else:
            message = translate("completed", language)
        self._finish(job_id, JobStatus.COMPLETED, message, artifact=artifact)

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        message: str,
        artifact: Optional[ArtifactRef] = None,
    ) -> None:
        """
        Move a processing job to its terminal state.

        The store applies the change in memory before writing it through, so when the
        write fails the job is still terminal for pollers; the error is logged and
        re-raised to the caller of ``process``.
        """
        try:
            self.store.update(job_id, status=status, message=message, artifact=artifact)
        except Exception:
            logger.exception(f"Job {job_id} is {status.value} but the change could not be persisted")
            raise

    def status(self, job_id: str) -> JobStatusResponse:
        return self.store.get(job_id).to_status()

    def download(self, job_id: str) -> DownloadReference:
        """
        Resolve the download reference of a completed job.

        Raises:
            JobNotFoundError: If the job does not exist
            ArtifactNotFoundError: If the job has not completed
        """
        record = self.store.get(job_id)
        if record.status != JobStatus.COMPLETED:
            raise ArtifactNotFoundError(job_id)
        artifact = self.artifacts.resolve(job_id)
        return DownloadReference(url=artifact.url, filename=artifact.filename)

    def list_jobs(self) -> List[JobSummary]:
        return [record.to_summary() for record in self.store.list()]

    def get_job(self, job_id: str) -> JobDetail:
        return self.store.get(job_id).to_detail()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

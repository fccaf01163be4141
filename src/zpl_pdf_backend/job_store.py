"""
Job records and the store that owns them.

The JobStore is the single source of truth for job state. Every change goes
through ``update``, which applies it atomically under the store lock and checks it
against the job state machine:

    pending -> processing -> completed | failed

``update(..., expected_status=...)`` is the compare-and-set primitive that gives a
worker exclusive ownership of a job: only one caller can move a given job out of
``pending``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from threading import Lock
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import uuid4

from .artifact_store import ArtifactRef
from .database import JobDatabase
from .errors import InvalidTransitionError, JobNotFoundError
from .messages import translate
from .models import JobDetail, JobEvent, JobStatus, JobStatusResponse, JobSummary, LabelSize
from .utils import utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


@dataclass
class JobRecord:
    """
    Internal representation of a conversion job with full state.

    Attributes:
        id: Unique job identifier (hex UUID)
        status: Current lifecycle state
        progress: Percentage, 0 while pending and 100 once completed
        message: Latest human-readable status text
        label_size: Physical label format used for every page
        language: Language of the status messages
        source_content: The submitted ZPL
        created_at: Job creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        artifact: Stored PDF reference, present only when completed
        events: Chronological list of status messages
    """

    id: str
    status: JobStatus
    progress: int
    message: str
    label_size: LabelSize
    language: str
    source_content: str
    created_at: datetime
    updated_at: datetime
    artifact: Optional[ArtifactRef] = None
    events: List[JobEvent] = field(default_factory=list)

    def snapshot(self) -> "JobRecord":
        return replace(self, events=list(self.events))

    def to_status(self) -> JobStatusResponse:
        return JobStatusResponse(status=self.status, progress=self.progress, message=self.message)

    def to_summary(self) -> JobSummary:
        return JobSummary(
            id=self.id,
            status=self.status,
            progress=self.progress,
            message=self.message,
            label_size=self.label_size,
            language=self.language,
            created_at=self.created_at,
            updated_at=self.updated_at,
            filename=self.artifact.filename if self.artifact else None,
        )

    def to_detail(self) -> JobDetail:
        return JobDetail(
            **self.to_summary().model_dump(),
            events=self.events,
            source_length=len(self.source_content),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "label_size": self.label_size.value,
            "language": self.language,
            "source_content": self.source_content,
            "artifact": (
                {"key": self.artifact.key, "url": self.artifact.url, "filename": self.artifact.filename}
                if self.artifact
                else None
            ),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "events": [event.model_dump() for event in self.events],
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JobRecord":
        artifact = row.get("artifact")
        return cls(
            id=row["id"],
            status=JobStatus(row["status"]),
            progress=row["progress"],
            message=row["message"],
            label_size=LabelSize(row["label_size"]),
            language=row["language"],
            source_content=row["source_content"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            artifact=ArtifactRef(**artifact) if artifact else None,
            events=[JobEvent(**event) for event in row.get("events", [])],
        )


class JobStore:
    """
    Thread-safe registry of job records.

    Reads return snapshots, so a caller polling a job never sees it change under
    its feet. When a JobDatabase is given every change is written through to it and
    existing jobs are reloaded on construction.
    """

    def __init__(self, database: Optional[JobDatabase] = None) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = Lock()
        self._database = database
        if database is not None:
            self._load()

    def _load(self) -> None:
        """Reload persisted jobs; jobs caught mid-processing by a restart are failed."""
        for row in self._database.list_jobs():
            record = JobRecord.from_row(row)
            if record.status == JobStatus.PROCESSING:
                now = utcnow()
                record.status = JobStatus.FAILED
                record.message = translate("interrupted", record.language)
                record.updated_at = now
                record.events.append(JobEvent(timestamp=now, message=record.message))
                self._database.save_job(record.to_row())
                logger.warning(f"Job {record.id} was processing during shutdown; marked failed")
            self._jobs[record.id] = record
        logger.info(f"Loaded {len(self._jobs)} job(s) from {self._database.db_path}")

    def _persist(self, record: JobRecord) -> None:
        if self._database is not None:
            self._database.save_job(record.to_row())

    def create(self, source_content: str, label_size: LabelSize, language: str = "en") -> JobRecord:
        """
        Register a new pending job.

        Returns:
            Snapshot of the created record
        """
        now = utcnow()
        message = translate("queued", language)
        with self._lock:
            job_id = uuid4().hex
            while job_id in self._jobs:
                job_id = uuid4().hex
            record = JobRecord(
                id=job_id,
                status=JobStatus.PENDING,
                progress=0,
                message=message,
                label_size=LabelSize(label_size),
                language=language,
                source_content=source_content,
                created_at=now,
                updated_at=now,
                events=[JobEvent(timestamp=now, message=message)],
            )
            self._jobs[job_id] = record
            self._persist(record)
            return record.snapshot()

    def get(self, job_id: str) -> JobRecord:
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            return record.snapshot()

    def list(self) -> List[JobRecord]:
        """All jobs, newest first."""
        with self._lock:
            records = sorted(self._jobs.values(), key=lambda r: r.created_at, reverse=True)
            return [record.snapshot() for record in records]

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def update(
        self,
        job_id: str,
        *,
        expected_status: Optional[JobStatus] = None,
        status: Optional[JobStatus] = None,
        progress: Optional[int] = None,
        message: Optional[str] = None,
        artifact: Optional[ArtifactRef] = None,
    ) -> JobRecord:
        """
        Atomically apply a change to a job.

        Args:
            job_id: The job to update
            expected_status: Only apply the change if the job is currently in this state
            status: New state; must be allowed by ALLOWED_TRANSITIONS
            progress: New percentage while processing; lower values than the current one are ignored
            message: New status message, also appended to the event log when it changes
            artifact: Stored PDF reference; only accepted together with a move to completed

        Returns:
            Snapshot of the updated record

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidTransitionError: If the change breaks the state machine
        """
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)

            current = record.status
            if expected_status is not None and current != expected_status:
                raise InvalidTransitionError(
                    f"Job {job_id} is {current.value}, expected {expected_status.value}"
                )
            if current.is_terminal:
                raise InvalidTransitionError(f"Job {job_id} is {current.value} and can no longer change")

            target = status if status is not None else current
            if target != current and target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f"Job {job_id} cannot move from {current.value} to {target.value}"
                )
            if artifact is not None and target != JobStatus.COMPLETED:
                raise InvalidTransitionError(f"Job {job_id}: an artifact can only be attached on completion")
            if target == JobStatus.COMPLETED and artifact is None:
                raise InvalidTransitionError(f"Job {job_id} cannot complete without an artifact")

            now = utcnow()
            record.status = target
            if target == JobStatus.COMPLETED:
                record.artifact = artifact
                record.progress = 100
            elif target == JobStatus.PROCESSING and progress is not None:
                record.progress = max(record.progress, min(100, max(0, int(progress))))
            record.updated_at = now

            if message is not None and (message != record.message or target != current):
                record.message = message
                record.events.append(JobEvent(timestamp=now, message=message))

            if target != current:
                logger.info(f"Job {job_id}: {current.value} -> {target.value}")
            # The change stays applied in memory even if the write-through raises.
            self._persist(record)
            return record.snapshot()

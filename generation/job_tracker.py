"""
Job Tracker

Owns one GenerationJob row: lifecycle, progress counters and failure report.

    pending ──start()──▶ running ──complete()──▶ completed
       │                   │ └─────fail()──────▶ failed
       └──────fail()───────┴──mark_cancelled()─▶ cancelled

Every mutation is committed immediately so an external poller sees mid-job
progress. Terminal states are final.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from database.models import GenerationJob
from generation.errors import JobStateError
from generation.schemas import GenerationSummary

log = logging.getLogger("generation.pipeline")

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

TERMINAL_STATES = (COMPLETED, FAILED, CANCELLED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_job(db: Session, material_id: int, created_by: Optional[str] = None) -> GenerationJob:
    """Insert a pending job row."""
    job = GenerationJob(
        material_id=material_id,
        status=PENDING,
        created_by=created_by,
        progress_message="Queued",
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    log.info(f"[JOB] created job_id={job.id} material={material_id}")
    return job


def request_cancel(db: Session, job_id: int) -> Optional[GenerationJob]:
    """Ask a pending/running job to stop after its current step (cooperative only). None if no such job."""
    job = db.query(GenerationJob).filter(GenerationJob.id == job_id).first()
    if job is None:
        return None
    if job.status in TERMINAL_STATES:
        raise JobStateError(f"Job {job.id} is already {job.status}")
    job.cancel_requested = True
    job.progress_message = "Cancellation requested"
    db.commit()
    db.refresh(job)
    return job


class JobTracker:
    """Single writer for one job's row."""

    def __init__(self, db: Session, job: GenerationJob):
        self.db = db
        self.job = job

    @property
    def job_id(self) -> int:
        return self.job.id

    @property
    def is_terminal(self) -> bool:
        return self.job.status in TERMINAL_STATES

    def _require(self, *states: str) -> None:
        if self.job.status not in states:
            raise JobStateError(
                f"Job {self.job.id}: illegal transition from '{self.job.status}' (expected {', '.join(states)})"
            )

    def _commit(self) -> None:
        self.db.commit()
        self.db.refresh(self.job)

    # ── lifecycle ──────────────────────────────────────────────────────────

    def start(self, total_topics: int, total_questions: int) -> None:
        self._require(PENDING)
        self.job.status = RUNNING
        self.job.total_topics = total_topics
        self.job.total_questions = total_questions
        self.job.started_at = _now()
        self.job.progress_message = f"Generating questions for {total_topics} topic(s)"
        self._commit()
        log.info(f"[JOB] {self.job.id} running: {total_topics} topics, up to {total_questions} questions")

    def complete(self, summary: GenerationSummary) -> None:
        self._require(RUNNING)
        self.job.status = COMPLETED
        self.job.completed_at = _now()
        self.job.current_item = None
        self.job.summary = summary.model_dump()
        self.job.progress_message = (
            f"Created {summary.questions_generated} question(s) across "
            f"{summary.topics_matched} matched topic(s)"
        )
        self._commit()
        log.info(f"[JOB] {self.job.id} completed: {summary.questions_generated} questions")

    def fail(self, error_message: str, summary: Optional[GenerationSummary] = None) -> None:
        self._require(PENDING, RUNNING)
        self.job.status = FAILED
        self.job.error_message = error_message
        self.job.completed_at = _now()
        self.job.progress_message = f"Failed: {error_message}"
        if summary is not None:
            self.job.summary = summary.model_dump()
        self._commit()
        log.error(f"[JOB] {self.job.id} failed: {error_message}")

    def mark_cancelled(self, summary: GenerationSummary) -> None:
        self._require(PENDING, RUNNING)
        self.job.status = CANCELLED
        self.job.completed_at = _now()
        self.job.current_item = None
        self.job.summary = summary.model_dump()
        self.job.progress_message = f"Cancelled after {summary.questions_generated} question(s)"
        self._commit()
        log.info(f"[JOB] {self.job.id} cancelled")

    # ── progress ───────────────────────────────────────────────────────────

    def set_current_item(self, label: str, message: Optional[str] = None) -> None:
        self._require(RUNNING)
        self.job.current_item = label[:255]
        self.job.progress_message = message or f"Processing topic: {label}"
        self._commit()

    def record_topic(
        self,
        label: str,
        completed_topics: int,
        questions_delta: int = 0,
        failed_delta: int = 0,
        message: Optional[str] = None,
    ) -> None:
        """Called once per attempted topic, after its last claim."""
        self._require(RUNNING)
        self.job.completed_topics = completed_topics
        self.job.completed_questions += questions_delta
        self.job.failed_questions += failed_delta
        self.job.current_item = label[:255]
        self.job.progress_message = message or f"Finished topic {completed_topics}/{self.job.total_topics}: {label}"
        self._commit()

    def cancel_requested(self) -> bool:
        """Re-read the flag; another session may have set it."""
        self.db.refresh(self.job)
        return bool(self.job.cancel_requested)

"""
Concurrent-safe job table.

Every operation runs under one store-wide lock inside a single session and
commit, so readers never observe a record whose state and progress are out
of step. Records are handed out as frozen JobSnapshot copies.
"""

import threading
from datetime import datetime, timezone
from typing import List, Optional

from exceptions import NotFound
from models import Job
from schemas import JobSnapshot

TERMINAL_STATES = ("completed", "error")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _snapshot(job: Job) -> JobSnapshot:
    return JobSnapshot(
        job_id=job.id,
        status=job.status,
        progress=job.progress,
        created_at=_aware(job.created_at),
        completed_at=_aware(job.completed_at),
        config=dict(job.config),
        output_path=job.output_path,
        file_size=job.file_size,
        download_url=f"/jobs/{job.id}/output" if job.status == "completed" else None,
        error=job.error,
        error_kind=job.error_kind,
    )


class JobStore:
    """Job records keyed by job id, backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._lock = threading.Lock()

    def create(self, job_id: str, config: dict) -> JobSnapshot:
        with self._lock, self._session_factory() as db:
            job = Job(id=job_id, status="queued", progress=0, created_at=utcnow(), config=config)
            db.add(job)
            db.commit()
            return _snapshot(job)

    def get(self, job_id: str) -> JobSnapshot:
        with self._lock, self._session_factory() as db:
            job = db.get(Job, job_id)
            if job is None:
                raise NotFound("job", job_id)
            return _snapshot(job)

    def list(self) -> List[JobSnapshot]:
        with self._lock, self._session_factory() as db:
            jobs = db.query(Job).order_by(Job.created_at).all()
            return [_snapshot(job) for job in jobs]

    def count_active(self) -> int:
        with self._lock, self._session_factory() as db:
            return db.query(Job).filter(Job.status == "processing").count()

    def delete(self, job_id: str) -> JobSnapshot:
        """Remove a record and return its last state."""
        with self._lock, self._session_factory() as db:
            job = db.get(Job, job_id)
            if job is None:
                raise NotFound("job", job_id)
            snapshot = _snapshot(job)
            db.delete(job)
            db.commit()
            return snapshot

    def _update(self, job_id: str, apply) -> Optional[JobSnapshot]:
        """Apply a mutation to a live record.

        Returns None when the record is gone; terminal records are returned unchanged.
        """
        with self._lock, self._session_factory() as db:
            job = db.get(Job, job_id)
            if job is None:
                return None
            if job.status not in TERMINAL_STATES:
                apply(job)
                db.commit()
            return _snapshot(job)

    def start(self, job_id: str) -> Optional[JobSnapshot]:
        def apply(job):
            job.status = "processing"
        return self._update(job_id, apply)

    def set_progress(self, job_id: str, progress: int) -> Optional[JobSnapshot]:
        def apply(job):
            # never regress, and 100 is reserved for the completed transition
            job.progress = max(job.progress, min(int(progress), 99))
        return self._update(job_id, apply)

    def complete(self, job_id: str, output_path: str, file_size: int) -> Optional[JobSnapshot]:
        def apply(job):
            job.status = "completed"
            job.progress = 100
            job.output_path = output_path
            job.file_size = file_size
            job.completed_at = utcnow()
        return self._update(job_id, apply)

    def fail(self, job_id: str, error: Exception) -> Optional[JobSnapshot]:
        def apply(job):
            job.status = "error"
            job.error = str(error)
            job.error_kind = type(error).__name__
            job.completed_at = utcnow()
        return self._update(job_id, apply)

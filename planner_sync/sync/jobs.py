"""
In-memory tracking of bulk sync jobs.

Jobs live in process memory only and disappear after a restart. Terminal
jobs are kept for a retention window so clients can poll the result, then
expire.
"""

import copy
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field, fields
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 300


class JobStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStateError(Exception):
    """A terminal job was asked to change again."""


class JobNotFoundError(LookupError):
    """No job with the given ID is being tracked."""


@dataclass
class SyncProgress:
    total_tasks: int = 0
    synced_planning_tasks: int = 0
    synced_deadline_tasks: int = 0
    deleted_events: int = 0
    errors: list[str] = field(default_factory=list)


_COUNTERS = frozenset(f.name for f in fields(SyncProgress)) - {"errors"}


@dataclass
class SyncJob:
    id: str
    user_id: str
    status: JobStatus = JobStatus.IN_PROGRESS
    progress: SyncProgress = field(default_factory=SyncProgress)
    started_at: float = 0.0
    completed_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.IN_PROGRESS


class SyncJobTracker:
    """
    Registry of bulk sync jobs.

    Status only moves forward: in_progress -> completed | failed. Readers
    get snapshots, never the live job.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._retention_seconds = retention_seconds
        self._clock = clock
        self._jobs: dict[str, SyncJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def _live(self, job_id: str) -> SyncJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _expired(self, job: SyncJob, now: float) -> bool:
        return (
            job.completed_at is not None
            and now - job.completed_at >= self._retention_seconds
        )

    def create_job(self, user_id: str) -> str:
        """Register a new in-progress job and return its ID."""
        job_id = str(uuid.uuid4())
        self._jobs[job_id] = SyncJob(id=job_id, user_id=user_id, started_at=self._clock())
        logger.info(f"Created sync job {job_id} for user {user_id}")
        return job_id

    def update_progress(self, job_id: str, errors: Optional[list[str]] = None, **counters: int) -> None:
        """
        Set progress counters on an in-progress job.

        Counters are overwritten; errors are appended.

        Raises:
            JobNotFoundError: If the job is unknown
            JobStateError: If the job already finished
            ValueError: If a counter name is unknown
        """
        job = self._live(job_id)
        if job.is_terminal:
            raise JobStateError(f"Job {job_id} is {job.status.value}")

        unknown = set(counters) - _COUNTERS
        if unknown:
            raise ValueError(f"Unknown progress counters: {sorted(unknown)}")

        for name, value in counters.items():
            setattr(job.progress, name, value)
        if errors:
            job.progress.errors.extend(errors)

    def _finish(self, job_id: str, status: JobStatus) -> SyncJob:
        job = self._live(job_id)
        if job.is_terminal:
            raise JobStateError(f"Job {job_id} is already {job.status.value}")
        job.status = status
        job.completed_at = self._clock()
        return job

    def complete_job(self, job_id: str, progress: Optional[SyncProgress] = None) -> None:
        job = self._finish(job_id, JobStatus.COMPLETED)
        if progress is not None:
            job.progress = copy.deepcopy(progress)
        logger.info(
            f"Sync job {job_id} completed: "
            f"{job.progress.synced_planning_tasks} planning, "
            f"{job.progress.synced_deadline_tasks} deadline, "
            f"{job.progress.deleted_events} deleted, "
            f"{len(job.progress.errors)} errors"
        )

    def fail_job(self, job_id: str, error: str) -> None:
        job = self._finish(job_id, JobStatus.FAILED)
        job.progress.errors.append(error)
        logger.warning(f"Sync job {job_id} failed: {error}")

    def get_job(self, job_id: str) -> Optional[SyncJob]:
        """
        Snapshot of a job, or None if it is unknown or has expired.

        An expired job is dropped on read.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None
        if self._expired(job, self._clock()):
            del self._jobs[job_id]
            return None
        return copy.deepcopy(job)

    def cleanup(self) -> int:
        """
        Drop expired jobs.

        Returns:
            Number of jobs removed
        """
        now = self._clock()
        expired = [job_id for job_id, job in self._jobs.items() if self._expired(job, now)]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug(f"Removed {len(expired)} expired sync jobs")
        return len(expired)

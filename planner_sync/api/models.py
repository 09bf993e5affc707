"""
Pydantic request and response models for the Planner Outlook Sync API.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from planner_sync.sync.jobs import SyncJob


# =============================================================================
# Request Models
# =============================================================================


class LinkAccountRequest(BaseModel):
    """Credential obtained by the Microsoft consent flow."""

    refresh_token: str = Field(
        ...,
        min_length=1,
        description="Microsoft refresh token with offline_access",
    )
    email: Optional[str] = Field(
        None,
        description="Mailbox address of the linked account",
    )

    @field_validator("refresh_token")
    @classmethod
    def validate_token_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Refresh token cannot be blank")
        return v.strip()


# =============================================================================
# Response Models
# =============================================================================


class OutlookStatusResponse(BaseModel):
    connected: bool
    email: Optional[str] = None
    calendar_id: Optional[str] = None
    provider: str = "outlook"


class LinkAccountResponse(BaseModel):
    success: bool
    job_id: str
    message: str


class DisconnectResponse(BaseModel):
    success: bool
    message: str


class SyncStartedResponse(BaseModel):
    """Returned when a bulk sync job has been started."""

    job_id: str
    message: str


class SyncProgressModel(BaseModel):
    total_tasks: int = 0
    synced_planning_tasks: int = 0
    synced_deadline_tasks: int = 0
    deleted_events: int = 0
    errors: list[str] = Field(default_factory=list)


class SyncJobResponse(BaseModel):
    """Status of a bulk sync job."""

    job_id: str
    user_id: str
    status: Literal["in_progress", "completed", "failed"]
    progress: SyncProgressModel
    started_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: SyncJob) -> "SyncJobResponse":
        return cls(
            job_id=job.id,
            user_id=job.user_id,
            status=job.status.value,
            progress=SyncProgressModel(
                total_tasks=job.progress.total_tasks,
                synced_planning_tasks=job.progress.synced_planning_tasks,
                synced_deadline_tasks=job.progress.synced_deadline_tasks,
                deleted_events=job.progress.deleted_events,
                errors=list(job.progress.errors),
            ),
            started_at=datetime.fromtimestamp(job.started_at, tz=timezone.utc),
            completed_at=(
                datetime.fromtimestamp(job.completed_at, tz=timezone.utc)
                if job.completed_at is not None
                else None
            ),
        )


class QueuedResponse(BaseModel):
    """Returned when a single-task request was handed to the dispatcher."""

    queued: bool = Field(..., description="False if an identical request was already waiting")
    target_id: str
    message: str


class HealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    version: str
    dispatcher_running: bool
    active_jobs: int = 0

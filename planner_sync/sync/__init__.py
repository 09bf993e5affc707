"""
Calendar synchronization engine.

Mirrors planning and deadline tasks into each user's dedicated Outlook
calendar: task classification and event mapping, calendar and category
resolution, event upserts, orphan reconciliation and bulk job tracking.
"""

from planner_sync.sync.calendars import ensure_calendar, ensure_categories
from planner_sync.sync.executor import SyncExecutor, SyncOutcome
from planner_sync.sync.jobs import (
    JobNotFoundError,
    JobStateError,
    JobStatus,
    SyncJob,
    SyncJobTracker,
    SyncProgress,
)
from planner_sync.sync.mapper import (
    EventCategory,
    RemoteEventPayload,
    UnmappableTaskError,
    build_event,
)
from planner_sync.sync.reconciler import ReconcileOutcome, reconcile_orphans
from planner_sync.sync.session import OutlookSession, resolve_session
from planner_sync.sync.tasks import (
    DeadlineType,
    SchedulableTask,
    TaskKind,
    TaskSource,
    load_task,
    load_user_tasks,
)

__all__ = [
    # Tasks
    "DeadlineType",
    "SchedulableTask",
    "TaskKind",
    "TaskSource",
    "load_task",
    "load_user_tasks",
    # Mapping
    "EventCategory",
    "RemoteEventPayload",
    "UnmappableTaskError",
    "build_event",
    # Session and calendar
    "OutlookSession",
    "resolve_session",
    "ensure_calendar",
    "ensure_categories",
    # Execution
    "SyncExecutor",
    "SyncOutcome",
    "ReconcileOutcome",
    "reconcile_orphans",
    # Jobs
    "JobNotFoundError",
    "JobStateError",
    "JobStatus",
    "SyncJob",
    "SyncJobTracker",
    "SyncProgress",
]

"""
Schedulable task view over planning and deadline rows.

The engine never works on ORM rows directly: rows are converted once into
an immutable SchedulableTask whose TaskKind is already resolved, including
the legacy convention where the projects "Time Off", "Out of Office" and
"Unavailable" stand for status entries.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from planner_sync.models.planning import DeadlineTask, PlanningTask, Project

logger = logging.getLogger(__name__)

# Project names that mark a planning slot as a status rather than project work
LEGACY_STATUS_PROJECTS = frozenset({"Time Off", "Out of Office", "Unavailable"})


class TaskKind(str, enum.Enum):
    STATUS = "status"
    PROJECT = "project"
    DEADLINE = "deadline"


class TaskSource(str, enum.Enum):
    """Table a task was loaded from (and where its event id is written back)."""

    PLANNING = "planning"
    DEADLINE = "deadline"


class DeadlineType(str, enum.Enum):
    DEADLINE = "DEADLINE"
    INTERNAL_DEADLINE = "INTERNAL_DEADLINE"
    MILESTONE = "MILESTONE"


@dataclass(frozen=True)
class ProjectRef:
    """The project fields the event mapper reads."""

    name: str
    common_name: Optional[str] = None
    client_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.common_name or self.name


@dataclass(frozen=True)
class SchedulableTask:
    """
    Internal unit of work mirrored into Outlook.

    Attributes:
        id: Task ID (string form of the row UUID)
        user_id: Owner whose calendar receives the event
        source: Table the task came from
        kind: Status, project or deadline task
        date: Calendar day of the task
        label: Status name, or the free text of the task
        description: Free-text description shown in the event body
        project: Linked project, when it could be loaded
        project_missing: A project id is set but the project row is gone
        deadline_type: Raw deadline subtype (deadline tasks only)
        remote_event_id: Outlook event currently mirroring the task
    """

    id: str
    user_id: str
    source: TaskSource
    kind: TaskKind
    date: date
    label: str = ""
    description: Optional[str] = None
    project: Optional[ProjectRef] = None
    project_missing: bool = False
    deadline_type: Optional[str] = None
    remote_event_id: Optional[str] = None


def _as_date(value: Union[date, datetime]) -> date:
    """Drop any time-of-day component."""
    if isinstance(value, datetime):
        return value.date()
    return value


def _project_ref(project: Optional[Project]) -> Optional[ProjectRef]:
    if project is None:
        return None
    return ProjectRef(
        name=project.name,
        common_name=project.common_name,
        client_name=project.client.name if project.client else None,
    )


def from_planning_task(row: PlanningTask) -> SchedulableTask:
    """Build a SchedulableTask from a planning row, resolving its kind."""
    text = (row.task or "").strip()
    project = _project_ref(row.project)

    if row.project_id is None:
        kind, label, description = TaskKind.STATUS, text, None
    elif project is None:
        kind, label, description = TaskKind.PROJECT, text, text or None
    elif project.name in LEGACY_STATUS_PROJECTS:
        kind, label, description = TaskKind.STATUS, project.name, text or None
    else:
        kind, label, description = TaskKind.PROJECT, text, text or None

    return SchedulableTask(
        id=str(row.id),
        user_id=row.user_id,
        source=TaskSource.PLANNING,
        kind=kind,
        date=_as_date(row.date),
        label=label,
        description=description,
        project=project,
        project_missing=row.project_id is not None and project is None,
        remote_event_id=row.outlook_event_id,
    )


def from_deadline_task(row: DeadlineTask) -> SchedulableTask:
    """Build a SchedulableTask from a deadline row."""
    project = _project_ref(row.project)
    description = (row.description or "").strip() or None

    return SchedulableTask(
        id=str(row.id),
        user_id=row.created_by,
        source=TaskSource.DEADLINE,
        kind=TaskKind.DEADLINE,
        date=_as_date(row.date),
        label=description or "",
        description=description,
        project=project,
        project_missing=row.project_id is not None and project is None,
        deadline_type=row.deadline_type,
        remote_event_id=row.outlook_event_id,
    )


def _parse_uuid(task_id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(task_id, uuid.UUID):
        return task_id
    try:
        return uuid.UUID(str(task_id))
    except ValueError:
        return None


async def load_task(
    session: AsyncSession,
    task_id: Union[str, uuid.UUID],
) -> Optional[SchedulableTask]:
    """
    Load a task by ID, looking in planning tasks first, then deadlines.

    Returns:
        SchedulableTask or None if no row has that ID
    """
    row_id = _parse_uuid(task_id)
    if row_id is None:
        return None

    planning = await session.get(PlanningTask, row_id, populate_existing=True)
    if planning is not None:
        return from_planning_task(planning)

    deadline = await session.get(DeadlineTask, row_id, populate_existing=True)
    if deadline is not None:
        return from_deadline_task(deadline)

    return None


async def load_user_tasks(
    session: AsyncSession,
    user_id: str,
    source: TaskSource,
) -> list[SchedulableTask]:
    """Load every task of one source owned by a user, ordered by date."""
    if source == TaskSource.PLANNING:
        stmt = (
            select(PlanningTask)
            .where(PlanningTask.user_id == user_id)
            .order_by(PlanningTask.date, PlanningTask.id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return [from_planning_task(row) for row in result.scalars().all()]

    stmt = (
        select(DeadlineTask)
        .where(DeadlineTask.created_by == user_id)
        .order_by(DeadlineTask.date, DeadlineTask.id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return [from_deadline_task(row) for row in result.scalars().all()]


def _model_for(source: TaskSource):
    return PlanningTask if source == TaskSource.PLANNING else DeadlineTask


async def store_remote_id(
    session: AsyncSession,
    task: SchedulableTask,
    event_id: Optional[str],
) -> None:
    """Write the Outlook event reference back onto the task row."""
    model = _model_for(task.source)
    await session.execute(
        update(model)
        .where(model.id == uuid.UUID(task.id))
        .values(outlook_event_id=event_id)
    )
    await session.commit()


async def referenced_event_ids(session: AsyncSession, user_id: str) -> set[str]:
    """Every Outlook event id currently referenced by the user's tasks."""
    planning = await session.execute(
        select(PlanningTask.outlook_event_id).where(
            PlanningTask.user_id == user_id,
            PlanningTask.outlook_event_id.is_not(None),
        )
    )
    deadlines = await session.execute(
        select(DeadlineTask.outlook_event_id).where(
            DeadlineTask.created_by == user_id,
            DeadlineTask.outlook_event_id.is_not(None),
        )
    )
    return set(planning.scalars().all()) | set(deadlines.scalars().all())


async def clear_event_references(
    session: AsyncSession,
    user_id: str,
    event_ids: Iterable[str],
) -> int:
    """
    Clear task references pointing at the given Outlook events.

    Returns:
        Number of task rows updated
    """
    event_ids = list(event_ids)
    if not event_ids:
        return 0

    cleared = 0
    for model, owner in (
        (PlanningTask, PlanningTask.user_id),
        (DeadlineTask, DeadlineTask.created_by),
    ):
        result = await session.execute(
            update(model)
            .where(owner == user_id, model.outlook_event_id.in_(event_ids))
            .values(outlook_event_id=None)
        )
        cleared += result.rowcount or 0
    await session.commit()

    logger.info(f"Cleared {cleared} stale Outlook references for user {user_id}")
    return cleared

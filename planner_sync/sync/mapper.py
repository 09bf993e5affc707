"""
Mapping from schedulable tasks to Outlook event payloads.

Handles:
- Status tasks (time off, unavailable, out of office)
- Project work blocks
- Deadline, internal deadline and milestone markers
- All-day date ranges (half-open, exactly one day)
- Graph JSON serialisation

Payloads are rebuilt from the task on every sync attempt and never stored.
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from planner_sync.sync.tasks import DeadlineType, SchedulableTask, TaskKind


class EventCategory(str, enum.Enum):
    """Fixed Outlook category taxonomy for mirrored events."""

    PROJECT_TASK = "Project Task"
    DEADLINE = "Deadline"
    INTERNAL_DEADLINE = "Internal Deadline"
    PROJECT_MILESTONE = "Project Milestone"
    OUT_OF_OFFICE = "Out of office"
    TIME_OFF = "Time off"
    UNAVAILABLE = "Unavailable"


# Outlook master category colour presets
CATEGORY_COLORS = {
    EventCategory.PROJECT_TASK: "preset7",       # blue
    EventCategory.DEADLINE: "preset0",           # red
    EventCategory.INTERNAL_DEADLINE: "preset1",  # orange
    EventCategory.PROJECT_MILESTONE: "preset4",  # green
    EventCategory.OUT_OF_OFFICE: "preset8",      # purple
    EventCategory.TIME_OFF: "preset3",           # yellow
    EventCategory.UNAVAILABLE: "preset12",       # gray
}

# Status name -> (subject, category)
STATUS_EVENTS = {
    "Time Off": ("PTO", EventCategory.TIME_OFF),
    "Unavailable": ("Unavailable", EventCategory.UNAVAILABLE),
    "Out of Office": ("OOS", EventCategory.OUT_OF_OFFICE),
}

# Deadline subtype -> (subject label, category)
DEADLINE_EVENTS = {
    DeadlineType.DEADLINE.value: ("Deadline", EventCategory.DEADLINE),
    DeadlineType.INTERNAL_DEADLINE.value: ("Internal Deadline", EventCategory.INTERNAL_DEADLINE),
    DeadlineType.MILESTONE.value: ("Milestone", EventCategory.PROJECT_MILESTONE),
}


class UnmappableTaskError(Exception):
    """
    The task cannot be expressed as an event.

    This is a data-integrity condition (for example the linked project no
    longer exists), not a transient failure; retrying will not help.
    """

    def __init__(self, task: SchedulableTask, reason: str):
        super().__init__(f"{task.source.value} task {task.id}: {reason}")
        self.task = task
        self.reason = reason


class InvalidEventPayloadError(ValueError):
    """An event payload violates the all-day event rules."""


@dataclass(frozen=True)
class RemoteEventPayload:
    """
    Provider-neutral description of a mirrored all-day event.

    The range is half-open: `end` is the day after `start`.
    """

    subject: str
    start: date
    end: date
    body: str
    category: EventCategory

    def __post_init__(self):
        if self.end - self.start != timedelta(days=1):
            raise InvalidEventPayloadError(
                f"All-day event must span exactly one day, got {self.start} to {self.end}"
            )
        if not isinstance(self.category, EventCategory):
            raise InvalidEventPayloadError(f"Unknown category: {self.category!r}")

    def to_graph(self, time_zone: str = "UTC") -> dict:
        """
        Serialise to a Microsoft Graph event body.

        Graph expects all-day events to start and end at midnight in the
        event's time zone.
        """
        return {
            "subject": self.subject,
            "body": {"contentType": "text", "content": self.body},
            "start": {"dateTime": f"{self.start.isoformat()}T00:00:00", "timeZone": time_zone},
            "end": {"dateTime": f"{self.end.isoformat()}T00:00:00", "timeZone": time_zone},
            "isAllDay": True,
            "isReminderOn": False,
            "categories": [self.category.value],
        }


def all_day_range(day: date) -> tuple[date, date]:
    """Half-open one-day range starting at the given day."""
    if isinstance(day, datetime):
        day = day.date()
    return day, day + timedelta(days=1)


def _status_event(task: SchedulableTask) -> tuple[str, str, EventCategory]:
    subject, category = STATUS_EVENTS.get(task.label, (task.label, EventCategory.PROJECT_TASK))
    return subject, task.description or "", category


def _project_event(task: SchedulableTask) -> tuple[str, str, EventCategory]:
    if task.project is None:
        raise UnmappableTaskError(task, "linked project could not be resolved")

    header = [f"Project: {task.project.name}"]
    if task.project.client_name:
        header.append(f"Client: {task.project.client_name}")
    body = "\n\n".join(part for part in ("\n".join(header), task.description) if part)

    return task.project.display_name, body, EventCategory.PROJECT_TASK


def _deadline_event(task: SchedulableTask) -> tuple[str, str, EventCategory]:
    if task.project_missing:
        raise UnmappableTaskError(task, "linked project could not be resolved")

    label, category = DEADLINE_EVENTS.get(
        task.deadline_type or "", ("Deadline", EventCategory.DEADLINE)
    )
    if task.project is not None:
        subject = f"{label} - {task.project.display_name}"
    elif task.description:
        subject = f"{label} - {task.description}"
    else:
        subject = label

    return subject, task.description or "", category


def build_event(task: SchedulableTask) -> RemoteEventPayload:
    """
    Translate a task into the event that should mirror it.

    Args:
        task: Task to translate

    Returns:
        RemoteEventPayload for the task's day

    Raises:
        UnmappableTaskError: If the task's linked project cannot be resolved
    """
    if task.kind == TaskKind.STATUS:
        subject, body, category = _status_event(task)
    elif task.kind == TaskKind.DEADLINE:
        subject, body, category = _deadline_event(task)
    else:
        subject, body, category = _project_event(task)

    start, end = all_day_range(task.date)
    return RemoteEventPayload(
        subject=subject,
        start=start,
        end=end,
        body=body,
        category=category,
    )

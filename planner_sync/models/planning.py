"""
Planning record models read by the sync engine.

These tables are owned by the CRUD layer. Only the columns the engine
reads (plus the Outlook event reference it writes back) are declared here.

Entities:
- Client: Customer a project is delivered for
- Project: Billable project; the planner shows its common name
- PlanningTask: A day of work (or a status such as time off) for one user
- DeadlineTask: A deadline, internal deadline or milestone on a project
"""

import uuid
import datetime
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planner_sync.models.base import BaseModel


class Client(BaseModel):
    """Client that owns projects."""

    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Client display name"
    )


class Project(BaseModel):
    """
    Project referenced by planning and deadline tasks.

    `common_name` is the short label used across the planner; the full
    `name` is only shown where there is room for it.
    """

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Full project name"
    )

    common_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Short project name preferred in calendar subjects"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
    )

    client: Mapped[Optional["Client"]] = relationship(lazy="joined")


class PlanningTask(BaseModel):
    """
    One planned day for a user.

    A task without a project is a status entry ("Time Off", "Unavailable",
    "Out of Office"), in which case `task` holds the status name.
    """

    __tablename__ = "planning_tasks"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Owner of the planning slot"
    )

    date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="Calendar day the task is planned for"
    )

    task: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Free-text description, or the status name for status tasks"
    )

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("projects.id"),
        nullable=True,
    )

    outlook_event_id: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
        doc="Outlook event mirroring this task"
    )

    project: Mapped[Optional["Project"]] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_planning_tasks_user_date", "user_id", "date"),
    )


class DeadlineTask(BaseModel):
    """A deadline-class marker on a project."""

    __tablename__ = "deadline_tasks"

    created_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="User who created the deadline (its calendar owner)"
    )

    date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    deadline_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="DEADLINE",
        doc="DEADLINE, INTERNAL_DEADLINE or MILESTONE"
    )

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("projects.id"),
        nullable=True,
    )

    outlook_event_id: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
        doc="Outlook event mirroring this deadline"
    )

    project: Mapped[Optional["Project"]] = relationship(lazy="joined")

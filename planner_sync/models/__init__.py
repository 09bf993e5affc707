"""
SQLAlchemy models for Planner Outlook Sync.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

from planner_sync.models.base import Base, BaseModel, GUID

from planner_sync.models.bindings import CalendarBinding
from planner_sync.models.planning import Client, Project, PlanningTask, DeadlineTask

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    # Account link
    "CalendarBinding",
    # Planning records
    "Client",
    "Project",
    "PlanningTask",
    "DeadlineTask",
]

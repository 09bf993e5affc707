"""
Outlook calendar binding model.

Stores the long-lived Microsoft refresh token for users who linked their
Outlook calendar, plus the cached id of the dedicated calendar that holds
mirrored planner events.
"""

from typing import Optional

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from planner_sync.models.base import BaseModel


class CalendarBinding(BaseModel):
    """
    Per-user link to Outlook.

    Created when the user completes the Microsoft consent flow and cleared
    (credential and calendar id nulled, enabled false) when they disconnect.
    The sync engine reads it and only ever writes `calendar_id`.

    Attributes:
        user_id: Planner user the binding belongs to
        enabled: Whether mirrored sync is switched on
        email: Mailbox address reported by Microsoft (informational)
        refresh_token: Long-lived credential exchanged for access tokens
        calendar_id: Cached id of the dedicated Outlook calendar
    """

    __tablename__ = "calendar_bindings"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        doc="Planner user ID"
    )

    enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether Outlook sync is enabled for this user"
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Microsoft OAuth refresh token"
    )

    calendar_id: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
        doc="Dedicated calendar ID (resolved lazily by the sync engine)"
    )

    @property
    def is_connected(self) -> bool:
        """True when the binding can be exchanged for an access token."""
        return self.enabled and bool(self.refresh_token)

    def __repr__(self) -> str:
        return f"<CalendarBinding(user_id={self.user_id}, enabled={self.enabled})>"

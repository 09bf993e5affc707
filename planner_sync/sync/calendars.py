"""
Dedicated calendar and category taxonomy resolution.

Both operations are get-or-create and idempotent. A concurrent caller that
creates the same calendar or category first is treated as success.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from planner_sync.auth.bindings import cache_calendar_id
from planner_sync.config import get_settings
from planner_sync.integrations.outlook.client import OutlookCalendarClient
from planner_sync.integrations.outlook.exceptions import (
    OutlookCalendarError,
    OutlookConflictError,
    OutlookValidationError,
)
from planner_sync.models.bindings import CalendarBinding
from planner_sync.sync.mapper import CATEGORY_COLORS, EventCategory

logger = logging.getLogger(__name__)


def _find_calendar(calendars: list[dict], name: str) -> Optional[str]:
    target = name.strip().lower()
    for calendar in calendars:
        if (calendar.get("name") or "").strip().lower() == target:
            return calendar.get("id")
    return None


def _is_already_exists(error: OutlookCalendarError) -> bool:
    # Graph reports duplicate calendar names as 409 or as 400 ErrorFolderExists
    if isinstance(error, OutlookConflictError):
        return True
    return isinstance(error, OutlookValidationError) and "exist" in error.message.lower()


async def ensure_calendar(
    client: OutlookCalendarClient,
    db: AsyncSession,
    binding: CalendarBinding,
    verify: bool = False,
) -> str:
    """
    Get or create the dedicated calendar and cache its id on the binding.

    Args:
        client: Graph client for the user
        db: Database session
        binding: The user's calendar binding
        verify: Check that a cached id still exists in Outlook

    Returns:
        Dedicated calendar ID

    Raises:
        OutlookCalendarError: If the calendar can neither be found nor created
    """
    if binding.calendar_id and not verify:
        return binding.calendar_id

    name = get_settings().outlook_calendar_name
    calendars = await client.list_calendars()

    if binding.calendar_id and any(c.get("id") == binding.calendar_id for c in calendars):
        return binding.calendar_id

    calendar_id = _find_calendar(calendars, name)
    if calendar_id is None:
        try:
            created = await client.create_calendar(name)
            calendar_id = created["id"]
        except OutlookCalendarError as e:
            if not _is_already_exists(e):
                raise
            logger.info(f"Calendar '{name}' was created concurrently, re-reading")
            calendar_id = _find_calendar(await client.list_calendars(), name)
            if calendar_id is None:
                raise

    if binding.calendar_id and binding.calendar_id != calendar_id:
        logger.info(
            f"Dedicated calendar for user {binding.user_id} changed "
            f"from {binding.calendar_id} to {calendar_id}"
        )
    await cache_calendar_id(db, binding, calendar_id)
    return calendar_id


async def ensure_categories(client: OutlookCalendarClient) -> list[str]:
    """
    Make sure every category of the taxonomy exists in the user's mailbox.

    Returns:
        Names of the categories that had to be created
    """
    existing = {
        (category.get("displayName") or "").strip().lower()
        for category in await client.list_master_categories()
    }

    created = []
    for category in EventCategory:
        if category.value.lower() in existing:
            continue
        try:
            await client.create_master_category(category.value, CATEGORY_COLORS[category])
            created.append(category.value)
        except OutlookConflictError:
            logger.debug(f"Category '{category.value}' already exists")

    return created

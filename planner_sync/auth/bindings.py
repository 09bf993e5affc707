"""
Calendar binding storage.

Persistence for the per-user Outlook link. Linking and unlinking are
driven by the account-linking flow; the sync engine reads bindings and
caches the dedicated calendar id on them.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from planner_sync.models.bindings import CalendarBinding
from planner_sync.models.planning import DeadlineTask, PlanningTask

logger = logging.getLogger(__name__)


async def get_binding(
    session: AsyncSession,
    user_id: str,
) -> Optional[CalendarBinding]:
    """
    Get a user's calendar binding.

    Args:
        session: Database session
        user_id: The user's ID

    Returns:
        CalendarBinding if found, None otherwise
    """
    stmt = select(CalendarBinding).where(CalendarBinding.user_id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def save_binding(
    session: AsyncSession,
    user_id: str,
    refresh_token: str,
    email: Optional[str] = None,
) -> CalendarBinding:
    """
    Link a user's Outlook account.

    If a binding already exists it is re-enabled with the new credential.
    The cached calendar id is kept: the calendar resolver verifies it on
    the next bulk sync.

    Args:
        session: Database session
        user_id: The user's ID
        refresh_token: Refresh token obtained by the consent flow
        email: Mailbox address, if known

    Returns:
        The saved CalendarBinding
    """
    existing = await get_binding(session, user_id)

    if existing:
        existing.refresh_token = refresh_token
        existing.enabled = True
        if email:
            existing.email = email
        existing.updated_at = datetime.now(timezone.utc)

        logger.info(f"Re-linked Outlook calendar for user {user_id}")
        await session.commit()
        return existing

    binding = CalendarBinding(
        user_id=user_id,
        enabled=True,
        email=email,
        refresh_token=refresh_token,
    )
    session.add(binding)
    await session.commit()
    await session.refresh(binding)

    logger.info(f"Linked Outlook calendar for user {user_id}")
    return binding


async def clear_binding(
    session: AsyncSession,
    user_id: str,
) -> bool:
    """
    Unlink a user's Outlook account.

    Nulls the credential and calendar id, disables the binding, and clears
    the Outlook event reference of every task the user owns: the dedicated
    calendar is no longer reachable, so those references are meaningless.

    Args:
        session: Database session
        user_id: The user's ID

    Returns:
        True if a binding was cleared, False if none existed
    """
    binding = await get_binding(session, user_id)
    if not binding:
        return False

    binding.refresh_token = None
    binding.calendar_id = None
    binding.enabled = False
    binding.updated_at = datetime.now(timezone.utc)

    await session.execute(
        update(PlanningTask)
        .where(PlanningTask.user_id == user_id)
        .values(outlook_event_id=None)
    )
    await session.execute(
        update(DeadlineTask)
        .where(DeadlineTask.created_by == user_id)
        .values(outlook_event_id=None)
    )
    await session.commit()

    logger.info(f"Unlinked Outlook calendar for user {user_id}")
    return True


async def cache_calendar_id(
    session: AsyncSession,
    binding: CalendarBinding,
    calendar_id: Optional[str],
) -> None:
    """Store the resolved dedicated calendar id on the binding."""
    if binding.calendar_id == calendar_id:
        return
    binding.calendar_id = calendar_id
    await session.commit()
    logger.debug(f"Cached calendar {calendar_id} for user {binding.user_id}")

"""
Credential/session resolution.

Turns a user's stored refresh token into a short-lived Graph session.
Sessions are never cached: each sync attempt resolves a fresh one, so a
rotated or revoked credential takes effect immediately.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from planner_sync.auth.bindings import get_binding
from planner_sync.auth.microsoft_oauth import TokenRefreshError, refresh_access_token
from planner_sync.models.bindings import CalendarBinding

logger = logging.getLogger(__name__)


@dataclass
class OutlookSession:
    """An authenticated Graph session for one user."""

    user_id: str
    access_token: str
    binding: CalendarBinding


async def resolve_session(
    db: AsyncSession,
    user_id: str,
) -> Optional[OutlookSession]:
    """
    Resolve an Outlook session for a user.

    "Not connected" is a normal outcome, not an error: callers treat None
    as a no-op. Repairing credentials is left to the account-linking flow.

    Args:
        db: Database session
        user_id: The user's ID

    Returns:
        OutlookSession, or None if the user is not connected or the
        token exchange failed
    """
    binding = await get_binding(db, user_id)
    if binding is None or not binding.is_connected:
        logger.debug(f"Outlook not connected for user {user_id}")
        return None

    try:
        tokens = await refresh_access_token(binding.refresh_token)
    except TokenRefreshError as e:
        logger.warning(f"Token refresh rejected for user {user_id}: {e.message}")
        return None
    except httpx.RequestError as e:
        logger.warning(f"Token endpoint unreachable for user {user_id}: {e}")
        return None

    return OutlookSession(
        user_id=user_id,
        access_token=tokens.access_token,
        binding=binding,
    )

"""
FastAPI dependency injection providers.

Provides the sync service, the dispatcher and the calling user.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException

from planner_sync.services.dispatcher import SyncDispatcher
from planner_sync.services.outlook_sync import OutlookSyncService, get_sync_service

logger = logging.getLogger(__name__)

# Global dispatcher instance (initialized at startup)
_dispatcher: Optional[SyncDispatcher] = None


def init_dispatcher(service: Optional[OutlookSyncService] = None) -> SyncDispatcher:
    """Create and start the dispatcher. Called from the app lifespan."""
    global _dispatcher
    _dispatcher = SyncDispatcher(service or get_sync_service())
    _dispatcher.start()
    return _dispatcher


async def shutdown_dispatcher() -> None:
    global _dispatcher
    if _dispatcher is not None:
        await _dispatcher.stop()
        _dispatcher = None


def get_service() -> OutlookSyncService:
    return get_sync_service()


def get_dispatcher() -> SyncDispatcher:
    """
    Dependency injection for the dispatcher.

    Raises:
        HTTPException: If the dispatcher is not running
    """
    if _dispatcher is None:
        logger.error("Sync dispatcher not initialized")
        raise HTTPException(
            status_code=503,
            detail="Service temporarily unavailable - sync dispatcher not running",
        )
    return _dispatcher


def peek_dispatcher() -> Optional[SyncDispatcher]:
    return _dispatcher


def get_user_id(
    x_user_id: Optional[str] = Header(None, description="User ID"),
) -> str:
    """
    Extract the calling user from the X-User-ID header.

    Raises:
        HTTPException: 401 if the header is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-ID header is required")
    return x_user_id.strip()

"""
Service layer for Planner Outlook Sync.

Provides:
- OutlookSyncService: single-task sync, bulk sync jobs, account linking
- SyncDispatcher: queued hand-off of single-task syncs
"""

from planner_sync.services.outlook_sync import (
    NOT_CONNECTED_ERROR,
    OutlookSyncService,
    get_sync_service,
    reset_sync_service,
)
from planner_sync.services.dispatcher import SyncDispatcher, SyncRequest

__all__ = [
    "NOT_CONNECTED_ERROR",
    "OutlookSyncService",
    "get_sync_service",
    "reset_sync_service",
    "SyncDispatcher",
    "SyncRequest",
]

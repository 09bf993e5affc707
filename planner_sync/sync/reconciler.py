"""
Orphan reconciliation.

Removes events from the dedicated calendar that no task references any
more, and drops task references to events that no longer exist. Only the
dedicated calendar is ever touched.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from planner_sync.config import get_settings
from planner_sync.integrations.outlook.client import (
    MAX_BATCH_SIZE,
    BatchRequest,
    OutlookCalendarClient,
    event_path,
)
from planner_sync.integrations.outlook.exceptions import (
    OutlookBatchError,
    OutlookCalendarError,
)
from planner_sync.sync.executor import chunked
from planner_sync.sync.tasks import clear_event_references, referenced_event_ids

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    remote_events: int = 0
    deleted: int = 0
    cleared_references: int = 0
    errors: list[str] = field(default_factory=list)


async def reconcile_orphans(
    client: OutlookCalendarClient,
    calendar_id: str,
    db: AsyncSession,
    user_id: str,
    batch_size: Optional[int] = None,
) -> ReconcileOutcome:
    """
    Make the dedicated calendar contain only events referenced by tasks.

    Local references are read before the calendar is listed, so an event
    created concurrently is at worst deleted and recreated on its next
    sync, never left behind.

    Args:
        client: Graph client for the user
        calendar_id: Dedicated calendar ID
        db: Database session
        user_id: Owner of the tasks
        batch_size: Deletes per $batch round trip

    Returns:
        ReconcileOutcome with counters and per-event error messages
    """
    size = min(batch_size or get_settings().sync_batch_size, MAX_BATCH_SIZE)
    outcome = ReconcileOutcome()

    referenced = await referenced_event_ids(db, user_id)
    remote_ids = {event["id"] for event in await client.list_events(calendar_id) if event.get("id")}
    outcome.remote_events = len(remote_ids)

    stale = referenced - remote_ids
    if stale:
        outcome.cleared_references = await clear_event_references(db, user_id, stale)

    orphans = sorted(remote_ids - referenced)
    logger.info(
        f"Reconciling calendar {calendar_id}: {len(remote_ids)} events, "
        f"{len(orphans)} orphaned, {len(stale)} stale references"
    )

    for chunk in chunked(orphans, size):
        await _delete_batch(client, calendar_id, chunk, outcome)

    return outcome


async def _delete_batch(
    client: OutlookCalendarClient,
    calendar_id: str,
    event_ids: Sequence[str],
    outcome: ReconcileOutcome,
) -> None:
    requests = [
        BatchRequest(id=str(index), method="DELETE", url=event_path(calendar_id, event_id))
        for index, event_id in enumerate(event_ids)
    ]

    try:
        responses = await client.batch(requests)
    except OutlookBatchError as e:
        logger.warning(f"Delete batch failed ({e.message}), deleting individually")
        await _delete_individually(client, calendar_id, event_ids, outcome)
        return

    for index, event_id in enumerate(event_ids):
        response = responses[str(index)]
        # already gone counts as deleted
        if response.ok or response.not_found:
            outcome.deleted += 1
        else:
            message = response.error().message
            logger.warning(f"Failed to delete orphaned event {event_id}: {message}")
            outcome.errors.append(f"event {event_id}: {message}")


async def _delete_individually(
    client: OutlookCalendarClient,
    calendar_id: str,
    event_ids: Sequence[str],
    outcome: ReconcileOutcome,
) -> None:
    results = await asyncio.gather(
        *(client.delete_event(calendar_id, event_id) for event_id in event_ids),
        return_exceptions=True,
    )

    for event_id, result in zip(event_ids, results):
        if isinstance(result, OutlookCalendarError):
            logger.warning(f"Failed to delete orphaned event {event_id}: {result.message}")
            outcome.errors.append(f"event {event_id}: {result.message}")
        elif isinstance(result, BaseException):
            raise result
        else:
            outcome.deleted += 1

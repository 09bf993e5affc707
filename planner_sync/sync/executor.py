"""
Event upsert execution.

Creates or updates the Outlook event mirroring each task and writes the
resulting event id back onto the task row. A reference that no longer
resolves remotely is dropped and the event is recreated.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Sequence

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
    OutlookCalendarNotFoundError,
    OutlookNotFoundError,
)
from planner_sync.sync.mapper import UnmappableTaskError, build_event
from planner_sync.sync.tasks import SchedulableTask, store_remote_id

logger = logging.getLogger(__name__)

# (task, Graph event body)
PreparedItem = tuple[SchedulableTask, dict]


@dataclass
class SyncOutcome:
    """Counters for one sync_many run."""

    synced: int = 0
    recreated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def task_error(task: SchedulableTask, message: str) -> str:
    return f"{task.source.value} task {task.id}: {message}"


def chunked(items: Sequence, size: int) -> list[Sequence]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class SyncExecutor:
    """
    Pushes tasks to one user's dedicated calendar.

    Not safe for concurrent use: the database session is shared and all
    writes to it happen sequentially.
    """

    def __init__(
        self,
        client: OutlookCalendarClient,
        calendar_id: str,
        db: AsyncSession,
        batch_size: Optional[int] = None,
        time_zone: Optional[str] = None,
    ):
        settings = get_settings()
        self._client = client
        self._calendar_id = calendar_id
        self._db = db
        self._batch_size = min(batch_size or settings.sync_batch_size, MAX_BATCH_SIZE)
        self._time_zone = time_zone or settings.timezone

    def _prepare(self, task: SchedulableTask) -> dict:
        return build_event(task).to_graph(self._time_zone)

    async def _push(self, task: SchedulableTask, body: dict) -> str:
        """Update the task's event, or create it when there is none (or it is gone)."""
        if task.remote_event_id:
            try:
                await self._client.update_event(self._calendar_id, task.remote_event_id, body)
                return task.remote_event_id
            except OutlookNotFoundError:
                logger.info(
                    f"Event {task.remote_event_id} for {task.source.value} task "
                    f"{task.id} no longer exists, recreating"
                )

        try:
            created = await self._client.create_event(self._calendar_id, body)
        except OutlookNotFoundError as e:
            raise OutlookCalendarNotFoundError(
                f"Calendar {self._calendar_id} not found",
                original_error=e,
                status_code=404,
            ) from e
        return created["id"]

    async def _record(self, task: SchedulableTask, event_id: str) -> None:
        if event_id != task.remote_event_id:
            await store_remote_id(self._db, task, event_id)

    async def sync_one(self, task: SchedulableTask) -> bool:
        """
        Create or update the event for a single task.

        Returns:
            True if the event now mirrors the task

        Raises:
            OutlookCalendarNotFoundError: If the dedicated calendar no longer exists
        """
        try:
            body = self._prepare(task)
        except UnmappableTaskError as e:
            logger.error(f"Cannot mirror task: {e}")
            return False

        try:
            event_id = await self._push(task, body)
        except OutlookCalendarNotFoundError:
            raise
        except OutlookCalendarError as e:
            logger.warning(f"Outlook sync failed for {task.source.value} task {task.id}: {e.message}")
            return False

        await self._record(task, event_id)
        return True

    async def sync_many(
        self,
        tasks: Sequence[SchedulableTask],
        on_progress: Optional[Callable[[SyncOutcome], None]] = None,
    ) -> SyncOutcome:
        """
        Mirror many tasks using $batch round trips.

        Items whose stored event turned out to be gone get their reference
        cleared and are recreated in a second pass. If a whole batch fails,
        its items are retried individually.

        Args:
            tasks: Tasks to mirror
            on_progress: Called with the running outcome after each batch

        Returns:
            SyncOutcome with counters and per-item error messages
        """
        outcome = SyncOutcome()

        prepared: list[PreparedItem] = []
        for task in tasks:
            try:
                prepared.append((task, self._prepare(task)))
            except UnmappableTaskError as e:
                logger.error(f"Cannot mirror task: {e}")
                outcome.skipped += 1
                outcome.errors.append(str(e))

        stale = await self._run_pass(prepared, outcome, on_progress)

        if stale:
            logger.info(f"Recreating {len(stale)} events missing from Outlook")
            synced_before = outcome.synced
            await self._run_pass(stale, outcome, on_progress)
            outcome.recreated += outcome.synced - synced_before

        return outcome

    async def _run_pass(
        self,
        items: Sequence[PreparedItem],
        outcome: SyncOutcome,
        on_progress: Optional[Callable[[SyncOutcome], None]],
    ) -> list[PreparedItem]:
        stale: list[PreparedItem] = []
        for chunk in chunked(items, self._batch_size):
            stale.extend(await self._sync_batch(chunk, outcome))
            if on_progress:
                on_progress(outcome)
        return stale

    async def _sync_batch(
        self,
        chunk: Sequence[PreparedItem],
        outcome: SyncOutcome,
    ) -> list[PreparedItem]:
        """Run one batch. Returns items to recreate (their reference is already cleared)."""
        requests = []
        for index, (task, body) in enumerate(chunk):
            if task.remote_event_id:
                url = event_path(self._calendar_id, task.remote_event_id)
                requests.append(BatchRequest(id=str(index), method="PATCH", url=url, body=body))
            else:
                url = event_path(self._calendar_id)
                requests.append(BatchRequest(id=str(index), method="POST", url=url, body=body))

        try:
            responses = await self._client.batch(requests)
        except OutlookBatchError as e:
            logger.warning(f"Batch of {len(chunk)} failed ({e.message}), retrying items individually")
            await self._sync_individually(chunk, outcome)
            return []

        stale: list[PreparedItem] = []
        for index, (task, body) in enumerate(chunk):
            response = responses[str(index)]

            if response.ok:
                event_id = task.remote_event_id or (response.body or {}).get("id")
                if not event_id:
                    outcome.errors.append(task_error(task, "created event has no id"))
                    continue
                await self._record(task, event_id)
                outcome.synced += 1
            elif response.not_found and task.remote_event_id:
                await store_remote_id(self._db, task, None)
                stale.append((replace(task, remote_event_id=None), body))
            else:
                error = response.error()
                logger.warning(f"Outlook sync failed for {task.source.value} task {task.id}: {error.message}")
                outcome.errors.append(task_error(task, error.message))

        return stale

    async def _sync_individually(
        self,
        chunk: Sequence[PreparedItem],
        outcome: SyncOutcome,
    ) -> None:
        results = await asyncio.gather(
            *(self._push(task, body) for task, body in chunk),
            return_exceptions=True,
        )

        for (task, _), result in zip(chunk, results):
            if isinstance(result, OutlookCalendarError):
                logger.warning(f"Outlook sync failed for {task.source.value} task {task.id}: {result.message}")
                outcome.errors.append(task_error(task, result.message))
            elif isinstance(result, BaseException):
                raise result
            else:
                if task.remote_event_id and result != task.remote_event_id:
                    outcome.recreated += 1
                await self._record(task, result)
                outcome.synced += 1

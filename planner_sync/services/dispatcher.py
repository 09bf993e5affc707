"""
Background hand-off for single-task syncs.

Task create/update/delete paths enqueue a request and return at once; a
worker drains the queue and calls the sync service. Identical requests
that are still waiting are coalesced, since the worker reads the task's
current state when it runs.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from planner_sync.services.outlook_sync import OutlookSyncService

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


@dataclass(frozen=True)
class SyncRequest:
    action: str  # "sync" or "delete"
    user_id: str
    target_id: str

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.action, self.user_id, self.target_id)


class SyncDispatcher:
    """Queue plus a single worker in front of OutlookSyncService."""

    def __init__(self, service: OutlookSyncService, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._service = service
        self._queue: asyncio.Queue[SyncRequest] = asyncio.Queue(maxsize=maxsize)
        self._pending: set[tuple[str, str, str]] = set()
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run())
        logger.info("Outlook sync dispatcher started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Outlook sync dispatcher stopped")

    def _enqueue(self, request: SyncRequest) -> bool:
        if request.key in self._pending:
            logger.debug(f"Coalesced {request.action} request for {request.target_id}")
            return False
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            logger.warning(
                f"Sync queue full, dropping {request.action} request for {request.target_id}; "
                f"the next bulk sync will pick it up"
            )
            return False
        self._pending.add(request.key)
        return True

    def enqueue_sync(self, task_id: str, user_id: str) -> bool:
        """
        Queue a task for mirroring.

        Returns:
            True if queued, False if an identical request is already waiting
            or the queue is full
        """
        return self._enqueue(SyncRequest("sync", user_id, str(task_id)))

    def enqueue_delete(self, user_id: str, event_id: str) -> bool:
        """Queue removal of an event whose task was deleted."""
        return self._enqueue(SyncRequest("delete", user_id, event_id))

    async def join(self) -> None:
        """Wait until every queued request has been handled."""
        await self._queue.join()

    async def _handle(self, request: SyncRequest) -> bool:
        if request.action == "delete":
            return await self._service.delete_task_event(request.user_id, request.target_id)
        return await self._service.sync_task(request.target_id, request.user_id)

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            # a change arriving while this one runs must be queued again
            self._pending.discard(request.key)
            try:
                await self._handle(request)
            except Exception:
                logger.exception(f"Unhandled error in {request.action} request for {request.target_id}")
            finally:
                self._queue.task_done()

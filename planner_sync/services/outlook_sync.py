"""
Outlook sync service.

Facade the rest of the application calls into. Single-task syncs are
best-effort and bounded by a timeout; a bulk sync runs as a background
job whose progress is tracked in memory. No operation raises towards the
caller for remote or credential problems: they are logged and reported
as False or as a failed job.
"""

import asyncio
import logging
import weakref
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from planner_sync.auth.bindings import clear_binding, get_binding, save_binding
from planner_sync.config import Settings, get_settings
from planner_sync.database import get_async_db_context
from planner_sync.integrations.outlook.client import OutlookCalendarClient
from planner_sync.integrations.outlook.exceptions import (
    OutlookCalendarError,
    OutlookCalendarNotFoundError,
)
from planner_sync.sync.calendars import ensure_calendar, ensure_categories
from planner_sync.sync.executor import SyncExecutor
from planner_sync.sync.jobs import SyncJob, SyncJobTracker
from planner_sync.sync.reconciler import reconcile_orphans
from planner_sync.sync.session import resolve_session
from planner_sync.sync.tasks import TaskSource, load_task, load_user_tasks

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]
ClientFactory = Callable[[str], OutlookCalendarClient]

NOT_CONNECTED_ERROR = "Outlook calendar is not connected"

# Singleton instance
_sync_service: Optional["OutlookSyncService"] = None


class OutlookSyncService:
    """
    Entry points for mirroring tasks into Outlook.

    Syncs of the same task are serialized in-process, so two concurrent
    triggers never both create an event for it.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        client_factory: Optional[ClientFactory] = None,
        settings: Optional[Settings] = None,
        tracker: Optional[SyncJobTracker] = None,
    ):
        self._settings = settings or get_settings()
        self._session_factory = session_factory or get_async_db_context
        self._client_factory = client_factory or OutlookCalendarClient
        self.tracker = tracker or SyncJobTracker(
            retention_seconds=self._settings.sync_job_retention_seconds
        )
        self._task_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._background: set[asyncio.Task] = set()

    def _lock_for(self, task_id: str) -> asyncio.Lock:
        lock = self._task_locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._task_locks[task_id] = lock
        return lock

    def _executor(self, client: OutlookCalendarClient, calendar_id: str, db: AsyncSession) -> SyncExecutor:
        return SyncExecutor(
            client,
            calendar_id,
            db,
            batch_size=self._settings.sync_batch_size,
            time_zone=self._settings.timezone,
        )

    async def _ensure_categories(self, client: OutlookCalendarClient) -> Optional[str]:
        """
        Create missing categories without letting a failure stop the sync.

        Events still sync without their category colours.

        Returns:
            Error message for the job log, or None on success
        """
        try:
            await ensure_categories(client)
        except OutlookCalendarError as e:
            logger.warning(f"Could not ensure Outlook categories: {e.message}")
            return f"categories: {e.message}"
        return None

    # -------------------- Single task --------------------

    async def sync_task(self, task_id: str, user_id: str) -> bool:
        """
        Mirror one task into the user's calendar.

        Args:
            task_id: Planning or deadline task ID
            user_id: Owner of the task

        Returns:
            True if the event now mirrors the task. False if the user is
            not connected, the task is unknown, or the sync failed or
            timed out.
        """
        try:
            return await asyncio.wait_for(
                self._sync_task(str(task_id), user_id),
                timeout=self._settings.sync_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Outlook sync of task {task_id} timed out after "
                f"{self._settings.sync_timeout_seconds}s"
            )
            return False
        except OutlookCalendarError as e:
            logger.warning(f"Outlook sync of task {task_id} failed: {e.message}")
            return False

    async def _sync_task(self, task_id: str, user_id: str) -> bool:
        async with self._lock_for(task_id):
            async with self._session_factory() as db:
                outlook = await resolve_session(db, user_id)
                if outlook is None:
                    return False

                task = await load_task(db, task_id)
                if task is None:
                    logger.info(f"Task {task_id} not found, nothing to sync")
                    return False
                if task.user_id != user_id:
                    logger.warning(f"Task {task_id} is not owned by user {user_id}")
                    return False

                async with self._client_factory(outlook.access_token) as client:
                    calendar_id = await ensure_calendar(client, db, outlook.binding)
                    await self._ensure_categories(client)
                    try:
                        return await self._executor(client, calendar_id, db).sync_one(task)
                    except OutlookCalendarNotFoundError:
                        logger.warning(
                            f"Calendar {calendar_id} of user {user_id} no longer exists, re-resolving"
                        )
                    calendar_id = await ensure_calendar(client, db, outlook.binding, verify=True)
                    return await self._executor(client, calendar_id, db).sync_one(task)

    async def delete_task_event(self, user_id: str, event_id: str) -> bool:
        """
        Remove a mirrored event after its task was deleted locally.

        An event that is already gone counts as deleted.
        """
        try:
            return await asyncio.wait_for(
                self._delete_task_event(user_id, event_id),
                timeout=self._settings.sync_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Deleting Outlook event {event_id} timed out")
            return False
        except OutlookCalendarError as e:
            logger.warning(f"Deleting Outlook event {event_id} failed: {e.message}")
            return False

    async def _delete_task_event(self, user_id: str, event_id: str) -> bool:
        async with self._session_factory() as db:
            outlook = await resolve_session(db, user_id)
            if outlook is None:
                return False
            calendar_id = outlook.binding.calendar_id
            if not calendar_id:
                logger.info(f"No dedicated calendar for user {user_id}, nothing to delete")
                return False

            async with self._client_factory(outlook.access_token) as client:
                await client.delete_event(calendar_id, event_id)
            return True

    # -------------------- Bulk sync --------------------

    def start_bulk_sync(self, user_id: str) -> str:
        """
        Start a full sync for a user in the background.

        Must be called from within a running event loop.

        Returns:
            Job ID to poll with get_job_status
        """
        job_id = self.tracker.create_job(user_id)
        task = asyncio.create_task(self.run_bulk_sync(user_id, job_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return job_id

    async def run_bulk_sync(self, user_id: str, job_id: str) -> None:
        """
        Mirror all of a user's tasks and remove orphaned events.

        Phases: planning tasks, deadline tasks, then reconciliation.
        """
        try:
            await self._run_bulk_sync(user_id, job_id)
        except Exception as e:
            logger.exception(f"Bulk sync job {job_id} for user {user_id} failed")
            self.tracker.fail_job(job_id, str(e) or type(e).__name__)

    async def _run_bulk_sync(self, user_id: str, job_id: str) -> None:
        tracker = self.tracker

        async with self._session_factory() as db:
            outlook = await resolve_session(db, user_id)
            if outlook is None:
                tracker.fail_job(job_id, NOT_CONNECTED_ERROR)
                return

            async with self._client_factory(outlook.access_token) as client:
                calendar_id = await ensure_calendar(client, db, outlook.binding, verify=True)
                category_error = await self._ensure_categories(client)
                if category_error:
                    tracker.update_progress(job_id, errors=[category_error])

                planning = await load_user_tasks(db, user_id, TaskSource.PLANNING)
                deadlines = await load_user_tasks(db, user_id, TaskSource.DEADLINE)
                tracker.update_progress(job_id, total_tasks=len(planning) + len(deadlines))

                executor = self._executor(client, calendar_id, db)

                outcome = await executor.sync_many(
                    planning,
                    on_progress=lambda o: tracker.update_progress(job_id, synced_planning_tasks=o.synced),
                )
                tracker.update_progress(job_id, errors=outcome.errors)

                outcome = await executor.sync_many(
                    deadlines,
                    on_progress=lambda o: tracker.update_progress(job_id, synced_deadline_tasks=o.synced),
                )
                tracker.update_progress(job_id, errors=outcome.errors)

                reconciled = await reconcile_orphans(
                    client,
                    calendar_id,
                    db,
                    user_id,
                    batch_size=self._settings.sync_batch_size,
                )
                tracker.update_progress(
                    job_id,
                    deleted_events=reconciled.deleted,
                    errors=reconciled.errors,
                )

        tracker.complete_job(job_id)

    def get_job_status(self, job_id: str) -> Optional[SyncJob]:
        return self.tracker.get_job(job_id)

    async def wait_for_background(self) -> None:
        """Wait until all running bulk sync jobs have finished."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # -------------------- Account linking --------------------

    async def link_account(
        self,
        user_id: str,
        refresh_token: str,
        email: Optional[str] = None,
    ) -> str:
        """
        Store a credential obtained by the consent flow and start a bulk sync.

        Returns:
            Job ID of the initial bulk sync
        """
        async with self._session_factory() as db:
            await save_binding(db, user_id, refresh_token, email=email)
        return self.start_bulk_sync(user_id)

    async def unlink_account(self, user_id: str) -> bool:
        """
        Disconnect a user's Outlook account.

        Events already in the dedicated calendar are left in place; the
        user's task references to them are cleared.

        Returns:
            True if an account was linked
        """
        async with self._session_factory() as db:
            return await clear_binding(db, user_id)

    async def is_connected(self, user_id: str) -> bool:
        async with self._session_factory() as db:
            binding = await get_binding(db, user_id)
            return binding is not None and binding.is_connected


def get_sync_service() -> OutlookSyncService:
    """
    Get the sync service singleton.

    Returns:
        OutlookSyncService configured from settings
    """
    global _sync_service

    if _sync_service is None:
        _sync_service = OutlookSyncService()
        logger.info("Outlook sync service initialized")

    return _sync_service


def reset_sync_service():
    """Reset the sync service singleton (useful for testing)."""
    global _sync_service
    _sync_service = None

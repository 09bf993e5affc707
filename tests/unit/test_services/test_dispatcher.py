"""Tests for the queued sync dispatcher."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from planner_sync.services.dispatcher import SyncDispatcher


@pytest.fixture
def sync_service():
    service = MagicMock()
    service.sync_task = AsyncMock(return_value=True)
    service.delete_task_event = AsyncMock(return_value=True)
    return service


@pytest_asyncio.fixture
async def dispatcher(sync_service):
    dispatcher = SyncDispatcher(sync_service)
    dispatcher.start()
    yield dispatcher
    await dispatcher.stop()


class TestSyncDispatcher:
    @pytest.mark.asyncio
    async def test_sync_request_reaches_service(self, dispatcher, sync_service):
        assert dispatcher.enqueue_sync("task-1", "user-1") is True
        await dispatcher.join()

        sync_service.sync_task.assert_awaited_once_with("task-1", "user-1")

    @pytest.mark.asyncio
    async def test_delete_request_reaches_service(self, dispatcher, sync_service):
        assert dispatcher.enqueue_delete("user-1", "evt-1") is True
        await dispatcher.join()

        sync_service.delete_task_event.assert_awaited_once_with("user-1", "evt-1")

    @pytest.mark.asyncio
    async def test_pending_duplicates_coalesced(self, dispatcher, sync_service):
        assert dispatcher.enqueue_sync("task-1", "user-1") is True
        assert dispatcher.enqueue_sync("task-1", "user-1") is False
        assert dispatcher.enqueue_sync("task-2", "user-1") is True
        await dispatcher.join()

        assert sync_service.sync_task.await_count == 2

    @pytest.mark.asyncio
    async def test_same_task_can_be_queued_again_after_handling(self, dispatcher, sync_service):
        dispatcher.enqueue_sync("task-1", "user-1")
        await dispatcher.join()

        assert dispatcher.enqueue_sync("task-1", "user-1") is True
        await dispatcher.join()

        assert sync_service.sync_task.await_count == 2

    @pytest.mark.asyncio
    async def test_worker_survives_unexpected_error(self, dispatcher, sync_service):
        sync_service.sync_task.side_effect = [RuntimeError("boom"), True]

        dispatcher.enqueue_sync("task-1", "user-1")
        dispatcher.enqueue_sync("task-2", "user-1")
        await dispatcher.join()

        assert sync_service.sync_task.await_count == 2
        assert dispatcher.running is True

    @pytest.mark.asyncio
    async def test_full_queue_drops_request(self, sync_service):
        dispatcher = SyncDispatcher(sync_service, maxsize=1)

        assert dispatcher.enqueue_sync("task-1", "user-1") is True
        assert dispatcher.enqueue_sync("task-2", "user-1") is False

    @pytest.mark.asyncio
    async def test_stop(self, sync_service):
        dispatcher = SyncDispatcher(sync_service)
        dispatcher.start()
        assert dispatcher.running is True

        await dispatcher.stop()

        assert dispatcher.running is False

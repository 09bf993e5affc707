"""
Outlook sync API routes.

1. /outlook/status - Is the user's Outlook calendar connected
2. /outlook/link - Store a credential and start the initial sync
3. /outlook/disconnect - Unlink the account
4. /outlook/sync - Start a bulk sync job / poll its status
5. /outlook/tasks/{task_id}/sync - Queue a single task sync
6. /outlook/events/{event_id} - Queue removal of a mirrored event

The Microsoft consent screen and code exchange happen outside this
service; /outlook/link receives the resulting refresh token.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from planner_sync.api.dependencies import get_dispatcher, get_service, get_user_id
from planner_sync.api.models import (
    DisconnectResponse,
    LinkAccountRequest,
    LinkAccountResponse,
    OutlookStatusResponse,
    QueuedResponse,
    SyncJobResponse,
    SyncStartedResponse,
)
from planner_sync.auth.bindings import get_binding
from planner_sync.database import get_async_session
from planner_sync.services.dispatcher import SyncDispatcher
from planner_sync.services.outlook_sync import NOT_CONNECTED_ERROR, OutlookSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/outlook", tags=["outlook"])


@router.get("/status", response_model=OutlookStatusResponse)
async def outlook_status(
    user_id: str = Depends(get_user_id),
    session: AsyncSession = Depends(get_async_session),
) -> OutlookStatusResponse:
    """Check whether the user has a connected Outlook calendar."""
    binding = await get_binding(session, user_id)
    if binding is None or not binding.is_connected:
        return OutlookStatusResponse(connected=False)

    return OutlookStatusResponse(
        connected=True,
        email=binding.email,
        calendar_id=binding.calendar_id,
    )


@router.post(
    "/link",
    response_model=LinkAccountResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def link_outlook(
    request: LinkAccountRequest,
    user_id: str = Depends(get_user_id),
    service: OutlookSyncService = Depends(get_service),
) -> LinkAccountResponse:
    """
    Link an Outlook account and start the initial bulk sync.

    Returns:
        Job ID of the initial sync
    """
    job_id = await service.link_account(user_id, request.refresh_token, email=request.email)
    logger.info(f"Outlook linked for user {user_id}, initial sync job {job_id}")

    return LinkAccountResponse(
        success=True,
        job_id=job_id,
        message="Outlook calendar connected, initial sync started",
    )


@router.post("/disconnect", response_model=DisconnectResponse)
async def disconnect_outlook(
    user_id: str = Depends(get_user_id),
    service: OutlookSyncService = Depends(get_service),
) -> DisconnectResponse:
    """
    Disconnect the user's Outlook calendar.

    Events already mirrored stay in Outlook; the link to them is dropped.
    """
    cleared = await service.unlink_account(user_id)
    if not cleared:
        return DisconnectResponse(success=False, message="No Outlook calendar was connected")

    return DisconnectResponse(success=True, message="Outlook calendar disconnected")


@router.post(
    "/sync",
    response_model=SyncStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_sync(
    user_id: str = Depends(get_user_id),
    session: AsyncSession = Depends(get_async_session),
    service: OutlookSyncService = Depends(get_service),
) -> SyncStartedResponse:
    """Start a bulk sync of all the user's tasks."""
    binding = await get_binding(session, user_id)
    if binding is None or not binding.is_connected:
        raise HTTPException(status_code=400, detail=NOT_CONNECTED_ERROR)

    job_id = service.start_bulk_sync(user_id)
    return SyncStartedResponse(job_id=job_id, message="Sync started")


@router.get("/sync/{job_id}", response_model=SyncJobResponse)
async def get_sync_status(
    job_id: str,
    user_id: str = Depends(get_user_id),
    service: OutlookSyncService = Depends(get_service),
) -> SyncJobResponse:
    """
    Poll a bulk sync job.

    Jobs are kept for a few minutes after they finish.
    """
    job = service.get_job_status(job_id)
    # another user's job is reported as missing
    if job is None or job.user_id != user_id:
        raise HTTPException(status_code=404, detail=f"Sync job {job_id} not found")

    return SyncJobResponse.from_job(job)


@router.post(
    "/tasks/{task_id}/sync",
    response_model=QueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_task_sync(
    task_id: str,
    user_id: str = Depends(get_user_id),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
) -> QueuedResponse:
    """Queue a task to be mirrored after it was created or edited."""
    queued = dispatcher.enqueue_sync(task_id, user_id)
    return QueuedResponse(
        queued=queued,
        target_id=task_id,
        message="Task sync queued" if queued else "Task sync already pending",
    )


@router.delete(
    "/events/{event_id}",
    response_model=QueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_event_delete(
    event_id: str,
    user_id: str = Depends(get_user_id),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
) -> QueuedResponse:
    """Queue removal of the event that mirrored a deleted task."""
    queued = dispatcher.enqueue_delete(user_id, event_id)
    return QueuedResponse(
        queued=queued,
        target_id=event_id,
        message="Event removal queued" if queued else "Event removal already pending",
    )

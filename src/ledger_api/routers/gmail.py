"""FastAPI router for Gmail watch registration."""

import logging

from fastapi import APIRouter, HTTPException, status
from starlette.concurrency import run_in_threadpool

from ledger_api.container import ContainerDep
from ledger_api.routers.dependencies import CurrentUserId, WatchScheduler
from ledger_api.schemas.gmail import WatchRequest, WatchResponse, WatchStopResponse
from ledger_api.services.gmail_client import GmailAPIError, GmailCredentialsMissingError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/watch", response_model=WatchResponse)
async def start_watch(
    user_id: CurrentUserId,
    container: ContainerDep,
    scheduler: WatchScheduler,
    request: WatchRequest | None = None,
) -> WatchResponse:
    """Start watching the user's mailbox and schedule periodic renewal.

    Resets the stored history cursor to the one returned by the watch call.
    """
    request = request or WatchRequest()
    try:
        registration = await run_in_threadpool(
            container.watch_service.start_watch, user_id, request.topic_name, request.label_ids
        )
    except GmailCredentialsMissingError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No Gmail OAuth token found; authorize Gmail access first",
        ) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except GmailAPIError as e:
        logger.error("Failed to start watch for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to start watch: {e}"
        ) from e

    scheduler.start(user_id, request.topic_name, request.label_ids)
    return WatchResponse(
        history_id=registration.history_id,
        expiration=registration.expiration,
        resync_scheduled=True,
    )


@router.post("/watch/stop", response_model=WatchStopResponse)
async def stop_watch(
    user_id: CurrentUserId,
    container: ContainerDep,
    scheduler: WatchScheduler,
) -> WatchStopResponse:
    """Stop watching the user's mailbox and cancel renewal."""
    resync_cancelled = scheduler.stop(user_id)
    try:
        await run_in_threadpool(container.watch_service.stop_watch, user_id)
    except GmailCredentialsMissingError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No Gmail OAuth token found"
        ) from e
    except GmailAPIError as e:
        logger.error("Failed to stop watch for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to stop watch: {e}"
        ) from e
    return WatchStopResponse(stopped=True, resync_cancelled=resync_cancelled)

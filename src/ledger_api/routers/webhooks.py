"""FastAPI router for the Gmail push-notification webhook.

The provider redelivers on any non-2xx response. Only an envelope that can
never be decoded is rejected; processing failures are acknowledged and
recovered through the stored history cursor instead.
"""

import json
import logging

from fastapi import APIRouter, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from ledger_api.container import ContainerDep
from ledger_api.core.timeutils import utcnow
from ledger_api.schemas.webhooks import (
    MessageErrorResponse,
    WebhookAckResponse,
    WebhookHealthResponse,
)
from ledger_api.services.notification_ingestion_service import (
    MalformedNotificationError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=WebhookAckResponse)
async def receive_gmail_notification(request: Request, container: ContainerDep) -> WebhookAckResponse:
    """Receive a Gmail Pub/Sub push notification."""
    try:
        envelope = json.loads(await request.body() or b"null")
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid message format"
        ) from e

    try:
        outcome = await run_in_threadpool(
            container.notification_service.handle_push,
            envelope if isinstance(envelope, dict) else {},
        )
    except MalformedNotificationError as e:
        logger.warning("Rejected malformed Gmail notification: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception:
        logger.exception("Error processing Gmail webhook")
        return WebhookAckResponse(success=False, message="Failed to process webhook")

    message_id = outcome.notification.message_id
    if outcome.status == "unknown_account":
        return WebhookAckResponse(
            success=False,
            message="No mailbox linked for this email address",
            message_id=message_id,
        )
    if outcome.status == "lookup_failed" or outcome.result is None:
        return WebhookAckResponse(success=False, message="Database error", message_id=message_id)

    result = outcome.result
    return WebhookAckResponse(
        success=result.success,
        message="Gmail notification received and processed",
        message_id=message_id,
        processed_count=result.processed_count,
        failed_count=result.failed_count,
        skipped_count=result.skipped_count,
        errors=[
            MessageErrorResponse(message_id=e.message_id, stage=e.stage.value, error=e.error)
            for e in result.errors
        ],
    )


@router.get("/health", response_model=WebhookHealthResponse)
async def gmail_webhook_health() -> WebhookHealthResponse:
    """Health check for the Gmail webhook."""
    return WebhookHealthResponse(
        status="ok", service="gmail-webhook", timestamp=utcnow().isoformat() + "Z"
    )

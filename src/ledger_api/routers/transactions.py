"""FastAPI router for transaction ingestion endpoints."""

from fastapi import APIRouter, HTTPException, status

from ledger_api.container import ContainerDep
from ledger_api.routers.dependencies import CurrentUserId
from ledger_api.schemas.transactions import (
    SmsTransactionCreate,
    TransactionResponse,
)
from ledger_api.services.sms_ingestion_service import NotATransactionError

router = APIRouter()


@router.post("/sms", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def create_transaction_from_sms(
    request: SmsTransactionCreate,
    user_id: CurrentUserId,
    container: ContainerDep,
) -> TransactionResponse:
    """Extract a transaction from an SMS and store it."""
    try:
        recorded = container.sms_service.ingest(user_id, request.sms_body, sender=request.sender)
    except NotATransactionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return TransactionResponse.model_validate(recorded.transaction)

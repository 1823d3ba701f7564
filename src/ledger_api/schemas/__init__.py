"""Pydantic schemas for API request/response validation."""

from ledger_api.schemas.extraction import ExtractionPayload, TransactionPayload
from ledger_api.schemas.gmail import WatchRequest, WatchResponse, WatchStopResponse
from ledger_api.schemas.transactions import (
    SmsTransactionCreate,
    TransactionCategoryResponse,
    TransactionResponse,
)
from ledger_api.schemas.webhooks import (
    MessageErrorResponse,
    PubSubEnvelope,
    PubSubMessage,
    WebhookAckResponse,
    WebhookHealthResponse,
)

__all__ = [
    "ExtractionPayload",
    "MessageErrorResponse",
    "PubSubEnvelope",
    "PubSubMessage",
    "SmsTransactionCreate",
    "TransactionCategoryResponse",
    "TransactionPayload",
    "TransactionResponse",
    "WatchRequest",
    "WatchResponse",
    "WatchStopResponse",
    "WebhookAckResponse",
    "WebhookHealthResponse",
]

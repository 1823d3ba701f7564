"""Pydantic schemas for transaction endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SmsTransactionCreate(BaseModel):
    """Request to extract a transaction from an SMS."""

    model_config = ConfigDict(populate_by_name=True)

    sms_body: str = Field(..., min_length=1, max_length=5000, alias="smsBody")
    sender: str | None = Field(default=None, max_length=255)


class TransactionCategoryResponse(BaseModel):
    """Category attached to a transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    icon: str | None = None


class TransactionResponse(BaseModel):
    """A stored transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    category_id: str | None
    amount: Decimal
    type: str
    currency: str | None
    merchant: str | None
    account_number: str | None
    bank_name: str | None
    transaction_date: datetime | None
    remarks: str | None
    email_id: str | None
    ai_confidence: Decimal | None
    is_ai_created: bool
    created_at: datetime
    updated_at: datetime
    category: TransactionCategoryResponse | None = None

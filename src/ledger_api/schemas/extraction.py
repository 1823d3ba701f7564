"""Pydantic schemas for the language-model extraction tool call.

Field aliases are the camelCase names the model is asked to produce; the
category payloads also accept ``id`` in place of ``categoryId`` because models
return either.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ToolPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SelectExistingPayload(_ToolPayload):
    """Model picked one of the supplied categories."""

    action: Literal["select_existing"]
    category_id: str | None = Field(
        default=None,
        alias="categoryId",
        description="The exact category id from the AVAILABLE CATEGORIES list",
    )
    id: str | None = Field(default=None, description="Alternate name for categoryId")
    category_name: str | None = Field(
        default=None, alias="categoryName", description="Name of the chosen category"
    )
    reason: str | None = Field(
        default=None, description="Brief explanation of why this category was chosen"
    )

    @property
    def references(self) -> list[str]:
        """Non-empty references in resolution order: id fields, then the name."""
        candidates = (self.category_id, self.id, self.category_name)
        return [c.strip() for c in candidates if c and c.strip()]


class CreateNewPayload(_ToolPayload):
    """Model asked for a new category because none of the supplied ones fit."""

    action: Literal["create_new"]
    new_category_name: str = Field(
        alias="newCategoryName",
        min_length=2,
        max_length=50,
        description="Name for the new category (2-50 characters, specific but reusable)",
    )
    new_category_icon: str = Field(
        default="📁",
        alias="newCategoryIcon",
        description="A single emoji that represents this category",
    )
    reason: str | None = Field(
        default=None, description="Why a new category is needed instead of an existing one"
    )


class UncategorizedPayload(_ToolPayload):
    """Model could not determine a category."""

    action: Literal["uncategorized"]
    category_id: str | None = Field(
        default=None,
        alias="categoryId",
        description="The id of the Uncategorized category from the list",
    )
    id: str | None = Field(default=None, description="Alternate name for categoryId")

    @property
    def references(self) -> list[str]:
        candidates = (self.category_id, self.id)
        return [c.strip() for c in candidates if c and c.strip()]


CategoryPayload = Annotated[
    SelectExistingPayload | CreateNewPayload | UncategorizedPayload,
    Field(discriminator="action"),
]


class TransactionPayload(_ToolPayload):
    """Transaction fields extracted from a notification."""

    amount: float = Field(description="Transaction amount as a positive number")
    type: Literal["debit", "credit"] = Field(
        description="'debit' if money was spent or withdrawn, 'credit' if received"
    )
    merchant: str | None = Field(
        default=None, description="Merchant/payee name if identifiable, null otherwise"
    )
    account_last_four: str | None = Field(
        default=None,
        alias="accountLastFour",
        description="Last 4 digits of the account/card number if present",
    )
    bank_name: str | None = Field(
        default=None,
        alias="bankName",
        description=(
            "Full official bank name with proper spacing as it appears in the message "
            '(e.g. "HDFC Bank", "State Bank of India"); no abbreviations'
        ),
    )
    date: str | None = Field(
        default=None, description="Transaction date in ISO format (YYYY-MM-DD) if present"
    )
    time: str | None = Field(default=None, description="Transaction time (HH:MM:SS) if present")
    remarks: str | None = Field(
        default=None,
        description=(
            "Complete remarks/description/narration text as it appears in the message, "
            "including merchant details, location and reference numbers"
        ),
    )
    category: CategoryPayload = Field(
        description=(
            "Category selection: select an existing category by id, create a new "
            "category if none fit, or mark as uncategorized"
        )
    )
    confidence: float = Field(
        default=0.5, description="Confidence score for the extraction between 0 and 1"
    )

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ExtractionPayload(_ToolPayload):
    """Top-level tool input returned by the model."""

    is_transaction: bool = Field(
        alias="isTransaction",
        description="Whether this message is a bank transaction notification",
    )
    transaction: TransactionPayload | None = Field(
        default=None,
        description="Extracted transaction data, null if not a transaction message",
    )

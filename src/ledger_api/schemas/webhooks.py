"""Pydantic schemas for push-notification webhooks."""

from pydantic import BaseModel, ConfigDict, Field


class PubSubMessage(BaseModel):
    """The ``message`` object of a Pub/Sub push request."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    data: str | None = None
    message_id: str | None = Field(default=None, alias="messageId")
    publish_time: str | None = Field(default=None, alias="publishTime")
    attributes: dict[str, str] | None = None


class PubSubEnvelope(BaseModel):
    """A Pub/Sub push request body."""

    model_config = ConfigDict(extra="allow")

    message: PubSubMessage | None = None
    subscription: str | None = None


class MessageErrorResponse(BaseModel):
    """One per-message failure in a processed batch."""

    message_id: str = Field(serialization_alias="messageId")
    stage: str
    error: str


class WebhookAckResponse(BaseModel):
    """Acknowledgment body returned to the push provider."""

    success: bool
    message: str
    message_id: str | None = Field(default=None, serialization_alias="messageId")
    processed_count: int = Field(default=0, serialization_alias="processedCount")
    failed_count: int = Field(default=0, serialization_alias="failedCount")
    skipped_count: int = Field(default=0, serialization_alias="skippedCount")
    errors: list[MessageErrorResponse] = Field(default_factory=list)


class WebhookHealthResponse(BaseModel):
    """Webhook health check body."""

    status: str
    service: str
    timestamp: str

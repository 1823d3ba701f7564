"""Pydantic schemas for Gmail watch endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class WatchRequest(BaseModel):
    """Request to start watching a mailbox."""

    model_config = ConfigDict(populate_by_name=True)

    topic_name: str | None = Field(
        default=None, alias="topicName", description="Pub/Sub topic; defaults to the configured one"
    )
    label_ids: list[str] | None = Field(
        default=None, alias="labelIds", description="Label ids to watch, e.g. INBOX"
    )


class WatchResponse(BaseModel):
    """Result of registering a watch."""

    history_id: str = Field(serialization_alias="historyId")
    expiration: datetime | None = None
    resync_scheduled: bool = Field(default=False, serialization_alias="resyncScheduled")


class WatchStopResponse(BaseModel):
    """Result of stopping a watch."""

    stopped: bool
    resync_cancelled: bool = Field(default=False, serialization_alias="resyncCancelled")

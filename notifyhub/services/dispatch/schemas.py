"""Delivery record and response schemas for the dispatch service."""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class Channel(str, Enum):
    """Delivery channels the builder knows how to normalize."""

    IN_APP = "in_app"
    EMAIL = "email"
    SLACK = "slack"


class InAppBody(BaseModel):
    message: str


class EmailBody(BaseModel):
    """Email extras are passed through without format validation."""

    message: str
    subject: str | None = None
    receiver_email: str | None = None


class SlackBody(BaseModel):
    message: str
    slack: str | None = None


class DeliveryRecord(BaseModel):
    """One channel-specific unit of work derived from a notification request."""

    notification_id: str
    user_id: str
    channel: Channel
    body: dict[str, Any]

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")


class DispatchResult(BaseModel):
    """Per-channel response entry; `notification_id` is None for dropped channels."""

    channel: str
    notification_id: str | None

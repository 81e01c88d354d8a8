"""Status update request schemas accepted over HTTP and websocket."""

from pydantic import BaseModel, Field


class StatusUpdatePayload(BaseModel):
    notification_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    status: str


class StatusUpdateRequest(BaseModel):
    """Body of `POST /notifications/status` and of websocket update messages."""

    payload: StatusUpdatePayload

"""Turn one notification request into per-channel delivery records."""

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from notifyhub.common.errors import DeliveryValidationError
from notifyhub.services.dispatch.schemas import Channel, DeliveryRecord, EmailBody, InAppBody, SlackBody


BODY_SCHEMAS: dict[Channel, type[BaseModel]] = {
    Channel.IN_APP: InAppBody,
    Channel.EMAIL: EmailBody,
    Channel.SLACK: SlackBody,
}


def _known_channel(name: str) -> Channel | None:
    try:
        return Channel(name)
    except ValueError:
        return None


def build_delivery_records(
    user_id: Any, channels: Any
) -> list[tuple[str, DeliveryRecord | None]]:
    """Validate a request and return `(channel, record)` pairs in key order.

    All records share a single freshly generated `notification_id`. Unknown
    channel types yield `(channel, None)`: the record is dropped rather than
    failing the request. Raises `DeliveryValidationError` when `user_id` or
    `channels` is missing, or a known channel body lacks a required field.
    """

    if not isinstance(user_id, str) or not user_id:
        raise DeliveryValidationError("user_id is required")
    if not isinstance(channels, Mapping) or not channels:
        raise DeliveryValidationError("at least one channel is required")

    notification_id = str(uuid4())
    planned: list[tuple[str, DeliveryRecord | None]] = []
    for name, raw_body in channels.items():
        channel = _known_channel(name)
        if channel is None:
            planned.append((name, None))
            continue
        if not isinstance(raw_body, Mapping):
            raise DeliveryValidationError(f"{name} body must be an object")
        try:
            body = BODY_SCHEMAS[channel].model_validate(dict(raw_body))
        except ValidationError as exc:
            missing = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
            raise DeliveryValidationError(f"{name} body is invalid: {missing or exc}") from exc
        planned.append(
            (
                name,
                DeliveryRecord(
                    notification_id=notification_id,
                    user_id=user_id,
                    channel=channel,
                    body=body.model_dump(),
                ),
            )
        )
    return planned

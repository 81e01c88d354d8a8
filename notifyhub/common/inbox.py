"""Consumer-side dedupe for at-least-once Kafka delivery.

Every consuming service records the envelopes it has applied so a redelivered
message is skipped instead of materializing a second row.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint, func, select
from sqlalchemy.orm import Mapped, mapped_column

from notifyhub.common.db import Base
from notifyhub.common.logging import logger
from notifyhub.common.metrics import duplicate_events_skipped_total


class InboxEvent(Base):
    """Deduplication rows for consumed envelopes, scoped per consuming service."""

    __tablename__ = "inbox_events"
    __table_args__ = (UniqueConstraint("event_id", "consumed_by_service", name="uq_inbox_consumer"),)

    event_id: Mapped[str] = mapped_column(String, primary_key=True)
    consumed_by_service: Mapped[str] = mapped_column(String, primary_key=True)
    consumed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


def inbox_seen(db, event_id: str, service_name: str) -> bool:
    return (
        db.execute(
            select(InboxEvent).where(
                InboxEvent.event_id == event_id,
                InboxEvent.consumed_by_service == service_name,
            )
        ).scalar_one_or_none()
        is not None
    )


def mark_inbox(db, event_id: str, service_name: str) -> None:
    db.add(InboxEvent(event_id=event_id, consumed_by_service=service_name))


def skip_if_seen(db, event, service_name: str, topic: str) -> bool:
    """Return True (and count the skip) when `event` was already applied."""

    if not inbox_seen(db, event.event_id, service_name):
        return False
    logger.info("duplicate event skipped topic=%s event_id=%s", topic, event.event_id)
    duplicate_events_skipped_total.labels(service=service_name, topic=topic).inc()
    return True

"""Audit trail: status-change publisher plus the log-writing consumer.

`AuditLogger` is what the transition engine calls (fire-and-forget);
`AuditService` consumes delivery and status-change events and appends
`NotificationLog` rows, dead-lettering malformed delivery records.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete

from notifyhub.common.config import settings
from notifyhub.common.events import EventEnvelope, consume_forever
from notifyhub.common.inbox import mark_inbox, skip_if_seen
from notifyhub.common.logging import logger, trace_id_ctx
from notifyhub.common.metrics import (
    audit_dispatch_failures_total,
    dlq_published_total,
    notification_logs_purged_total,
)
from notifyhub.services.audit.models import NotificationLog


STATUS_CHANGED_EVENT_TYPE = "notification.status_changed"
DLQ_EVENT_TYPE = "notifications.dlq"
CREATED = "created"


class AuditLogger:
    """Hands status-change records to the audit topic; never raises."""

    def __init__(self, bus, topic: str | None = None, service_name: str = "realtime") -> None:
        self.bus = bus
        self.topic = topic or settings.audit_topic
        self.service_name = service_name

    async def append(self, record: dict) -> None:
        """Publish one `{status, user_id, message, notification_id}` record."""

        try:
            event = EventEnvelope(
                event_type=STATUS_CHANGED_EVENT_TYPE,
                aggregate_id=record["notification_id"],
                trace_id=trace_id_ctx.get(),
                payload=record,
            )
            await self.bus.publish(self.topic, event, key=record["notification_id"])
        except Exception as exc:
            logger.error("audit dispatch failed notification_id=%s error=%s", record.get("notification_id"), exc)
            audit_dispatch_failures_total.labels(service=self.service_name).inc()
            return
        logger.info("audit event sent notification_id=%s status=%s", record["notification_id"], record.get("status"))


def _validate_delivery_payload(payload: dict) -> dict:
    """Schema checks for a delivery record before it is logged."""

    for field in ("notification_id", "user_id", "channel"):
        value = payload.get(field)
        if not isinstance(value, str) or not value:
            raise ValueError(f"invalid {field}")
    body = payload.get("body")
    if not isinstance(body, dict) or not isinstance(body.get("message"), str):
        raise ValueError("invalid body.message")
    return body


class AuditService:
    """Appends notification log rows from delivery and status-change events."""

    def __init__(
        self,
        session_factory,
        bus,
        service_name: str = "audit",
        ttl_days: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.bus = bus
        self.service_name = service_name
        self.ttl_days = ttl_days if ttl_days is not None else settings.log_ttl_days

    def _expiry(self, now: datetime) -> int:
        return int((now + timedelta(days=self.ttl_days)).timestamp())

    async def _publish_dlq(
        self,
        reason: str,
        error_type: str,
        source_event: EventEnvelope | None = None,
        raw: bytes | None = None,
    ) -> None:
        """Publish a DLQ envelope carrying the failed event for replay."""

        payload = {
            "reason": reason,
            "error_type": error_type,
            "retryable": False,
            "source": self.service_name,
        }
        if source_event is not None:
            payload["source_event_id"] = source_event.event_id
            payload["replay_topic"] = settings.delivery_topic
            payload["failed_event"] = source_event.model_dump()
        if raw is not None:
            payload["raw"] = raw.decode("utf-8", errors="replace")
        try:
            await self.bus.publish(
                settings.dlq_topic,
                EventEnvelope(
                    event_type=DLQ_EVENT_TYPE,
                    aggregate_id=source_event.aggregate_id if source_event else "unknown",
                    trace_id=source_event.trace_id if source_event else "",
                    payload=payload,
                ),
            )
        except Exception as exc:
            logger.error("dlq publish failed reason=%s error=%s", reason, exc)
            return
        dlq_published_total.labels(
            service=self.service_name,
            topic=settings.dlq_topic,
            error_type=error_type,
        ).inc()

    async def handle_delivery(self, event: EventEnvelope) -> None:
        """Append the `created` row for one delivery record."""

        payload = event.payload
        try:
            body = _validate_delivery_payload(payload)
        except ValueError as exc:
            logger.warning("malformed delivery record event_id=%s reason=%s", event.event_id, exc)
            await self._publish_dlq(str(exc), "NON_RETRYABLE", source_event=event)
            return

        now = datetime.now(timezone.utc)
        with self.session_factory() as db:
            if skip_if_seen(db, event, self.service_name, settings.delivery_topic):
                return
            db.add(
                NotificationLog(
                    notification_id=payload["notification_id"],
                    user_id=payload["user_id"],
                    created_at=event.occurred_at_utc(),
                    channel=payload["channel"],
                    message=body["message"],
                    receiver_email=body.get("receiver_email"),
                    subject=body.get("subject"),
                    slack=body.get("slack"),
                    status=CREATED,
                    ttl=self._expiry(now),
                )
            )
            mark_inbox(db, event.event_id, self.service_name)
            db.commit()
        logger.info("notification logged channel=%s status=%s", payload["channel"], CREATED)

    async def handle_status_changed(self, event: EventEnvelope) -> None:
        """Append one transition row for an active notification."""

        payload = event.payload
        now = datetime.now(timezone.utc)
        with self.session_factory() as db:
            if skip_if_seen(db, event, self.service_name, settings.audit_topic):
                return
            db.add(
                NotificationLog(
                    notification_id=payload["notification_id"],
                    user_id=payload["user_id"],
                    created_at=event.occurred_at_utc(),
                    channel=payload.get("channel", "in_app"),
                    message=payload.get("message") or "",
                    status=payload["status"],
                    ttl=self._expiry(now),
                )
            )
            mark_inbox(db, event.event_id, self.service_name)
            db.commit()
        logger.info("notification logged status=%s", payload["status"])

    async def handle_undecodable(self, raw: bytes, error: Exception) -> None:
        await self._publish_dlq(str(error), "UNDECODABLE", raw=raw)

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete log rows whose ttl has passed; return how many went."""

        cutoff = int((now or datetime.now(timezone.utc)).timestamp())
        with self.session_factory() as db:
            result = db.execute(delete(NotificationLog).where(NotificationLog.ttl < cutoff))
            db.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info("notification logs purged count=%s", purged)
            notification_logs_purged_total.labels(service=self.service_name).inc(purged)
        return purged

    async def purge_forever(self) -> None:
        """Periodically expire old log rows."""

        while True:
            try:
                self.purge_expired()
            except Exception as exc:
                logger.exception("notification log purge failed: %s", exc)
            await asyncio.sleep(settings.log_purge_interval_seconds)

    async def start_consumers(self) -> None:
        """Start the delivery and status-change consumers plus the ttl purge."""

        await asyncio.gather(
            consume_forever(
                settings.delivery_topic,
                "audit-delivery",
                self.handle_delivery,
                on_undecodable=self.handle_undecodable,
            ),
            consume_forever(settings.audit_topic, "audit-status", self.handle_status_changed),
            self.purge_forever(),
        )

"""Active notification projection and its status transition engine.

`ProjectionService` materializes `in_app` delivery records into the active
projection. `StatusTransitionEngine` applies client status updates to that
projection, then pushes the change to the user's live connection and hands an
audit record to the audit logger without waiting on it.
"""

import asyncio

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from notifyhub.common.config import settings
from notifyhub.common.errors import InvalidStatus, NotificationNotFound, TransportFailure
from notifyhub.common.events import EventEnvelope, consume_forever
from notifyhub.common.inbox import mark_inbox, skip_if_seen
from notifyhub.common.logging import log_context, logger
from notifyhub.common.metrics import status_transitions_total
from notifyhub.common.state_machine import (
    DELETED,
    PENDING,
    REQUESTED_STATUSES,
    resolve_requested_status,
    validate_transition,
)
from notifyhub.services.realtime.models import ActiveNotification


UPDATED_TOPIC = "notif_updated"
CREATED_TOPIC = "notif_created"
INVALID_STATUS_LABEL = "invalid"


def status_label(requested) -> str:
    """Metric label for a requested status; unknown values collapse to one series."""

    return requested if isinstance(requested, str) and requested in REQUESTED_STATUSES else INVALID_STATUS_LABEL


class TransitionResult(BaseModel):
    """Outcome of one applied transition; `state_version` is None after delete."""

    notification_id: str
    status: str
    state_version: int | None


class ProjectionService:
    """Consumes delivery records and creates active notification rows."""

    def __init__(self, session_factory, push_emitter, service_name: str = "realtime") -> None:
        self.session_factory = session_factory
        self.push = push_emitter
        self.service_name = service_name

    async def handle_delivery(self, event: EventEnvelope) -> None:
        """Materialize one `in_app` record, skipping redeliveries."""

        payload = event.payload
        if payload.get("channel") != "in_app":
            return
        body = payload.get("body") or {}
        notification_id = payload.get("notification_id")
        user_id = payload.get("user_id")
        message = body.get("message")
        if not all(isinstance(value, str) for value in (notification_id, user_id, message)):
            logger.warning("malformed in_app record skipped event_id=%s", event.event_id)
            return

        created_at = event.occurred_at_utc()
        with self.session_factory() as db:
            if skip_if_seen(db, event, self.service_name, settings.delivery_topic):
                return
            db.add(
                ActiveNotification(
                    user_id=user_id,
                    created_at=created_at,
                    notification_id=notification_id,
                    message=message,
                    status=PENDING,
                    state_version=0,
                )
            )
            mark_inbox(db, event.event_id, self.service_name)
            db.commit()
        logger.info("active notification created user_id=%s", user_id)

        await self.push.push_to_user(
            user_id,
            {
                "topic": CREATED_TOPIC,
                "notification": {
                    "notification_id": notification_id,
                    "user_id": user_id,
                    "created_at": created_at.isoformat(),
                    "message": message,
                    "status": PENDING,
                },
            },
        )

    async def start_consumers(self) -> None:
        await consume_forever(settings.delivery_topic, "realtime-delivery", self.handle_delivery)


class StatusTransitionEngine:
    """Applies `read`/`delete` requests to the active projection.

    Writes are guarded by `(user_id, created_at, state_version)`; a guard miss
    re-reads the row once, so a delete racing a read ends as not-found for the
    loser instead of resurrecting the row.
    """

    def __init__(self, session_factory, push_emitter, audit_logger, service_name: str = "realtime") -> None:
        self.session_factory = session_factory
        self.push = push_emitter
        self.audit = audit_logger
        self.service_name = service_name
        self._background: set[asyncio.Task] = set()

    def _find(self, db, notification_id: str) -> ActiveNotification | None:
        return db.execute(
            select(ActiveNotification).where(ActiveNotification.notification_id == notification_id).limit(1)
        ).scalar_one_or_none()

    def _apply(self, notification_id: str, user_id: str, requested: str) -> tuple[TransitionResult, str]:
        """Run the guarded store mutation; return the result and the row's message."""

        with self.session_factory() as db:
            for _ in range(2):
                row = self._find(db, notification_id)
                if row is None or row.user_id != user_id:
                    raise NotificationNotFound(notification_id)
                try:
                    target = resolve_requested_status(requested)
                    validate_transition(row.status, target)
                except ValueError as exc:
                    raise InvalidStatus(str(exc)) from exc

                key = (
                    ActiveNotification.user_id == row.user_id,
                    ActiveNotification.created_at == row.created_at,
                    ActiveNotification.state_version == row.state_version,
                )
                message = row.message
                next_version = row.state_version + 1
                if target == DELETED:
                    stmt = delete(ActiveNotification).where(*key).execution_options(synchronize_session=False)
                else:
                    stmt = (
                        update(ActiveNotification)
                        .where(*key)
                        .values(status=target, state_version=next_version)
                        .execution_options(synchronize_session=False)
                    )
                result = db.execute(stmt)
                if result.rowcount == 1:
                    db.commit()
                    return (
                        TransitionResult(
                            notification_id=notification_id,
                            status=target,
                            state_version=None if target == DELETED else next_version,
                        ),
                        message,
                    )
                db.rollback()
                db.expire_all()
                logger.info("transition guard missed notification_id=%s; re-reading", notification_id)
        raise TransportFailure(f"concurrent update conflict for notification {notification_id}")

    async def transition(self, notification_id: str, user_id: str, status: str) -> TransitionResult:
        """Apply `status` to the active notification and emit its side effects.

        Raises `NotificationNotFound`, `InvalidStatus` or `TransportFailure`;
        none of the side effects run in those cases. Push and audit failures
        never surface here.
        """

        with log_context(notification_id=notification_id):
            return await self._transition(notification_id, user_id, status)

    async def _transition(self, notification_id: str, user_id: str, status: str) -> TransitionResult:
        label = status_label(status)
        try:
            result, message = self._apply(notification_id, user_id, status)
        except (NotificationNotFound, InvalidStatus) as exc:
            outcome = "not_found" if isinstance(exc, NotificationNotFound) else "invalid"
            logger.warning("transition rejected status=%s outcome=%s", status, outcome)
            status_transitions_total.labels(service=self.service_name, status=label, outcome=outcome).inc()
            raise
        except SQLAlchemyError as exc:
            logger.error("transition store failure status=%s error=%s", status, exc)
            status_transitions_total.labels(service=self.service_name, status=label, outcome="error").inc()
            raise TransportFailure(str(exc)) from exc
        except TransportFailure:
            status_transitions_total.labels(service=self.service_name, status=label, outcome="error").inc()
            raise

        status_transitions_total.labels(service=self.service_name, status=label, outcome="applied").inc()
        logger.info("transition applied status=%s state=%s", status, result.status)

        await self.push.push_to_user(
            user_id,
            {"topic": UPDATED_TOPIC, "status": status, "notification_id": notification_id},
        )
        self._spawn(
            self.audit.append(
                {
                    "status": result.status,
                    "user_id": user_id,
                    "message": message,
                    "notification_id": notification_id,
                }
            )
        )
        return result

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for outstanding audit appends (used at shutdown)."""

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

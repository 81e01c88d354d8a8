"""Projection consumer: in_app records become active notifications."""

import asyncio

from sqlalchemy import func, select

from conftest import FakeGateway

from notifyhub.common.events import EventEnvelope
from notifyhub.services.realtime.models import ActiveNotification
from notifyhub.services.realtime.push import LivePushEmitter
from notifyhub.services.realtime.registry import ConnectionRegistry
from notifyhub.services.realtime.service import ProjectionService


def delivery_event(channel="in_app", body=None, notification_id="n-1"):
    return EventEnvelope(
        event_type="notification.requested",
        aggregate_id=notification_id,
        occurred_at="2026-03-01T09:30:00+00:00",
        payload={
            "notification_id": notification_id,
            "user_id": "u1",
            "channel": channel,
            "body": body or {"message": "hello"},
        },
    )


def make_service(session_factory, gateway=None):
    registry = ConnectionRegistry(session_factory)
    registry.register("c-1", "u1")
    gateway = gateway or FakeGateway()
    return ProjectionService(session_factory, LivePushEmitter(gateway, registry)), gateway


def count_rows(session_factory):
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(ActiveNotification)).scalar_one()


def test_in_app_record_is_materialized_and_pushed(session_factory):
    service, gateway = make_service(session_factory)

    asyncio.run(service.handle_delivery(delivery_event()))

    with session_factory() as db:
        row = db.execute(select(ActiveNotification)).scalar_one()
    assert row.notification_id == "n-1"
    assert row.user_id == "u1"
    assert row.message == "hello"
    assert row.status == "pending"
    assert row.state_version == 0
    connection_id, pushed = gateway.sent[0]
    assert connection_id == "c-1"
    assert pushed["topic"] == "notif_created"
    assert pushed["notification"]["notification_id"] == "n-1"


def test_redelivered_record_is_applied_once(session_factory):
    service, _ = make_service(session_factory)
    event = delivery_event()

    asyncio.run(service.handle_delivery(event))
    asyncio.run(service.handle_delivery(event))

    assert count_rows(session_factory) == 1


def test_other_channels_do_not_create_active_rows(session_factory):
    service, gateway = make_service(session_factory)

    asyncio.run(service.handle_delivery(delivery_event(channel="email")))

    assert count_rows(session_factory) == 0
    assert gateway.sent == []


def test_malformed_record_is_skipped(session_factory):
    service, _ = make_service(session_factory)

    asyncio.run(service.handle_delivery(delivery_event(body={"subject": "no message"})))

    assert count_rows(session_factory) == 0


def test_push_failure_keeps_the_row(session_factory):
    service, _ = make_service(session_factory, gateway=FakeGateway(broken=True))

    asyncio.run(service.handle_delivery(delivery_event()))

    assert count_rows(session_factory) == 1

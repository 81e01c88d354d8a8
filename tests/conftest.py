"""Shared fixtures: in-memory SQLite store and fakes for queue, redis and sockets."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("API_KEY", "test-key")
os.environ.setdefault("SERVICE_NAME", "test")
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "http://127.0.0.1:4318/v1/traces")

from datetime import datetime, timezone

import pytest

from notifyhub.common.db import Base, make_engine, make_session_factory
from notifyhub.common.errors import ConnectionGone
from notifyhub.common.inbox import InboxEvent  # noqa: F401
from notifyhub.services.audit.models import NotificationLog  # noqa: F401
from notifyhub.services.realtime.models import ActiveNotification, LiveConnection  # noqa: F401


API_KEY = os.environ["API_KEY"]


class FakeBus:
    """Records published envelopes; raises for topics/channels listed in `fail`."""

    def __init__(self, fail=None):
        self.fail = set(fail or ())
        self.published = []

    async def publish(self, topic, event, key=None):
        if topic in self.fail or event.payload.get("channel") in self.fail:
            raise ConnectionError(f"broker unavailable for {topic}")
        self.published.append((topic, event, key))


class FakeRedis:
    def __init__(self, broken=False):
        self.broken = broken
        self.store = {}

    def get(self, key):
        if self.broken:
            raise ConnectionError("redis down")
        return self.store.get(key)

    def setex(self, key, ttl, value):
        if self.broken:
            raise ConnectionError("redis down")
        self.store[key] = value


class FakeGateway:
    """Connection gateway double: `gone` ids raise, everything else is recorded."""

    def __init__(self, gone=(), broken=False):
        self.gone = set(gone)
        self.broken = broken
        self.sent = []

    async def send(self, connection_id, payload):
        if connection_id in self.gone:
            raise ConnectionGone(connection_id)
        if self.broken:
            raise RuntimeError("socket write failed")
        self.sent.append((connection_id, payload))


class FakeAudit:
    def __init__(self):
        self.records = []

    async def append(self, record):
        self.records.append(record)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seed_notification(session_factory):
    """Insert a pending active notification and return it."""

    def _seed(notification_id="n-1", user_id="u1", message="hi", status="pending", created_at=None):
        row = ActiveNotification(
            user_id=user_id,
            created_at=created_at or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
            notification_id=notification_id,
            message=message,
            status=status,
            state_version=0,
        )
        with session_factory() as db:
            db.add(row)
            db.commit()
        return row

    return _seed

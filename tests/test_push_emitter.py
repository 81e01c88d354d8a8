"""Live push emitter and connection registry."""

import asyncio

from conftest import FakeGateway

from notifyhub.services.realtime.push import ConnectionGateway, LivePushEmitter
from notifyhub.services.realtime.registry import ConnectionRegistry

EVENT = {"topic": "notif_updated", "status": "read", "notification_id": "n-1"}


def test_registry_returns_one_connection_for_multi_session_user(session_factory):
    registry = ConnectionRegistry(session_factory)
    registry.register("c-1", "u1")
    registry.register("c-2", "u1")

    assert registry.lookup("u1") in {"c-1", "c-2"}


def test_push_without_connection_is_a_noop(session_factory):
    gateway = FakeGateway()
    emitter = LivePushEmitter(gateway, ConnectionRegistry(session_factory))

    assert asyncio.run(emitter.push(None, EVENT)) is False
    assert asyncio.run(emitter.push_to_user("nobody", EVENT)) is False
    assert gateway.sent == []


def test_push_to_user_delivers(session_factory):
    registry = ConnectionRegistry(session_factory)
    registry.register("c-1", "u1")
    gateway = FakeGateway()
    emitter = LivePushEmitter(gateway, registry)

    assert asyncio.run(emitter.push_to_user("u1", EVENT)) is True
    assert gateway.sent == [("c-1", EVENT)]


def test_gone_connection_is_swallowed_and_forgotten(session_factory):
    registry = ConnectionRegistry(session_factory)
    registry.register("c-1", "u1")
    emitter = LivePushEmitter(FakeGateway(gone={"c-1"}), registry)

    assert asyncio.run(emitter.push_to_user("u1", EVENT)) is False
    assert registry.lookup("u1") is None


def test_send_error_never_raises(session_factory):
    registry = ConnectionRegistry(session_factory)
    registry.register("c-1", "u1")
    emitter = LivePushEmitter(FakeGateway(broken=True), registry)

    assert asyncio.run(emitter.push_to_user("u1", EVENT)) is False
    assert registry.lookup("u1") == "c-1"


def test_registry_failure_never_raises():
    class BrokenRegistry:
        def lookup(self, user_id):
            raise RuntimeError("store unavailable")

    emitter = LivePushEmitter(FakeGateway(), BrokenRegistry())
    assert asyncio.run(emitter.push_to_user("u1", EVENT)) is False


class RecordingSocket:
    def __init__(self):
        self.sent = []

    async def accept(self):
        pass

    async def send_json(self, payload):
        self.sent.append(payload)


def test_connection_on_another_replica_is_left_registered(session_factory):
    """Two realtime processes share one registry; neither evicts the other's sessions."""

    registry = ConnectionRegistry(session_factory)
    socket = RecordingSocket()
    replica_b = ConnectionGateway()
    connection_id = asyncio.run(replica_b.connect(socket))
    registry.register(connection_id, "u1")

    replica_a = LivePushEmitter(ConnectionGateway(), registry)
    assert asyncio.run(replica_a.push_to_user("u1", EVENT)) is False
    assert registry.lookup("u1") == connection_id

    assert asyncio.run(LivePushEmitter(replica_b, registry).push_to_user("u1", EVENT)) is True
    assert socket.sent == [EVENT]


def test_local_socket_write_failure_unregisters(session_factory):
    class ClosedSocket(RecordingSocket):
        async def send_json(self, payload):
            raise RuntimeError("socket closed")

    registry = ConnectionRegistry(session_factory)
    gateway = ConnectionGateway()
    connection_id = asyncio.run(gateway.connect(ClosedSocket()))
    registry.register(connection_id, "u1")

    assert asyncio.run(LivePushEmitter(gateway, registry).push_to_user("u1", EVENT)) is False
    assert registry.lookup("u1") is None

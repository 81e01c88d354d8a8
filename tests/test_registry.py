"""Connection registry lookups backing live push."""

from notifyhub.services.realtime.registry import ConnectionRegistry


def test_lookup_without_connection_returns_none(session_factory):
    assert ConnectionRegistry(session_factory).lookup("u1") is None


def test_register_then_lookup_and_unregister(session_factory):
    registry = ConnectionRegistry(session_factory)
    registry.register("c-1", "u1")
    registry.register("c-9", "u2")

    assert registry.lookup("u1") == "c-1"

    registry.unregister("c-1")
    assert registry.lookup("u1") is None
    assert registry.lookup("u2") == "c-9"


def test_unregister_unknown_connection_is_noop(session_factory):
    ConnectionRegistry(session_factory).unregister("missing")

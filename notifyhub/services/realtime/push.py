"""Best-effort push of state changes to a user's live websocket."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from fastapi import WebSocket

from notifyhub.common.errors import ConnectionGone, ConnectionNotLocal
from notifyhub.common.logging import logger
from notifyhub.common.metrics import push_attempts_total


class ConnectionGateway:
    """Websockets accepted by this process, addressed by connection id."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept ``websocket`` and return its new connection id."""

        await websocket.accept()
        connection_id = str(uuid4())
        self._connections[connection_id] = websocket
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)

    async def send(self, connection_id: str, payload: dict[str, Any]) -> None:
        """Deliver ``payload``; raise :class:`ConnectionGone` when unreachable."""

        websocket = self._connections.get(connection_id)
        if websocket is None:
            raise ConnectionNotLocal(f"connection {connection_id} is not open here")
        try:
            await websocket.send_json(payload)
        except Exception as exc:
            self.disconnect(connection_id)
            raise ConnectionGone(f"connection {connection_id} is closed") from exc


class LivePushEmitter:
    """Pushes events to live connections and never raises to the caller."""

    def __init__(self, gateway, registry, service_name: str = "realtime") -> None:
        self.gateway = gateway
        self.registry = registry
        self.service_name = service_name

    def _count(self, outcome: str) -> None:
        push_attempts_total.labels(service=self.service_name, outcome=outcome).inc()

    async def push(self, connection_id: str | None, event: dict[str, Any]) -> bool:
        """Send ``event`` to ``connection_id``; return whether it was delivered."""

        if connection_id is None:
            self._count("no_connection")
            return False
        try:
            await self.gateway.send(connection_id, event)
        except ConnectionNotLocal:
            # Socket is owned by another replica.
            logger.info("connection held elsewhere connection_id=%s", connection_id)
            self._count("no_connection")
            return False
        except ConnectionGone as exc:
            logger.info("stale connection dropped connection_id=%s reason=%s", connection_id, exc)
            self._count("gone")
            self._forget(connection_id)
            return False
        except Exception as exc:
            logger.warning("live push failed connection_id=%s error=%s", connection_id, exc)
            self._count("failed")
            return False
        self._count("delivered")
        return True

    async def push_to_user(self, user_id: str, event: dict[str, Any]) -> bool:
        """Resolve the user's live connection, then push."""

        try:
            connection_id = self.registry.lookup(user_id)
        except Exception as exc:
            logger.warning("connection lookup failed user_id=%s error=%s", user_id, exc)
            self._count("failed")
            return False
        return await self.push(connection_id, event)

    def _forget(self, connection_id: str) -> None:
        try:
            self.registry.unregister(connection_id)
        except Exception as exc:
            logger.warning("stale connection cleanup failed connection_id=%s error=%s", connection_id, exc)

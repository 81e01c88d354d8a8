"""Realtime service: websocket sessions, status updates and the projection consumer."""

import asyncio
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from notifyhub.common.config import settings
from notifyhub.common.db import SessionLocal
from notifyhub.common.errors import InvalidStatus, NotificationNotFound, TransportFailure
from notifyhub.common.events import KafkaBus
from notifyhub.common.logging import configure_logging, logger, trace_id_ctx
from notifyhub.common.metrics import metrics_response
from notifyhub.common.startup import log_startup_config
from notifyhub.common.tracing import instrument_app, setup_tracing
from notifyhub.services.audit.service import AuditLogger
from notifyhub.services.realtime.push import ConnectionGateway, LivePushEmitter
from notifyhub.services.realtime.registry import ConnectionRegistry
from notifyhub.services.realtime.schemas import StatusUpdateRequest
from notifyhub.services.realtime.service import ProjectionService, StatusTransitionEngine

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["postgres_dsn", "kafka_bootstrap_servers", "delivery_topic", "audit_topic"],
)
kafka = KafkaBus()
gateway = ConnectionGateway()
registry = ConnectionRegistry(SessionLocal)
push_emitter = LivePushEmitter(gateway, registry, service_name=settings.service_name)
engine = StatusTransitionEngine(
    SessionLocal,
    push_emitter,
    AuditLogger(kafka, service_name=settings.service_name),
    service_name=settings.service_name,
)
projection = ProjectionService(SessionLocal, push_emitter, service_name=settings.service_name)

UPDATE_ACTION = "updateNotification"


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the projection consumer with the application lifecycle."""

    consumer_task = asyncio.create_task(projection.start_consumers())
    yield
    consumer_task.cancel()
    await engine.drain()
    await kafka.close()


app = FastAPI(title="Notification Realtime Service", lifespan=lifespan)
instrument_app(app)


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject requests that do not provide the configured API key."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


def _transition_error(exc: Exception) -> tuple[int, str]:
    """Map transition failures to HTTP status codes."""

    if isinstance(exc, NotificationNotFound):
        return 404, "Notification not found"
    if isinstance(exc, InvalidStatus):
        return 400, "Invalid status."
    return 500, "could not update notification"


async def apply_status_update(body, session_user_id: str | None = None) -> tuple[int, object]:
    """Validate one update body and run it through the transition engine.

    Websocket sessions pass their own user; an update naming anyone else is
    answered exactly like an unknown notification.
    """

    try:
        req = StatusUpdateRequest.model_validate(body)
    except ValidationError as exc:
        logger.warning("malformed status update: %s", exc.errors())
        return 400, "Malformed status update."
    payload = req.payload
    if session_user_id is not None and payload.user_id != session_user_id:
        logger.warning("status update for another user rejected session_user_id=%s", session_user_id)
        return _transition_error(NotificationNotFound(payload.notification_id))
    try:
        result = await engine.transition(payload.notification_id, payload.user_id, payload.status)
    except (NotificationNotFound, InvalidStatus, TransportFailure) as exc:
        return _transition_error(exc)
    return 200, result.model_dump()


@app.post("/notifications/status")
async def update_status(
    request: Request,
    x_api_key: str | None = Header(default=None),
    x_trace_id: str | None = Header(default=None),
):
    """Mark an active notification read, or delete it."""

    enforce_api_key(x_api_key)
    trace_id_ctx.set(x_trace_id or str(uuid4()))
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content="Malformed status update.")
    status_code, content = await apply_status_update(body)
    return JSONResponse(status_code=status_code, content=content)


@app.websocket("/ws")
async def websocket_session(websocket: WebSocket, user_id: str, api_key: str | None = None):
    """Live session: registers the connection and accepts update messages."""

    if api_key != settings.api_key:
        await websocket.close(code=1008)
        return
    connection_id = await gateway.connect(websocket)
    registry.register(connection_id, user_id)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"statusCode": 400, "body": "Malformed message."})
                continue
            if not isinstance(message, dict) or message.get("action") != UPDATE_ACTION:
                await websocket.send_json({"statusCode": 400, "body": "Unknown action."})
                continue
            trace_id_ctx.set(str(uuid4()))
            status_code, content = await apply_status_update(message, session_user_id=user_id)
            await websocket.send_json({"statusCode": status_code, "body": content})
    except WebSocketDisconnect:
        logger.info("websocket closed connection_id=%s", connection_id)
    finally:
        gateway.disconnect(connection_id)
        registry.unregister(connection_id)


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()

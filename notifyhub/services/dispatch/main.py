"""Public entrypoint for notification creation.

The dispatch service validates a request, fans it out into one delivery record
per channel on the ordered delivery topic, and answers with the shared
notification id per channel. An optional `idempotency-key` header replays the
first response from a Redis cache.
"""

import json
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

import redis
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from notifyhub.common.config import settings
from notifyhub.common.errors import DeliveryValidationError
from notifyhub.common.events import KafkaBus
from notifyhub.common.logging import configure_logging, logger, trace_id_ctx
from notifyhub.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    notification_requests_total,
)
from notifyhub.common.startup import log_startup_config
from notifyhub.common.tracing import instrument_app, setup_tracing
from notifyhub.services.dispatch.builder import build_delivery_records
from notifyhub.services.dispatch.service import FanoutDispatcher

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "kafka_bootstrap_servers",
        "redis_url",
        "delivery_topic",
        "delivery_partition_key",
        "idempotency_ttl_seconds",
    ],
)
kafka = KafkaBus()
dispatcher = FanoutDispatcher(kafka, service_name=settings.service_name)
rdb = redis.Redis.from_url(settings.redis_url, decode_responses=True)

PROCESSING_ERROR = "could not process request"


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Close the shared Kafka producer on shutdown."""

    yield
    await kafka.close()


app = FastAPI(title="Notification Dispatch", lifespan=lifespan)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject requests that do not provide the configured API key."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


def _idempotency_cache_key(user_id: str, idempotency_key: str) -> str:
    # Scoped by recipient so two users never share a cached response.
    return f"idempotency:notification:{user_id}:{idempotency_key}"


@app.post("/notification")
async def create_notification(
    request: Request,
    x_api_key: str | None = Header(default=None),
    x_correlation_id: str | None = Header(default=None),
    idempotency_key: str | None = Header(default=None),
):
    """Fan a request out into per-channel delivery records.

    Always answers 200 with one `{channel, notification_id}` entry per
    supplied channel once the body validates, even when individual enqueues
    failed; malformed bodies get a 500 and nothing is enqueued.
    """

    enforce_api_key(x_api_key)
    trace_id = x_correlation_id or str(uuid4())
    trace_id_ctx.set(trace_id)

    try:
        body = json.loads(await request.body())
        if not isinstance(body, dict):
            raise DeliveryValidationError("request body must be an object")
        planned = build_delivery_records(body.get("user_id"), body.get("channels"))
    except ValueError as exc:
        logger.error("notification request rejected error=%s", exc)
        notification_requests_total.labels(service=settings.service_name, outcome="rejected").inc()
        return JSONResponse(status_code=500, content=PROCESSING_ERROR)

    user_id = body["user_id"]
    cache_key = _idempotency_cache_key(user_id, idempotency_key) if idempotency_key else None
    if cache_key:
        try:
            cached = rdb.get(cache_key)
            if cached:
                notification_requests_total.labels(service=settings.service_name, outcome="replayed").inc()
                return json.loads(cached)
        except Exception as exc:
            logger.warning("idempotency_cache_read_failed: %s", exc)

    results = await dispatcher.dispatch(planned, trace_id=trace_id)
    payload = [result.model_dump() for result in results]
    notification_requests_total.labels(service=settings.service_name, outcome="accepted").inc()

    if cache_key:
        try:
            rdb.setex(cache_key, settings.idempotency_ttl_seconds, json.dumps(payload))
        except Exception as exc:
            logger.warning("idempotency_cache_write_failed: %s", exc)
    return payload


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}

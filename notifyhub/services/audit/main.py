"""Audit service lifecycle plus health and metrics endpoints."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from notifyhub.common.config import settings
from notifyhub.common.db import SessionLocal
from notifyhub.common.events import KafkaBus
from notifyhub.common.logging import configure_logging
from notifyhub.common.metrics import metrics_response
from notifyhub.common.startup import log_startup_config
from notifyhub.common.tracing import instrument_app, setup_tracing
from notifyhub.services.audit.service import AuditService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "postgres_dsn",
        "kafka_bootstrap_servers",
        "delivery_topic",
        "audit_topic",
        "dlq_topic",
        "log_ttl_days",
        "log_purge_interval_seconds",
    ],
)
kafka = KafkaBus()
service = AuditService(SessionLocal, kafka, service_name=settings.service_name)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run consumer loops and the ttl purge with the application lifecycle."""

    consumer_task = asyncio.create_task(service.start_consumers())
    yield
    consumer_task.cancel()
    await kafka.close()


app = FastAPI(title="Notification Audit Service", lifespan=lifespan)
instrument_app(app)


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()

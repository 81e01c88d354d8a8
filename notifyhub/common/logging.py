"""Structured JSON logging with request/event context fields."""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from notifyhub.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
event_id_ctx: ContextVar[str] = ContextVar("event_id", default="")
notification_id_ctx: ContextVar[str] = ContextVar("notification_id", default="")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.event_id = event_id_ctx.get()
        record.notification_id = notification_id_ctx.get()
        return True


@contextmanager
def log_context(
    trace_id: str | None = None,
    event_id: str | None = None,
    notification_id: str | None = None,
):
    """Bind correlation ids for the duration of one event or request."""

    tokens = []
    for var, value in (
        (trace_id_ctx, trace_id),
        (event_id_ctx, event_id),
        (notification_id_ctx, notification_id),
    ):
        if value is not None:
            tokens.append((var, var.set(value)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def configure_logging() -> None:
    """Configure root logger once per service process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(event_id)s %(notification_id)s %(message)s"
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)
    # aiokafka logs group coordination chatter at INFO.
    logging.getLogger("aiokafka").setLevel(logging.WARNING)


logger = logging.getLogger("notifyhub")

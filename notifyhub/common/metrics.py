"""Prometheus metric definitions shared across notification services."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
notification_requests_total = Counter(
    "notification_requests_total",
    "Notification create requests by outcome",
    ["service", "outcome"],
)
fanout_latency_seconds = Histogram(
    "fanout_latency_seconds",
    "Time spent enqueueing all channels of one request",
    ["service"],
)
delivery_enqueue_total = Counter(
    "delivery_enqueue_total",
    "Per-channel delivery record enqueue attempts",
    ["service", "channel", "outcome"],
)
status_transitions_total = Counter(
    "status_transitions_total",
    "Active notification status transitions by requested status and outcome",
    ["service", "status", "outcome"],
)
push_attempts_total = Counter(
    "push_attempts_total",
    "Live push attempts by outcome",
    ["service", "outcome"],
)
audit_dispatch_failures_total = Counter(
    "audit_dispatch_failures_total",
    "Audit events that could not be handed to the queue",
    ["service"],
)
event_queue_delay_seconds = Histogram(
    "event_queue_delay_seconds",
    "Event queue delay seconds between occurred_at and consume time",
    ["service", "topic"],
)
dlq_published_total = Counter(
    "dlq_published_total",
    "Total DLQ events published",
    ["service", "topic", "error_type"],
)
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Duplicate inbox events skipped",
    ["service", "topic"],
)
notification_logs_purged_total = Counter(
    "notification_logs_purged_total",
    "Notification log rows removed after their ttl expired",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")

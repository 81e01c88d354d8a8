"""OpenTelemetry wiring for the notification services.

Spans carry the service name under the `notifyhub` namespace. Export is
skipped when no OTLP endpoint is configured, and `otel_traces_sample_ratio`
head-samples new traces while always following the caller's decision.
"""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from notifyhub.common.config import settings
from notifyhub.common.logging import logger


SERVICE_NAMESPACE = "notifyhub"
# Probe and scrape routes are polled constantly.
UNTRACED_URLS = "health,metrics"

_provider: TracerProvider | None = None


def build_tracer_provider(service_name: str, endpoint: str | None, sample_ratio: float = 1.0) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.namespace": SERVICE_NAMESPACE}),
        sampler=ParentBased(TraceIdRatioBased(min(1.0, max(0.0, sample_ratio)))),
    )
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    return provider


def setup_tracing(service_name: str) -> TracerProvider:
    """Install the process tracer provider once and return it."""

    global _provider
    if _provider is None:
        endpoint = settings.otel_exporter_otlp_endpoint
        _provider = build_tracer_provider(service_name, endpoint, settings.otel_traces_sample_ratio)
        trace.set_tracer_provider(_provider)
        if not endpoint:
            logger.info("tracing export disabled; no OTLP endpoint configured")
    return _provider


def instrument_app(app: FastAPI) -> None:
    """Attach FastAPI request spans, skipping probe routes."""

    FastAPIInstrumentor.instrument_app(app, tracer_provider=_provider, excluded_urls=UNTRACED_URLS)

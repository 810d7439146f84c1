"""
Distributed tracing using OpenTelemetry.

Provides:
- Tracer provider setup with OTLP and console exporters
- FastAPI instrumentation
- trace_span() for wrapping storage operations
"""
import os
import logging
from typing import Optional, Dict, Any
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

logger = logging.getLogger(__name__)

_provider_configured = False


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def setup_tracing() -> None:
    """Initialize OpenTelemetry tracing for the service."""
    global _provider_configured

    if _provider_configured:
        logger.warning("Tracing already initialized")
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", "postcomments")
    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    use_otlp = _env_flag("OTEL_EXPORTER_OTLP_ENABLED", "false")
    enable_console = _env_flag("OTEL_CONSOLE_EXPORTER_ENABLED", "false")

    logger.info(
        "Initializing OpenTelemetry tracing",
        extra={
            "service_name": service_name,
            "otlp_endpoint": otlp_endpoint,
            "use_otlp": use_otlp,
            "enable_console": enable_console,
        }
    )

    resource = Resource.create({
        "service.name": service_name,
        "service.version": os.getenv("SERVICE_VERSION", "0.1.0"),
        "deployment.environment": os.getenv("ENVIRONMENT", "development"),
    })
    provider = TracerProvider(resource=resource)

    if use_otlp:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
        logger.info("OTLP exporter configured", extra={"endpoint": otlp_endpoint})

    if enable_console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console exporter enabled")

    trace.set_tracer_provider(provider)
    _provider_configured = True
    logger.info("OpenTelemetry tracing initialized successfully")


def instrument_fastapi(app) -> None:
    """Instrument FastAPI application with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)
    logger.info("FastAPI instrumentation enabled")


def get_tracer() -> trace.Tracer:
    """Tracer from the active provider (a no-op provider until setup_tracing runs)."""
    return trace.get_tracer("postcomments")


@contextmanager
def trace_span(
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL
):
    """
    Context manager for creating a trace span.

    Args:
        name: Name of the span
        attributes: Optional attributes to add to the span
        kind: Span kind (INTERNAL, SERVER, CLIENT, etc.)

    Example:
        with trace_span("db.select", {"db.sql.table": "posts"}):
            adapter.execute(cursor, query, params)
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name, kind=kind) as span:
        if attributes:
            for key, value in attributes.items():
                if value is None:
                    continue
                if isinstance(value, (str, int, float, bool)):
                    span.set_attribute(key, value)
                else:
                    span.set_attribute(key, str(value))

        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
            raise


def add_span_attribute(key: str, value: Any) -> None:
    """Add an attribute to the current active span."""
    span = trace.get_current_span()
    if isinstance(value, (str, int, float, bool)):
        span.set_attribute(key, value)
    else:
        span.set_attribute(key, str(value))

"""OpenTelemetry tracing for job execution.

Each job attempt runs inside a ``job.execute`` span. Without
``setup_tracing`` the OpenTelemetry API hands out no-op tracers, so spans
cost nothing.

Usage:
    from bgjobs.observability.tracing import get_tracer

    tracer = get_tracer(__name__)

    with tracer.start_as_current_span("my_operation") as span:
        span.set_attribute("key", "value")
        ...
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from bgjobs.config import Settings

logger = logging.getLogger(__name__)

_initialized = False


def setup_tracing(settings: Settings) -> None:
    """Initialize OpenTelemetry tracing.

    Configures:
    - OTLP exporter (if endpoint configured)
    - Console exporter (for development)
    """
    global _initialized

    if _initialized:
        return

    if not settings.enable_tracing:
        logger.info("Tracing is disabled")
        _initialized = True
        return

    resource = Resource.create(
        {
            "service.name": settings.app_name,
            "service.instance.id": settings.instance_id,
            "deployment.environment": settings.env,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )

            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
            )
            logger.info(f"OTLP tracing enabled: {settings.otlp_endpoint}")
        except ImportError:
            logger.warning(
                "opentelemetry-exporter-otlp-proto-grpc not installed, OTLP export disabled"
            )
    elif settings.env == "dev":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console tracing enabled (dev mode)")

    trace.set_tracer_provider(provider)
    _initialized = True
    logger.info("OpenTelemetry tracing initialized")


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for the given module name."""
    return trace.get_tracer(name)

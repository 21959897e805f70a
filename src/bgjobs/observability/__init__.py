"""Observability module for bgjobs.

Provides tracing, metrics, and structured logging:
- OpenTelemetry tracing of job executions
- Prometheus job metrics
- JSON structured logging with job context
"""

from bgjobs.observability.logging import (
    LogContext,
    configure_logging,
    job_id_var,
    job_type_var,
)
from bgjobs.observability.metrics import (
    get_metrics,
    metrics_registry,
)
from bgjobs.observability.tracing import (
    get_tracer,
    setup_tracing,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "job_id_var",
    "job_type_var",
    # Tracing
    "setup_tracing",
    "get_tracer",
    # Metrics
    "metrics_registry",
    "get_metrics",
]

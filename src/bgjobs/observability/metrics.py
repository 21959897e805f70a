"""Prometheus metrics for the job engine.

Provides process-wide collectors mirrored from each engine's
``MetricsCollector``:
- Submission, completion, failure and retry counters by job type
- In-progress gauge
- Processing duration histogram

Usage:
    from bgjobs.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.jobs_completed_total.labels(type="cdn-purge").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, generate_latest

from bgjobs.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    jobs_submitted_total: Any = None
    jobs_completed_total: Any = None
    jobs_failed_total: Any = None
    jobs_retried_total: Any = None
    jobs_cleaned_total: Any = None
    jobs_in_progress: Any = None
    job_duration_seconds: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    @property
    def enabled(self) -> bool:
        return self._registry is not None

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.jobs_submitted_total = Counter(
            "bgjobs_jobs_submitted_total",
            "Total jobs submitted",
            ["type", "priority"],
        )

        self.jobs_completed_total = Counter(
            "bgjobs_jobs_completed_total",
            "Total jobs completed",
            ["type"],
        )

        self.jobs_failed_total = Counter(
            "bgjobs_jobs_failed_total",
            "Total jobs terminally failed",
            ["type", "reason"],
        )

        self.jobs_retried_total = Counter(
            "bgjobs_jobs_retried_total",
            "Total job retries scheduled",
            ["type"],
        )

        self.jobs_cleaned_total = Counter(
            "bgjobs_jobs_cleaned_total",
            "Total terminal jobs removed by the cleanup sweep",
        )

        self.jobs_in_progress = Gauge(
            "bgjobs_jobs_in_progress",
            "Jobs currently being processed",
        )

        self.job_duration_seconds = Histogram(
            "bgjobs_job_duration_seconds",
            "Successful job processing time in seconds",
            ["type"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry

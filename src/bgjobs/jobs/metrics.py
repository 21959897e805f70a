"""Per-engine queue metrics.

``MetricsCollector`` keeps the counters reported by ``JobQueue.get_metrics``
and mirrors every change into the process-wide Prometheus registry.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from bgjobs.observability.metrics import MetricsRegistry, get_metrics


@dataclass
class QueueMetrics:
    """Snapshot of queue counters.

    ``average_processing_time`` is in milliseconds; ``throughput`` is
    completed jobs per minute over the collector's sliding window.
    """

    total_jobs: int = 0
    pending_jobs: int = 0
    processing_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    average_processing_time: float = 0.0
    throughput: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MetricsCollector:
    """Aggregate counters and running average processing time."""

    def __init__(
        self,
        throughput_window: float = 60.0,
        registry: MetricsRegistry | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._metrics = QueueMetrics()
        self._window = throughput_window
        self._completions: deque[float] = deque()
        self._monotonic = monotonic
        self._prom = registry if registry is not None else get_metrics()

    def snapshot(self) -> QueueMetrics:
        """Copy of the current counters with throughput recomputed."""
        self._refresh_throughput()
        return QueueMetrics(**asdict(self._metrics))

    def job_submitted(self, job_type: str, priority: str) -> None:
        self._metrics.total_jobs += 1
        self._metrics.pending_jobs += 1
        if self._prom.enabled:
            self._prom.jobs_submitted_total.labels(type=job_type, priority=priority).inc()

    def job_started(self) -> None:
        self._metrics.pending_jobs -= 1
        self._metrics.processing_jobs += 1
        if self._prom.enabled:
            self._prom.jobs_in_progress.inc()

    def job_left_processing(self) -> None:
        self._metrics.processing_jobs -= 1
        if self._prom.enabled:
            self._prom.jobs_in_progress.dec()

    def job_completed(self, job_type: str, duration_ms: float) -> None:
        """Record a completion; the job must already have left processing."""
        self._metrics.completed_jobs += 1
        n = self._metrics.completed_jobs
        avg = self._metrics.average_processing_time
        self._metrics.average_processing_time = (avg * (n - 1) + duration_ms) / n

        self._completions.append(self._monotonic())
        self._refresh_throughput()

        if self._prom.enabled:
            self._prom.jobs_completed_total.labels(type=job_type).inc()
            self._prom.job_duration_seconds.labels(type=job_type).observe(duration_ms / 1000)

    def job_retrying(self, job_type: str) -> None:
        self._metrics.pending_jobs += 1
        if self._prom.enabled:
            self._prom.jobs_retried_total.labels(type=job_type).inc()

    def job_requeued(self) -> None:
        """An interrupted job went back to pending."""
        self._metrics.pending_jobs += 1

    def job_failed(self, job_type: str, reason: str) -> None:
        self._metrics.failed_jobs += 1
        if self._prom.enabled:
            self._prom.jobs_failed_total.labels(type=job_type, reason=reason).inc()

    def pending_cancelled(self) -> None:
        self._metrics.pending_jobs -= 1

    def jobs_cleaned(self, count: int) -> None:
        if self._prom.enabled and count:
            self._prom.jobs_cleaned_total.inc(count)

    def _refresh_throughput(self) -> None:
        cutoff = self._monotonic() - self._window
        while self._completions and self._completions[0] < cutoff:
            self._completions.popleft()
        self._metrics.throughput = len(self._completions) * 60.0 / self._window

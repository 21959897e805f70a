"""In-process job queue.

``JobQueue`` wires the engine together: job store, processor registry,
dispatcher, executor, retry controller, metrics and notifications. Engines
are constructed explicitly and passed to collaborators; there is no global
instance.

Example:
    queue = JobQueue(QueueConfig(max_concurrency=2))

    async def echo(job: Job) -> dict:
        return {"echo": job.data["value"]}

    queue.register_processor("echo", echo)

    async with queue:
        job_id = queue.submit("echo", {"value": 42})
        ...
        job = queue.get_job(job_id)
        print(job.status, job.result)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import TracebackType
from typing import Any

from bgjobs.config import Settings
from bgjobs.config import settings as default_settings
from bgjobs.jobs.dispatcher import Dispatcher
from bgjobs.jobs.errors import JobCancelledError, UnregisteredProcessorError
from bgjobs.jobs.events import JobEvent, NotificationChannel, NotificationHandler
from bgjobs.jobs.executor import RETRY_TIMER, Executor, RetryController
from bgjobs.jobs.metrics import MetricsCollector, QueueMetrics
from bgjobs.jobs.models import Job, JobPriority, JobStatus, utcnow
from bgjobs.jobs.registry import JobProcessor, ProcessorRegistry
from bgjobs.jobs.store import JobStore
from bgjobs.jobs.timers import TimerRegistry

logger = logging.getLogger(__name__)


@dataclass
class QueueConfig:
    """Engine configuration.

    Durations are in seconds.
    """

    max_concurrency: int = 5
    retry_delay: float = 5.0
    max_attempts: int = 3
    processing_timeout: float = 300.0
    poll_interval: float = 1.0
    cleanup_interval: float = 60.0
    cleanup_max_age: float = 3600.0
    throughput_window: float = 60.0

    # pause() only announces by default; set to make it stop dispatching
    pause_halts_dispatch: bool = False

    # Cancel the processor task when its attempt times out or is cancelled
    cancel_in_flight: bool = True

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.retry_delay < 0 or self.cleanup_max_age < 0:
            raise ValueError("retry_delay and cleanup_max_age must be >= 0")
        for name in ("processing_timeout", "poll_interval", "cleanup_interval", "throughput_window"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> QueueConfig:
        s = settings or default_settings
        return cls(
            max_concurrency=s.max_concurrency,
            retry_delay=s.retry_delay,
            max_attempts=s.max_attempts,
            processing_timeout=s.processing_timeout,
            poll_interval=s.poll_interval,
            cleanup_interval=s.cleanup_interval,
            cleanup_max_age=s.cleanup_max_age,
            throughput_window=s.throughput_window,
            pause_halts_dispatch=s.pause_halts_dispatch,
            cancel_in_flight=s.cancel_in_flight,
        )


class JobQueue:
    """Priority-aware in-process job engine."""

    def __init__(
        self,
        config: QueueConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or QueueConfig.from_settings()
        self.clock = clock

        self.channel = NotificationChannel()
        self.registry = ProcessorRegistry()
        self.metrics = MetricsCollector(throughput_window=self.config.throughput_window)
        self.timers = TimerRegistry()
        self.store = JobStore(
            metrics=self.metrics,
            channel=self.channel,
            default_max_attempts=self.config.max_attempts,
            clock=clock,
        )
        self.retry = RetryController(
            store=self.store,
            metrics=self.metrics,
            channel=self.channel,
            timers=self.timers,
            retry_delay=self.config.retry_delay,
            clock=clock,
        )
        self.executor = Executor(
            store=self.store,
            metrics=self.metrics,
            channel=self.channel,
            timers=self.timers,
            retry=self.retry,
            processing_timeout=self.config.processing_timeout,
            cancel_in_flight=self.config.cancel_in_flight,
            clock=clock,
        )
        self.dispatcher = Dispatcher(
            store=self.store,
            registry=self.registry,
            executor=self.executor,
            max_concurrency=self.config.max_concurrency,
            poll_interval=self.config.poll_interval,
            pause_halts_dispatch=self.config.pause_halts_dispatch,
            clock=clock,
        )

        self._running = False
        self._loops: list[asyncio.Task[None]] = []

    # Processors and observers

    def register_processor(self, job_type: str, processor: JobProcessor) -> None:
        self.registry.register(job_type, processor)

    def subscribe(
        self,
        handler: NotificationHandler,
        events: Iterable[JobEvent | str] | None = None,
    ) -> Callable[[], None]:
        """Subscribe to lifecycle notifications; returns an unsubscribe callable."""
        return self.channel.subscribe(handler, events)

    # Submission and lookup

    def submit(
        self,
        job_type: str,
        data: dict[str, Any] | None = None,
        *,
        priority: JobPriority | str = JobPriority.NORMAL,
        delay: float = 0.0,
        max_attempts: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Submit a job; returns its id immediately.

        Observe the outcome by polling ``get_job`` or subscribing to
        notifications. Execution errors are never raised to the caller.
        """
        return self.store.submit(
            job_type,
            data,
            priority=priority,
            delay=delay,
            max_attempts=max_attempts,
            metadata=metadata,
        )

    def get_job(self, job_id: str) -> Job | None:
        return self.store.get(job_id)

    def jobs_by_status(self, status: JobStatus | str) -> list[Job]:
        return self.store.by_status(status)

    def jobs_by_type(self, job_type: str) -> list[Job]:
        return self.store.by_type(job_type)

    def all_jobs(self) -> list[Job]:
        return self.store.all()

    # Administration

    def cancel(self, job_id: str) -> bool:
        """Cancel a job that has not reached a terminal status.

        Returns:
            True if cancelled, False if unknown or already completed/failed
        """
        job = self.store.get(job_id)
        if job is None or job.status.is_terminal:
            return False

        if job.status == JobStatus.PROCESSING:
            self.executor.abort(job)
        else:
            # Retrying jobs are counted as pending
            self.timers.disarm((RETRY_TIMER, job.id))
            self.metrics.pending_cancelled()

        job.error = str(JobCancelledError())
        self.store.set_status(job, JobStatus.FAILED)
        self.metrics.job_failed(job.type, "cancelled")

        logger.info(f"Job cancelled: {job_id}")
        self.channel.emit(JobEvent.CANCELLED, job)
        return True

    def get_metrics(self) -> QueueMetrics:
        return self.metrics.snapshot()

    def get_queue_status(self) -> dict[str, Any]:
        """Current counts plus the registered processor types."""
        return {
            "total_jobs": len(self.store),
            "pending_jobs": self.store.count(JobStatus.PENDING),
            "processing_jobs": self.executor.in_flight_count,
            "registered_processors": self.registry.types(),
            "paused": self.dispatcher.paused,
            "unregistered_types": self.unregistered_types(),
        }

    def unregistered_types(self) -> list[str]:
        """Job types with waiting jobs but no processor."""
        waiting = {
            job.type
            for status in (JobStatus.PENDING, JobStatus.RETRYING)
            for job in self.store.iter_status(status)
        }
        return sorted(t for t in waiting if not self.registry.has(t))

    def check_health(self) -> dict[str, Any]:
        """Health summary; unhealthy when jobs are stuck without a processor."""
        unregistered = self.unregistered_types()
        return {
            "healthy": not unregistered,
            "running": self._running,
            "paused": self.dispatcher.paused,
            "unregistered_types": unregistered,
            "in_flight": self.executor.in_flight_count,
            "max_concurrency": self.config.max_concurrency,
        }

    def validate(self, job_types: Iterable[str]) -> None:
        """Raise if any of ``job_types`` has no registered processor.

        Raises:
            UnregisteredProcessorError: Listing the missing types
        """
        missing = [t for t in job_types if not self.registry.has(t)]
        if missing:
            raise UnregisteredProcessorError(missing)

    def cleanup(self, older_than: float | None = None) -> int:
        """Remove terminal jobs last updated more than ``older_than`` seconds ago.

        Returns:
            Number of jobs removed
        """
        max_age = self.config.cleanup_max_age if older_than is None else older_than
        cutoff = self.clock() - timedelta(seconds=max_age)

        stale = [
            job.id
            for status in (JobStatus.COMPLETED, JobStatus.FAILED)
            for job in self.store.iter_status(status)
            if job.updated_at < cutoff
        ]
        for job_id in stale:
            self.store.remove(job_id)

        cleaned = len(stale)
        if cleaned:
            self.metrics.jobs_cleaned(cleaned)
            logger.info(f"Cleaned {cleaned} terminal job(s)")
            self.channel.emit(JobEvent.QUEUE_CLEANED, cleaned=cleaned)
        return cleaned

    def pause(self) -> None:
        """Announce a pause.

        Dispatch only stops when ``pause_halts_dispatch`` is configured;
        otherwise this is a hook for external enforcement.
        """
        self.dispatcher.paused = True
        if not self.config.pause_halts_dispatch:
            logger.info("Queue paused (notification only, dispatch continues)")
        else:
            logger.info("Queue paused")
        self.channel.emit(JobEvent.QUEUE_PAUSED)

    def resume(self) -> None:
        """Clear the pause flag and dispatch immediately if running."""
        self.dispatcher.paused = False
        logger.info("Queue resumed")
        self.channel.emit(JobEvent.QUEUE_RESUMED)
        if self._running:
            self.dispatcher.tick()

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the dispatch and cleanup loops."""
        if self._running:
            logger.warning("JobQueue is already running")
            return

        self._running = True
        loop = asyncio.get_running_loop()
        self._loops = [
            loop.create_task(self.dispatcher.run(), name="bgjobs:dispatcher"),
            loop.create_task(self._cleanup_loop(), name="bgjobs:cleanup"),
        ]

        for job_type in self.unregistered_types():
            logger.warning(f"No processor registered for waiting job type: {job_type}")
        logger.info(f"Job queue started with {len(self.registry)} processor(s)")

    async def stop(self, drain: bool = False) -> None:
        """Stop the loops and timers.

        Jobs left mid-attempt or waiting for a retry go back to ``pending``
        so a later ``start`` picks them up again.

        Args:
            drain: Wait for in-flight jobs instead of cancelling them
        """
        if not self._running:
            return

        self._running = False
        self.dispatcher.stop()
        for task in self._loops:
            task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()

        await self.executor.shutdown(drain=drain)
        interrupted = self.executor.requeue_interrupted()
        self.timers.clear()
        # Retry timers are gone; make those jobs eligible for the next start
        released = self.retry.release_waiting()
        if interrupted or released:
            logger.info(
                f"Returned {len(interrupted)} interrupted and {len(released)} retrying "
                "job(s) to pending"
            )
        await self.channel.drain()

        logger.info("Job queue stopped")

    async def _cleanup_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.cleanup_interval)
            try:
                self.cleanup()
            except Exception:
                logger.exception("Cleanup sweep failed")

    async def __aenter__(self) -> JobQueue:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

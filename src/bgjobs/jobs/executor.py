"""Single-job execution and retry policy.

The executor moves a selected job to ``processing``, arms its timeout
guard, awaits the processor in its own task and routes the outcome:

- success: ``completed`` with the processor output as ``result``
- processor error or timeout: handed to the ``RetryController``, which
  either schedules a fixed-delay retry or fails the job terminally

The timeout guard is a timer, not a wrapper around the processor call. When
``cancel_in_flight`` is set the processor task is also cancelled, which
interrupts it at its next ``await``; otherwise it keeps running in the
background. Either way an outcome that arrives after its attempt was timed
out or cancelled is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Any

from opentelemetry.trace import Status, StatusCode

from bgjobs.jobs.errors import JobError, ProcessingTimeoutError, ProcessorError
from bgjobs.jobs.events import JobEvent, NotificationChannel
from bgjobs.jobs.metrics import MetricsCollector
from bgjobs.jobs.models import Job, JobStatus, utcnow
from bgjobs.jobs.registry import JobProcessor
from bgjobs.jobs.store import JobStore
from bgjobs.jobs.timers import TimerRegistry
from bgjobs.observability.logging import LogContext
from bgjobs.observability.tracing import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

TIMEOUT_TIMER = "timeout"
RETRY_TIMER = "retry"


class RetryController:
    """Reschedules failed attempts with a fixed delay, or fails the job."""

    def __init__(
        self,
        store: JobStore,
        metrics: MetricsCollector,
        channel: NotificationChannel,
        timers: TimerRegistry,
        retry_delay: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.metrics = metrics
        self.channel = channel
        self.timers = timers
        self.retry_delay = retry_delay
        self.clock = clock

    def handle_failure(self, job: Job, error: JobError) -> None:
        """Record ``error`` on the job and decide retry or terminal failure."""
        job.error = str(error)

        if job.attempts < job.max_attempts:
            self.store.set_status(job, JobStatus.RETRYING)
            job.scheduled_at = self.clock() + timedelta(seconds=self.retry_delay)
            self.metrics.job_retrying(job.type)
            logger.info(
                f"Job queued for retry: {job.id} "
                f"(attempt {job.attempts}/{job.max_attempts}) in {self.retry_delay}s"
            )
            self.channel.emit(JobEvent.RETRYING, job)
            self.timers.arm((RETRY_TIMER, job.id), self.retry_delay, partial(self._release, job))
        else:
            self.store.set_status(job, JobStatus.FAILED)
            self.metrics.job_failed(job.type, _failure_reason(error))
            logger.warning(
                f"Job failed after {job.attempts} attempt(s): {job.id} - {job.error}"
            )
            self.channel.emit(JobEvent.FAILED, job)

    def release_waiting(self) -> list[Job]:
        """Make every retrying job pending again, without waiting for its timer.

        Dispatch still honours each job's ``scheduled_at``.
        """
        jobs = list(self.store.iter_status(JobStatus.RETRYING))
        for job in jobs:
            self.timers.disarm((RETRY_TIMER, job.id))
            self._release(job)
        return jobs

    def _release(self, job: Job) -> None:
        # A cancelled (now failed) job must not be resurrected
        if job.status == JobStatus.RETRYING and job.id in self.store:
            self.store.set_status(job, JobStatus.PENDING)
            logger.debug(f"Job eligible again: {job.id}")


def _failure_reason(error: JobError) -> str:
    if isinstance(error, ProcessingTimeoutError):
        return "timeout"
    return "error"


@dataclass
class _Execution:
    job: Job
    task: asyncio.Task[Any]
    attempt: int
    started: float


class Executor:
    """Runs jobs and keeps the in-flight set."""

    def __init__(
        self,
        store: JobStore,
        metrics: MetricsCollector,
        channel: NotificationChannel,
        timers: TimerRegistry,
        retry: RetryController,
        processing_timeout: float = 300.0,
        cancel_in_flight: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.metrics = metrics
        self.channel = channel
        self.timers = timers
        self.retry = retry
        self.processing_timeout = processing_timeout
        self.cancel_in_flight = cancel_in_flight
        self.clock = clock
        self._in_flight: dict[str, _Execution] = {}
        # Includes tasks of abandoned attempts that are still running
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def in_flight_ids(self) -> list[str]:
        return list(self._in_flight)

    def is_in_flight(self, job_id: str) -> bool:
        return job_id in self._in_flight

    def launch(self, job: Job, processor: JobProcessor) -> asyncio.Task[Any]:
        """Start a job attempt.

        All bookkeeping happens before this returns; the processor itself
        runs in the returned task.
        """
        attempt = job.attempts + 1
        task = asyncio.get_running_loop().create_task(
            self._run(job, processor, attempt),
            name=f"job:{job.id}:{attempt}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._in_flight[job.id] = _Execution(
            job=job, task=task, attempt=attempt, started=time.perf_counter()
        )

        job.attempts = attempt
        job.error = None
        self.store.set_status(job, JobStatus.PROCESSING)
        self.metrics.job_started()

        logger.info(f"Processing job: {job.id} ({job.type}, attempt {attempt}/{job.max_attempts})")
        self.channel.emit(JobEvent.PROCESSING, job)

        self.timers.arm(
            (TIMEOUT_TIMER, job.id),
            self.processing_timeout,
            partial(self._on_timeout, job, attempt),
        )
        return task

    def abort(self, job: Job) -> bool:
        """Drop an in-flight attempt without recording an outcome.

        Used by administrative cancellation. Returns False if the job was
        not in flight.
        """
        execution = self._release_slot(job)
        if execution is None:
            return False
        if self.cancel_in_flight:
            execution.task.cancel()
        return True

    async def shutdown(self, drain: bool = False) -> None:
        """Wait for (``drain``) or cancel all running processor tasks.

        Tasks of abandoned attempts are always cancelled.
        """
        tasks = list(self._tasks)
        if not tasks:
            return
        current = {execution.task for execution in self._in_flight.values()}
        for task in tasks:
            if not drain or task not in current:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def requeue_interrupted(self) -> list[Job]:
        """Return jobs whose attempt was cut short by shutdown to ``pending``.

        The interrupted attempt does not count against ``max_attempts``.
        """
        requeued: list[Job] = []
        for execution in list(self._in_flight.values()):
            job = execution.job
            self._release_slot(job)
            job.attempts = max(job.attempts - 1, 0)
            self.store.set_status(job, JobStatus.PENDING)
            self.metrics.job_requeued()
            requeued.append(job)
        return requeued

    async def _run(self, job: Job, processor: JobProcessor, attempt: int) -> None:
        with (
            LogContext(job_id=job.id, job_type=job.type),
            tracer.start_as_current_span("job.execute") as span,
        ):
            span.set_attribute("job.id", job.id)
            span.set_attribute("job.type", job.type)
            span.set_attribute("job.attempt", attempt)

            try:
                result = await processor(job)
            except asyncio.CancelledError:
                logger.debug(f"Processor task cancelled: {job.id} (attempt {attempt})")
                raise
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                if not self._is_current(job, attempt):
                    logger.debug(f"Ignoring late failure of stale attempt: {job.id}")
                    return
                logger.error(f"Job attempt failed: {job.id} - {e}")
                self._release_slot(job)
                self.retry.handle_failure(job, ProcessorError.from_exception(e))
                return

            if not self._is_current(job, attempt):
                logger.debug(f"Ignoring late result of stale attempt: {job.id}")
                return

            execution = self._release_slot(job)
            duration_ms = (time.perf_counter() - execution.started) * 1000 if execution else 0.0
            self._complete(job, result, duration_ms)

    def _complete(self, job: Job, result: Any, duration_ms: float) -> None:
        job.result = result
        job.error = None
        job.completed_at = self.clock()
        job.set_progress(100)
        self.store.set_status(job, JobStatus.COMPLETED)
        self.metrics.job_completed(job.type, duration_ms)

        logger.info(f"Job completed: {job.id} in {duration_ms:.1f}ms")
        self.channel.emit(JobEvent.COMPLETED, job)

    def _on_timeout(self, job: Job, attempt: int) -> None:
        if not self._is_current(job, attempt):
            return
        execution = self._release_slot(job)
        if execution is not None and self.cancel_in_flight:
            execution.task.cancel()

        error = ProcessingTimeoutError(self.processing_timeout)
        logger.error(f"Job attempt timed out: {job.id} - {error}")
        self.retry.handle_failure(job, error)

    def _is_current(self, job: Job, attempt: int) -> bool:
        execution = self._in_flight.get(job.id)
        return (
            execution is not None
            and execution.attempt == attempt
            and job.status == JobStatus.PROCESSING
        )

    def _release_slot(self, job: Job) -> _Execution | None:
        execution = self._in_flight.pop(job.id, None)
        if execution is None:
            return None
        self.timers.disarm((TIMEOUT_TIMER, job.id))
        self.metrics.job_left_processing()
        return execution

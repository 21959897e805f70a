"""In-memory job table.

Keeps every known job keyed by id, plus secondary indexes by status and by
type that are maintained incrementally on each status change. All access
happens on the event loop thread, between suspension points, so no locking
is needed.

Example:
    store = JobStore(metrics=MetricsCollector(), channel=NotificationChannel())
    job_id = store.submit("cdn-purge", {"paths": ["/a.png"]}, priority="high")
    job = store.get(job_id)
    pending = store.by_status(JobStatus.PENDING)
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from typing import Any

from bgjobs.jobs.events import JobEvent, NotificationChannel
from bgjobs.jobs.metrics import MetricsCollector
from bgjobs.jobs.models import (
    DEFAULT_MAX_ATTEMPTS,
    Job,
    JobPriority,
    JobStatus,
    generate_job_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class JobStore:
    """Owns the table of all known jobs."""

    def __init__(
        self,
        metrics: MetricsCollector,
        channel: NotificationChannel,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.metrics = metrics
        self.channel = channel
        self.default_max_attempts = default_max_attempts
        self.clock = clock
        self._jobs: dict[str, Job] = {}
        # dicts used as insertion-ordered sets
        self._by_status: dict[JobStatus, dict[str, Job]] = {status: {} for status in JobStatus}
        self._by_type: dict[str, dict[str, Job]] = {}
        self._sequence = itertools.count(1)

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
        """Add a job to the table.

        Args:
            job_type: Key of the processor that will handle the job
            data: Payload passed verbatim to the processor
            priority: critical, high, normal or low
            delay: Seconds before the job becomes eligible
            max_attempts: Override the default attempt ceiling
            metadata: Opaque caller data, never interpreted

        Returns:
            Job ID for tracking

        Raises:
            ValueError: On an unknown priority, negative delay or
                ``max_attempts`` below 1
        """
        if not job_type:
            raise ValueError("Job type cannot be empty")
        try:
            job_priority = JobPriority(priority)
        except ValueError:
            allowed = ", ".join(p.value for p in JobPriority)
            raise ValueError(f"Invalid priority {priority!r} (allowed: {allowed})") from None
        if delay < 0:
            raise ValueError("delay must be >= 0 seconds")
        attempts_ceiling = max_attempts if max_attempts is not None else self.default_max_attempts
        if attempts_ceiling < 1:
            raise ValueError("max_attempts must be >= 1")

        now = self.clock()
        job = Job(
            id=generate_job_id(),
            type=job_type,
            data=data if data is not None else {},
            priority=job_priority,
            status=JobStatus.PENDING,
            attempts=0,
            max_attempts=attempts_ceiling,
            created_at=now,
            updated_at=now,
            scheduled_at=now + timedelta(seconds=delay),
            metadata=metadata if metadata is not None else {},
            sequence=next(self._sequence),
        )
        while job.id in self._jobs:
            job.id = generate_job_id()

        self._jobs[job.id] = job
        self._by_status[job.status][job.id] = job
        self._by_type.setdefault(job.type, {})[job.id] = job
        self.metrics.job_submitted(job.type, job.priority.value)

        logger.debug(f"Job submitted: {job.id} ({job_type}, priority={job_priority.value})")
        self.channel.emit(JobEvent.ADDED, job)
        return job.id

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def by_status(self, status: JobStatus | str) -> list[Job]:
        return list(self._by_status[JobStatus(status)].values())

    def by_type(self, job_type: str) -> list[Job]:
        return list(self._by_type.get(job_type, {}).values())

    def all(self) -> list[Job]:
        return list(self._jobs.values())

    def iter_status(self, status: JobStatus) -> Iterator[Job]:
        """Iterate the status index without copying."""
        return iter(self._by_status[status].values())

    def count(self, status: JobStatus) -> int:
        return len(self._by_status[status])

    def set_status(self, job: Job, status: JobStatus) -> None:
        """Move a job to ``status`` and refresh ``updated_at``."""
        if job.status != status:
            self._by_status[job.status].pop(job.id, None)
            self._by_status[status][job.id] = job
            job.status = status
        job.updated_at = self.clock()

    def remove(self, job_id: str) -> Job | None:
        job = self._jobs.pop(job_id, None)
        if job is None:
            return None
        self._by_status[job.status].pop(job_id, None)
        by_type = self._by_type.get(job.type)
        if by_type is not None:
            by_type.pop(job_id, None)
            if not by_type:
                del self._by_type[job.type]
        return job

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

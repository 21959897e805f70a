"""Recurring dispatch tick.

Every ``poll_interval`` seconds the dispatcher fills free concurrency slots
with eligible pending jobs: due (``scheduled_at <= now``) and with a
registered processor. Candidates are ordered by priority rank (highest
first), then by creation time, then by submission order. The policy is
greedy: a steady stream of critical jobs can delay low priority jobs
indefinitely.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from bgjobs.jobs.executor import Executor
from bgjobs.jobs.models import Job, JobStatus, utcnow
from bgjobs.jobs.registry import JobProcessor, ProcessorRegistry
from bgjobs.jobs.store import JobStore

logger = logging.getLogger(__name__)


def _dispatch_order(job: Job) -> tuple[int, datetime, int]:
    return (-job.priority.rank, job.created_at, job.sequence)


class Dispatcher:
    def __init__(
        self,
        store: JobStore,
        registry: ProcessorRegistry,
        executor: Executor,
        max_concurrency: int = 5,
        poll_interval: float = 1.0,
        pause_halts_dispatch: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self.executor = executor
        self.max_concurrency = max_concurrency
        self.poll_interval = poll_interval
        self.pause_halts_dispatch = pause_halts_dispatch
        self.clock = clock
        self.paused = False
        self._running = False
        self._warned_types: set[str] = set()

    @property
    def available_slots(self) -> int:
        return self.max_concurrency - self.executor.in_flight_count

    def select(self, limit: int) -> list[Job]:
        """Eligible pending jobs in dispatch order, at most ``limit``."""
        return [job for job, _ in self._candidates(limit)]

    def _candidates(self, limit: int) -> list[tuple[Job, JobProcessor]]:
        if limit <= 0:
            return []

        now = self.clock()
        candidates: list[tuple[Job, JobProcessor]] = []
        unregistered: set[str] = set()

        for job in self.store.iter_status(JobStatus.PENDING):
            if not job.is_due(now):
                continue
            processor = self.registry.get(job.type)
            if processor is None:
                unregistered.add(job.type)
                continue
            candidates.append((job, processor))

        self._warn_unregistered(unregistered)

        candidates.sort(key=lambda candidate: _dispatch_order(candidate[0]))
        return candidates[:limit]

    def tick(self) -> list[Job]:
        """Run one dispatch cycle and return the launched jobs.

        Must be called from the event loop; launched jobs run in their own
        tasks and are not awaited.
        """
        if self.paused and self.pause_halts_dispatch:
            return []

        slots = self.available_slots
        if slots <= 0:
            return []

        launched: list[Job] = []
        for job, processor in self._candidates(slots):
            self.executor.launch(job, processor)
            launched.append(job)

        if launched:
            logger.debug(f"Dispatched {len(launched)} job(s), {self.available_slots} slot(s) free")
        return launched

    async def run(self) -> None:
        """Tick until ``stop`` is called."""
        self._running = True
        logger.info(
            f"Dispatcher started (max_concurrency={self.max_concurrency}, "
            f"poll_interval={self.poll_interval}s)"
        )
        try:
            while self._running:
                try:
                    self.tick()
                except Exception:
                    logger.exception("Dispatcher tick failed")
                await asyncio.sleep(self.poll_interval)
        finally:
            self._running = False
            logger.info("Dispatcher stopped")

    def stop(self) -> None:
        self._running = False

    def _warn_unregistered(self, job_types: set[str]) -> None:
        # Re-arm warnings for types that have since been registered
        self._warned_types = {t for t in self._warned_types if not self.registry.has(t)}
        for job_type in sorted(job_types - self._warned_types):
            logger.warning(
                f"Pending jobs of type {job_type!r} have no registered processor "
                "and will not be dispatched"
            )
            self._warned_types.add(job_type)

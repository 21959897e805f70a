"""Processor registry mapping job types to async handlers.

Example:
    registry = ProcessorRegistry()

    async def echo(job: Job) -> dict:
        return {"echo": job.data["value"]}

    registry.register("echo", echo)

    # Or with the decorator
    @job_processor("echo")
    async def echo(job: Job) -> dict:
        ...

    registry.register_all([echo])
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bgjobs.jobs.models import Job

logger = logging.getLogger(__name__)

# Type alias for job processors
JobProcessor = Callable[["Job"], Awaitable[Any]]


class ProcessorRegistry:
    """One processor per job type; re-registration overwrites."""

    def __init__(self) -> None:
        self._processors: dict[str, JobProcessor] = {}

    def register(self, job_type: str, processor: JobProcessor) -> None:
        """Register a processor for a job type.

        Args:
            job_type: Job type key (e.g., "file-compression")
            processor: Async function receiving the full job record
        """
        if job_type in self._processors:
            logger.info(f"Replacing processor for job type: {job_type}")
        else:
            logger.info(f"Registered processor for job type: {job_type}")
        self._processors[job_type] = processor

    def register_all(self, processors: Iterable[JobProcessor]) -> None:
        """Register processors tagged with ``@job_processor``."""
        for processor in processors:
            job_type = getattr(processor, "__job_type__", None)
            if job_type is None:
                raise ValueError(
                    f"{getattr(processor, '__name__', processor)!r} is not tagged with @job_processor"
                )
            self.register(job_type, processor)

    def unregister(self, job_type: str) -> bool:
        if self._processors.pop(job_type, None) is None:
            return False
        logger.info(f"Unregistered processor for job type: {job_type}")
        return True

    def get(self, job_type: str) -> JobProcessor | None:
        return self._processors.get(job_type)

    def has(self, job_type: str) -> bool:
        return job_type in self._processors

    def types(self) -> list[str]:
        """Registered job types in registration order."""
        return list(self._processors)

    def __len__(self) -> int:
        return len(self._processors)


def job_processor(job_type: str) -> Callable[[JobProcessor], JobProcessor]:
    """Decorator to mark a coroutine function as the processor for a job type.

    Example:
        @job_processor("cdn-purge")
        async def purge(job: Job) -> dict:
            ...
    """

    def decorator(func: JobProcessor) -> JobProcessor:
        func.__job_type__ = job_type  # type: ignore[attr-defined]
        return func

    return decorator

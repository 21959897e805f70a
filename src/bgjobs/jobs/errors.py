"""Error taxonomy for job execution.

None of these propagate to ``submit`` callers: the engine records the
message on ``Job.error`` and announces the outcome through notifications.
``UnregisteredProcessorError`` is only raised by explicit startup
validation (``JobQueue.validate``).
"""

from __future__ import annotations

CANCELLED_MESSAGE = "Job cancelled"


class JobError(Exception):
    """Base exception for job engine errors."""

    pass


class UnregisteredProcessorError(JobError):
    """No processor is registered for one or more job types."""

    def __init__(self, job_types: list[str]) -> None:
        self.job_types = sorted(job_types)
        super().__init__(
            f"No processor registered for job type(s): {', '.join(self.job_types)}"
        )


class ProcessingTimeoutError(JobError):
    """The timeout guard fired before the processor settled."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Job timed out after {int(timeout * 1000)}ms")


class ProcessorError(JobError):
    """The processor raised; the original exception is kept as ``__cause__``."""

    @classmethod
    def from_exception(cls, exc: BaseException) -> ProcessorError:
        message = str(exc) or type(exc).__name__
        error = cls(message)
        error.__cause__ = exc
        return error


class JobCancelledError(JobError):
    """The job was cancelled administratively."""

    def __init__(self) -> None:
        super().__init__(CANCELLED_MESSAGE)

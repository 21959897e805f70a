"""Job record and lifecycle enums.

A job moves through::

    pending -> processing -> completed
                          -> retrying -> pending   (the only cycle)
                          -> failed

``completed`` and ``failed`` are terminal. Status changes go through
``JobStore.set_status`` so the store's secondary indexes stay in sync.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DEFAULT_MAX_ATTEMPTS = 3

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_job_id() -> str:
    """Generate an id like ``job_1718000000000_k3j9x0q2a``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))  # nosec B311 - not security relevant
    return f"job_{int(time.time() * 1000)}_{suffix}"


class JobStatus(str, Enum):
    """Job lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobPriority(str, Enum):
    """Job priority. Used for ordering only, never for preemption."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Sort rank, higher runs first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    JobPriority.CRITICAL: 4,
    JobPriority.HIGH: 3,
    JobPriority.NORMAL: 2,
    JobPriority.LOW: 1,
}


@dataclass
class Job:
    """A unit of deferred work tracked by the engine."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    priority: JobPriority = JobPriority.NORMAL
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    scheduled_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result: Any = None
    progress: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    # Submission order, tie-break for identical created_at values
    sequence: int = field(default=0, repr=False, compare=False)

    def set_progress(self, value: float) -> None:
        """Set advisory progress, clamped to 0-100."""
        self.progress = max(0.0, min(100.0, float(value)))

    def is_due(self, now: datetime) -> bool:
        """Whether the job's scheduled time has been reached."""
        return self.scheduled_at is None or self.scheduled_at <= now

    def to_dict(self) -> dict[str, Any]:
        """Serialize job to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "priority": self.priority.value,
            "status": self.status.value,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "result": self.result,
            "progress": self.progress,
            "metadata": self.metadata,
        }

"""Tests for the in-memory job store."""

from datetime import timedelta

import pytest

from bgjobs.jobs.events import JobEvent, Notification, NotificationChannel
from bgjobs.jobs.metrics import MetricsCollector
from bgjobs.jobs.models import JobPriority, JobStatus
from bgjobs.jobs.store import JobStore


class TestJobStore:
    """Tests for JobStore."""

    @pytest.fixture
    def metrics(self) -> MetricsCollector:
        return MetricsCollector()

    @pytest.fixture
    def notifications(self) -> list[Notification]:
        return []

    @pytest.fixture
    def store(
        self, metrics: MetricsCollector, notifications: list[Notification], clock
    ) -> JobStore:
        channel = NotificationChannel()
        channel.subscribe(notifications.append)
        return JobStore(metrics=metrics, channel=channel, clock=clock)

    def test_submit_creates_pending_job(self, store: JobStore, clock) -> None:
        """Submitted jobs start pending with zero attempts."""
        job_id = store.submit("echo", {"value": 42})
        job = store.get(job_id)

        assert job is not None
        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert job.max_attempts == 3
        assert job.data == {"value": 42}
        assert job.created_at == clock.now
        assert job.scheduled_at == clock.now

    def test_submit_updates_metrics_and_emits(
        self,
        store: JobStore,
        metrics: MetricsCollector,
        notifications: list[Notification],
    ) -> None:
        """Submission counts the job and announces it."""
        job_id = store.submit("echo")

        snapshot = metrics.snapshot()
        assert snapshot.total_jobs == 1
        assert snapshot.pending_jobs == 1
        assert [n.event for n in notifications] == [JobEvent.ADDED]
        assert notifications[0].job is not None
        assert notifications[0].job.id == job_id

    def test_submit_with_delay(self, store: JobStore, clock) -> None:
        """Delay pushes scheduled_at into the future."""
        job = store.get(store.submit("echo", delay=30))

        assert job is not None
        assert job.scheduled_at == clock.now + timedelta(seconds=30)

    def test_submit_options(self, store: JobStore) -> None:
        """Priority, attempts ceiling and metadata are recorded."""
        job = store.get(
            store.submit("echo", priority="critical", max_attempts=5, metadata={"source": "test"})
        )

        assert job is not None
        assert job.priority == JobPriority.CRITICAL
        assert job.max_attempts == 5
        assert job.metadata == {"source": "test"}

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"priority": "urgent"},
            {"delay": -1},
            {"max_attempts": 0},
        ],
    )
    def test_submit_rejects_invalid_arguments(self, store: JobStore, kwargs: dict) -> None:
        """Invalid submission arguments raise ValueError."""
        with pytest.raises(ValueError):
            store.submit("echo", **kwargs)
        assert len(store) == 0

    def test_submit_rejects_empty_type(self, store: JobStore) -> None:
        """Job type is required."""
        with pytest.raises(ValueError, match="empty"):
            store.submit("")

    def test_set_status_updates_indexes(self, store: JobStore, clock) -> None:
        """Status changes move jobs between status indexes."""
        job = store.get(store.submit("echo"))
        assert job is not None

        clock.advance(5)
        store.set_status(job, JobStatus.PROCESSING)

        assert store.by_status(JobStatus.PENDING) == []
        assert store.by_status("processing") == [job]
        assert store.count(JobStatus.PROCESSING) == 1
        assert job.updated_at == clock.now

    def test_by_type(self, store: JobStore) -> None:
        """Jobs are indexed by type in submission order."""
        a = store.submit("a")
        store.submit("b")
        a2 = store.submit("a")

        assert [j.id for j in store.by_type("a")] == [a, a2]
        assert store.by_type("missing") == []

    def test_remove(self, store: JobStore) -> None:
        """Removed jobs disappear from every index."""
        job_id = store.submit("echo")

        removed = store.remove(job_id)

        assert removed is not None
        assert job_id not in store
        assert store.by_status(JobStatus.PENDING) == []
        assert store.by_type("echo") == []
        assert store.remove(job_id) is None

    def test_sequence_increases(self, store: JobStore) -> None:
        """Submission order is recorded for tie-breaking."""
        first = store.get(store.submit("echo"))
        second = store.get(store.submit("echo"))

        assert first is not None and second is not None
        assert first.created_at == second.created_at
        assert second.sequence > first.sequence

"""Tests for job scheduler functionality."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from bgjobs.jobs.models import JobPriority
from bgjobs.jobs.queue import JobQueue, QueueConfig
from bgjobs.jobs.scheduler import (
    SCHEDULE_PRESETS,
    CronExpression,
    JobScheduler,
    ScheduledJob,
    add_default_schedules,
)


class TestCronExpression:
    """Tests for CronExpression parsing and matching."""

    def test_parse_all_wildcards(self) -> None:
        """Parses all wildcard expression."""
        cron = CronExpression("* * * * *")

        assert len(cron.minute) == 60  # 0-59
        assert len(cron.hour) == 24  # 0-23
        assert len(cron.day_of_month) == 31  # 1-31
        assert len(cron.month) == 12  # 1-12
        assert len(cron.day_of_week) == 7  # 0-6

    def test_parse_specific_values(self) -> None:
        """Parses specific values."""
        cron = CronExpression("30 14 1 6 0")

        assert cron.minute == {30}
        assert cron.hour == {14}
        assert cron.day_of_month == {1}
        assert cron.month == {6}
        assert cron.day_of_week == {0}

    def test_parse_step_values(self) -> None:
        """Parses step expressions (*/n)."""
        cron = CronExpression("*/15 * * * *")

        assert cron.minute == {0, 15, 30, 45}

    def test_parse_range_and_list(self) -> None:
        """Parses range (n-m) and list (n,m) expressions."""
        cron = CronExpression("0,30 9-11 * * *")

        assert cron.minute == {0, 30}
        assert cron.hour == {9, 10, 11}

    @pytest.mark.parametrize(
        ("expression", "match"),
        [
            ("* * *", "expected 5 parts"),
            ("60 * * * *", "out of range"),
            ("* 24 * * *", "out of range"),
            ("*/0 * * * *", "Invalid cron step"),
        ],
    )
    def test_parse_invalid_expression(self, expression: str, match: str) -> None:
        """Raises error for invalid expressions."""
        with pytest.raises(ValueError, match=match):
            CronExpression(expression)

    def test_matches_specific_time(self) -> None:
        """Matches specific datetime."""
        cron = CronExpression("30 14 * * *")

        assert cron.matches(datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)) is True
        assert cron.matches(datetime(2024, 1, 15, 14, 31, tzinfo=timezone.utc)) is False

    def test_matches_day_of_week(self) -> None:
        """Day of week 0 is Sunday."""
        cron = CronExpression("0 3 * * 0")

        # 2024-01-14 is a Sunday
        assert cron.matches(datetime(2024, 1, 14, 3, 0, tzinfo=timezone.utc))
        assert not cron.matches(datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc))

    def test_next_run_daily(self) -> None:
        """Next run of a daily schedule is the following occurrence."""
        cron = CronExpression("0 2 * * *")

        after = datetime(2024, 1, 15, 1, 59, 30, tzinfo=timezone.utc)
        assert cron.next_run(after) == datetime(2024, 1, 15, 2, 0, tzinfo=timezone.utc)

        after = datetime(2024, 1, 15, 2, 0, tzinfo=timezone.utc)
        assert cron.next_run(after) == datetime(2024, 1, 16, 2, 0, tzinfo=timezone.utc)

    def test_next_run_crosses_month(self) -> None:
        """Next run rolls over month boundaries."""
        cron = CronExpression("0 0 1 * *")

        after = datetime(2024, 1, 31, 23, 59, tzinfo=timezone.utc)
        assert cron.next_run(after) == datetime(2024, 2, 1, 0, 0, tzinfo=timezone.utc)

    def test_next_run_weekly(self) -> None:
        """Weekly schedule lands on the next Sunday."""
        cron = CronExpression(SCHEDULE_PRESETS["weekly_sunday_3am"])

        after = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)  # Monday
        assert cron.next_run(after) == datetime(2024, 1, 21, 3, 0, tzinfo=timezone.utc)


class TestSchedulePresets:
    """Tests for schedule presets."""

    def test_presets_are_valid(self) -> None:
        """All presets are valid cron expressions."""
        for expression in SCHEDULE_PRESETS.values():
            cron = CronExpression(expression)
            assert len(cron.minute) > 0
            assert len(cron.hour) > 0

    def test_daily_2am_preset(self) -> None:
        """Daily 2am preset matches 02:00 only."""
        cron = CronExpression(SCHEDULE_PRESETS["daily_2am"])

        assert cron.matches(datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc))
        assert not cron.matches(datetime(2024, 1, 1, 2, 1, tzinfo=timezone.utc))
        assert not cron.matches(datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc))


class TestScheduledJob:
    """Tests for ScheduledJob dataclass."""

    def test_job_creation(self) -> None:
        """ScheduledJob can be created."""
        job = ScheduledJob(
            name="cleanup",
            job_type="file-cleanup",
            cron="0 2 * * *",
            data={"days_old": 30},
        )

        assert job.name == "cleanup"
        assert job.job_type == "file-cleanup"
        assert job.priority == JobPriority.NORMAL
        assert job.enabled is True


class TestJobScheduler:
    """Tests for JobScheduler class."""

    @pytest.fixture
    def mock_queue(self) -> MagicMock:
        """Create mock job queue."""
        queue = MagicMock()
        queue.submit = MagicMock(return_value="job-123")
        return queue

    @pytest.fixture
    def now(self) -> list[datetime]:
        return [datetime(2024, 1, 15, 1, 58, tzinfo=timezone.utc)]

    @pytest.fixture
    def scheduler(self, mock_queue: MagicMock, now: list[datetime]) -> JobScheduler:
        """Create scheduler with mocked queue and a controllable clock."""
        return JobScheduler(queue=mock_queue, clock=lambda: now[0])

    def test_add_job(self, scheduler: JobScheduler) -> None:
        """Adding a job registers it with its next run time."""
        job = scheduler.add_job(
            name="cleanup",
            job_type="file-cleanup",
            cron="0 2 * * *",
            priority="low",
        )

        assert job.job_type == "file-cleanup"
        assert job.priority == JobPriority.LOW
        assert job.next_run == datetime(2024, 1, 15, 2, 0, tzinfo=timezone.utc)
        assert "cleanup" in scheduler._jobs

    def test_add_job_uses_name_as_type(self, scheduler: JobScheduler) -> None:
        """Job uses name as job type if not specified."""
        job = scheduler.add_job(name="cleanup", cron="0 2 * * *")

        assert job.job_type == "cleanup"

    def test_add_job_invalid_cron(self, scheduler: JobScheduler) -> None:
        """Invalid cron expressions are rejected up front."""
        with pytest.raises(ValueError):
            scheduler.add_job(name="broken", cron="not a cron")
        assert scheduler.list_jobs() == []

    def test_remove_job(self, scheduler: JobScheduler) -> None:
        """Removing a job unregisters it."""
        scheduler.add_job(name="cleanup", cron="0 2 * * *")

        assert scheduler.remove_job("cleanup") is True
        assert scheduler.remove_job("cleanup") is False
        assert "cleanup" not in scheduler._jobs

    def test_enable_disable_job(self, scheduler: JobScheduler) -> None:
        """Enable and disable toggle the flag."""
        scheduler.add_job(name="cleanup", cron="0 2 * * *", enabled=False)

        assert scheduler.enable_job("cleanup") is True
        assert scheduler._jobs["cleanup"].enabled is True
        assert scheduler.disable_job("cleanup") is True
        assert scheduler._jobs["cleanup"].enabled is False
        assert scheduler.enable_job("missing") is False

    def test_check_schedules_submits_due_jobs(
        self, scheduler: JobScheduler, mock_queue: MagicMock, now: list[datetime]
    ) -> None:
        """Due schedules are submitted once and rescheduled."""
        job = scheduler.add_job(
            name="cleanup",
            job_type="file-cleanup",
            cron="0 2 * * *",
            data={"days_old": 30},
            priority="low",
        )

        assert scheduler.check_schedules() == []
        mock_queue.submit.assert_not_called()

        now[0] = datetime(2024, 1, 15, 2, 0, 10, tzinfo=timezone.utc)
        assert scheduler.check_schedules() == ["job-123"]

        mock_queue.submit.assert_called_once()
        args, kwargs = mock_queue.submit.call_args
        assert args == ("file-cleanup", {"days_old": 30})
        assert kwargs["priority"] == JobPriority.LOW
        assert kwargs["metadata"]["schedule_name"] == "cleanup"

        assert job.last_run == now[0]
        assert job.last_job_id == "job-123"
        assert job.next_run == datetime(2024, 1, 16, 2, 0, tzinfo=timezone.utc)

        # Same minute again does not resubmit
        assert scheduler.check_schedules() == []

    def test_disabled_job_not_submitted(
        self, scheduler: JobScheduler, mock_queue: MagicMock, now: list[datetime]
    ) -> None:
        """Disabled schedules are skipped."""
        scheduler.add_job(name="cleanup", cron="0 2 * * *", enabled=False)

        now[0] += timedelta(hours=1)
        scheduler.check_schedules()

        mock_queue.submit.assert_not_called()

    def test_submit_failure_logged(
        self, scheduler: JobScheduler, mock_queue: MagicMock, now: list[datetime]
    ) -> None:
        """A failing submission does not stop other schedules."""
        mock_queue.submit.side_effect = [ValueError("bad"), "job-456"]
        scheduler.add_job(name="first", cron="0 2 * * *")
        scheduler.add_job(name="second", cron="0 2 * * *")

        now[0] += timedelta(hours=1)

        assert scheduler.check_schedules() == ["job-456"]

    def test_run_now(self, scheduler: JobScheduler, mock_queue: MagicMock) -> None:
        """Manual trigger submits job immediately."""
        scheduler.add_job(
            name="cleanup",
            job_type="file-cleanup",
            cron="0 2 * * *",
            data={"days_old": 30},
        )

        job_id = scheduler.run_now("cleanup")

        assert job_id == "job-123"
        metadata = mock_queue.submit.call_args.kwargs["metadata"]
        assert metadata["manual_trigger"] is True

    def test_run_now_nonexistent(self, scheduler: JobScheduler, mock_queue: MagicMock) -> None:
        """Manual trigger of non-existent job returns None."""
        assert scheduler.run_now("nonexistent") is None
        mock_queue.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_stop(self, scheduler: JobScheduler, now: list[datetime]) -> None:
        """The background task checks schedules until stopped."""
        scheduler.check_interval = 0.01
        scheduler.add_job(name="cleanup", cron="0 2 * * *")
        now[0] += timedelta(hours=1)

        await scheduler.start()
        await scheduler.start()
        assert scheduler._task is not None

        await asyncio.sleep(0.03)
        await scheduler.stop()

        assert scheduler._task is None
        assert scheduler._jobs["cleanup"].last_job_id == "job-123"


class TestDefaultSchedules:
    """Tests for the standard maintenance schedules."""

    @pytest.mark.asyncio
    async def test_default_schedules_submit_into_queue(self) -> None:
        """Default schedules submit low priority maintenance jobs."""
        queue = JobQueue(QueueConfig())
        scheduler = JobScheduler(queue)

        jobs = add_default_schedules(scheduler)

        assert [(j.job_type, j.cron) for j in jobs] == [
            ("file-cleanup", "0 2 * * *"),
            ("database-maintenance", "0 3 * * 0"),
            ("analytics-processing", "0 * * * *"),
        ]
        assert all(j.priority == JobPriority.LOW for j in jobs)

        job_id = scheduler.run_now("daily-file-cleanup")
        assert job_id is not None
        job = queue.get_job(job_id)
        assert job is not None
        assert job.type == "file-cleanup"
        assert job.data == {"days_old": 30}
        assert job.metadata["scheduled"] is True

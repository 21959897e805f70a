"""Cron-like scheduler for recurring jobs.

Submits jobs into a ``JobQueue`` based on cron expressions:
- Minute, hour, day-of-month, month and day-of-week fields
- Manual triggering of a schedule

Example:
    scheduler = JobScheduler(queue)
    scheduler.add_job("nightly-cleanup", "file-cleanup", cron="0 2 * * *")
    scheduler.add_job("hourly-analytics", "analytics-processing", cron="0 * * * *")

    await scheduler.start()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from bgjobs.jobs.models import JobPriority, utcnow

if TYPE_CHECKING:
    from bgjobs.jobs.queue import JobQueue

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """A recurring job definition."""

    name: str
    job_type: str
    cron: str
    data: dict[str, Any] = field(default_factory=dict)
    priority: JobPriority = JobPriority.NORMAL
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_job_id: str | None = None


class CronExpression:
    """Parse and evaluate cron expressions.

    Supports standard 5-field cron format:
    - minute (0-59)
    - hour (0-23)
    - day of month (1-31)
    - month (1-12)
    - day of week (0-6, 0=Sunday)

    Special characters:
    - * : any value
    - */n : every n values
    - n-m : range from n to m
    - n,m : specific values n and m
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self._parse(expression)

    def _parse(self, expression: str) -> None:
        parts = expression.strip().split()
        if len(parts) != 5:
            raise ValueError(f"Invalid cron expression (expected 5 parts): {expression}")

        self.minute = self._parse_field(parts[0], 0, 59)
        self.hour = self._parse_field(parts[1], 0, 23)
        self.day_of_month = self._parse_field(parts[2], 1, 31)
        self.month = self._parse_field(parts[3], 1, 12)
        self.day_of_week = self._parse_field(parts[4], 0, 6)

    def _parse_field(self, field: str, min_val: int, max_val: int) -> set[int]:
        values: set[int] = set()

        for part in field.split(","):
            if part == "*":
                values.update(range(min_val, max_val + 1))
            elif part.startswith("*/"):
                step = int(part[2:])
                if step <= 0:
                    raise ValueError(f"Invalid cron step: {part}")
                values.update(range(min_val, max_val + 1, step))
            elif "-" in part:
                start, end = map(int, part.split("-"))
                values.update(range(start, end + 1))
            else:
                values.add(int(part))

        out_of_range = [v for v in values if v < min_val or v > max_val]
        if out_of_range:
            raise ValueError(
                f"Cron field {field!r} out of range {min_val}-{max_val}: {sorted(out_of_range)}"
            )
        return values

    def matches(self, dt: datetime) -> bool:
        """Check if datetime matches this cron expression."""
        # Cron: 0=Sun..6=Sat, Python weekday(): 0=Mon..6=Sun
        cron_weekday = (dt.weekday() + 1) % 7
        return (
            dt.minute in self.minute
            and dt.hour in self.hour
            and dt.day in self.day_of_month
            and dt.month in self.month
            and cron_weekday in self.day_of_week
        )

    def next_run(self, after: datetime | None = None) -> datetime:
        """First matching minute strictly after ``after``."""
        if after is None:
            after = utcnow()

        current = after.replace(second=0, microsecond=0)

        # Search for next matching time (max 1 year)
        for _ in range(366 * 24 * 60):
            current += timedelta(minutes=1)
            if self.matches(current):
                return current

        raise ValueError(f"No matching time found for: {self.expression}")


class JobScheduler:
    """Submits recurring jobs into a queue."""

    def __init__(
        self,
        queue: JobQueue,
        check_interval: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.queue = queue
        self.check_interval = check_interval
        self.clock = clock
        self._jobs: dict[str, ScheduledJob] = {}
        self._crons: dict[str, CronExpression] = {}
        self._running = False
        self._task: asyncio.Task[None] | None = None

    def add_job(
        self,
        name: str,
        job_type: str | None = None,
        cron: str = "* * * * *",
        data: dict[str, Any] | None = None,
        priority: JobPriority | str = JobPriority.NORMAL,
        enabled: bool = True,
    ) -> ScheduledJob:
        """Add a scheduled job.

        Args:
            name: Unique schedule name (also used as job type if not provided)
            job_type: Job type to submit
            cron: Cron expression (5-field format)
            data: Payload for each submission
            priority: Priority of submitted jobs
            enabled: Whether the schedule is active

        Returns:
            ScheduledJob instance
        """
        cron_expr = CronExpression(cron)

        job = ScheduledJob(
            name=name,
            job_type=job_type or name,
            cron=cron,
            data=data or {},
            priority=JobPriority(priority),
            enabled=enabled,
            next_run=cron_expr.next_run(self.clock()),
        )

        self._jobs[name] = job
        self._crons[name] = cron_expr

        logger.info(f"Scheduled job added: {name} ({cron}), next run: {job.next_run}")
        return job

    def remove_job(self, name: str) -> bool:
        if name in self._jobs:
            del self._jobs[name]
            del self._crons[name]
            logger.info(f"Scheduled job removed: {name}")
            return True
        return False

    def enable_job(self, name: str) -> bool:
        if name in self._jobs:
            self._jobs[name].enabled = True
            return True
        return False

    def disable_job(self, name: str) -> bool:
        if name in self._jobs:
            self._jobs[name].enabled = False
            return True
        return False

    def list_jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    async def start(self) -> None:
        """Start checking schedules in a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name="bgjobs:scheduler")
        logger.info(f"Scheduler started with {len(self._jobs)} schedule(s)")

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler stopped")

    async def _run(self) -> None:
        while self._running:
            self.check_schedules()
            await asyncio.sleep(self.check_interval)

    def check_schedules(self) -> list[str]:
        """Submit every due schedule; returns the submitted job ids."""
        now = self.clock()
        submitted: list[str] = []

        for name, job in self._jobs.items():
            if not job.enabled:
                continue

            if job.next_run and now >= job.next_run:
                try:
                    job_id = self._submit(job)
                except Exception as e:
                    logger.error(f"Failed to submit scheduled job {name}: {e}")
                    continue

                logger.info(f"Scheduled job submitted: {name} -> {job_id}")
                job.last_run = now
                job.next_run = self._crons[name].next_run(now)
                submitted.append(job_id)

        return submitted

    def run_now(self, name: str) -> str | None:
        """Manually trigger a schedule immediately.

        Returns:
            Job ID if submitted, None if the schedule is not found
        """
        job = self._jobs.get(name)
        if job is None:
            return None

        job_id = self._submit(job, manual=True)
        logger.info(f"Manually triggered scheduled job: {name} -> {job_id}")
        return job_id

    def _submit(self, job: ScheduledJob, manual: bool = False) -> str:
        metadata: dict[str, Any] = {"scheduled": True, "schedule_name": job.name}
        if manual:
            metadata["manual_trigger"] = True
        job_id = self.queue.submit(
            job.job_type,
            dict(job.data),
            priority=job.priority,
            metadata=metadata,
        )
        job.last_job_id = job_id
        return job_id


# Common schedule presets
SCHEDULE_PRESETS = {
    "every_minute": "* * * * *",
    "every_5_minutes": "*/5 * * * *",
    "every_15_minutes": "*/15 * * * *",
    "every_hour": "0 * * * *",
    "daily_midnight": "0 0 * * *",
    "daily_2am": "0 2 * * *",
    "weekly_sunday": "0 0 * * 0",
    "weekly_sunday_3am": "0 3 * * 0",
    "monthly_first": "0 0 1 * *",
}


def add_default_schedules(scheduler: JobScheduler) -> list[ScheduledJob]:
    """Register the standard maintenance schedules.

    - file cleanup daily at 02:00
    - database maintenance on Sundays at 03:00
    - analytics aggregation every hour
    """
    return [
        scheduler.add_job(
            "daily-file-cleanup",
            "file-cleanup",
            cron=SCHEDULE_PRESETS["daily_2am"],
            data={"days_old": 30},
            priority=JobPriority.LOW,
        ),
        scheduler.add_job(
            "weekly-database-maintenance",
            "database-maintenance",
            cron=SCHEDULE_PRESETS["weekly_sunday_3am"],
            data={"tasks": ["cleanup", "optimize"]},
            priority=JobPriority.LOW,
        ),
        scheduler.add_job(
            "hourly-analytics",
            "analytics-processing",
            cron=SCHEDULE_PRESETS["every_hour"],
            data={"time_range": "hourly"},
            priority=JobPriority.LOW,
        ),
    ]

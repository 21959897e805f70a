"""In-process background job processing.

Provides a priority-aware job engine with:
- Bounded concurrency and priority-ordered dispatch
- Fixed-delay retry up to a per-job attempt ceiling
- Per-attempt timeout guard
- Lifecycle notifications and queue metrics
- Cron-like scheduling of recurring jobs

Example:
    # Submit a job
    from bgjobs.jobs import JobQueue

    queue = JobQueue()
    queue.register_processor("echo", echo)
    async with queue:
        job_id = queue.submit("echo", {"value": 42}, priority="high")

    # Built-in processors
    from bgjobs.jobs import ProcessorServices, register_builtin_processors

    register_builtin_processors(queue, ProcessorServices.in_memory())

    # Schedule recurring jobs
    from bgjobs.jobs import JobScheduler

    scheduler = JobScheduler(queue)
    scheduler.add_job("cleanup", "file-cleanup", cron="0 2 * * *")
    await scheduler.start()
"""

from bgjobs.jobs.errors import (
    JobCancelledError,
    JobError,
    ProcessingTimeoutError,
    ProcessorError,
    UnregisteredProcessorError,
)
from bgjobs.jobs.events import (
    JobEvent,
    Notification,
    NotificationChannel,
    log_notifications,
)
from bgjobs.jobs.helpers import (
    add_cache_warmup_job,
    add_cdn_purge_job,
    add_cleanup_job,
    add_database_maintenance_job,
    add_email_notification_job,
    add_file_compression_job,
)
from bgjobs.jobs.metrics import MetricsCollector, QueueMetrics
from bgjobs.jobs.models import DEFAULT_MAX_ATTEMPTS, Job, JobPriority, JobStatus
from bgjobs.jobs.processors import (
    BUILTIN_PROCESSORS,
    ProcessorServices,
    register_builtin_processors,
)
from bgjobs.jobs.queue import JobQueue, QueueConfig
from bgjobs.jobs.registry import JobProcessor, ProcessorRegistry, job_processor
from bgjobs.jobs.scheduler import (
    SCHEDULE_PRESETS,
    CronExpression,
    JobScheduler,
    ScheduledJob,
    add_default_schedules,
)

__all__ = [
    # Queue
    "Job",
    "JobQueue",
    "QueueConfig",
    "JobStatus",
    "JobPriority",
    "DEFAULT_MAX_ATTEMPTS",
    # Processors
    "JobProcessor",
    "ProcessorRegistry",
    "job_processor",
    "BUILTIN_PROCESSORS",
    "ProcessorServices",
    "register_builtin_processors",
    # Helpers
    "add_file_compression_job",
    "add_cache_warmup_job",
    "add_cleanup_job",
    "add_cdn_purge_job",
    "add_email_notification_job",
    "add_database_maintenance_job",
    # Notifications and metrics
    "JobEvent",
    "Notification",
    "NotificationChannel",
    "log_notifications",
    "MetricsCollector",
    "QueueMetrics",
    # Errors
    "JobError",
    "UnregisteredProcessorError",
    "ProcessingTimeoutError",
    "ProcessorError",
    "JobCancelledError",
    # Scheduler
    "JobScheduler",
    "ScheduledJob",
    "CronExpression",
    "SCHEDULE_PRESETS",
    "add_default_schedules",
]

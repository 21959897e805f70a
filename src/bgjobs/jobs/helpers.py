"""Shortcuts for submitting built-in job types with their usual priority.

Example:
    job_id = add_cdn_purge_job(queue, ["/assets/logo.png"])
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from bgjobs.jobs.models import JobPriority

if TYPE_CHECKING:
    from bgjobs.jobs.queue import JobQueue


def add_file_compression_job(
    queue: JobQueue,
    file_id: str,
    file_name: str,
    priority: JobPriority | str = JobPriority.NORMAL,
) -> str:
    return queue.submit(
        "file-compression",
        {"file_id": file_id, "file_name": file_name},
        priority=priority,
    )


def add_cache_warmup_job(
    queue: JobQueue,
    cache_keys: Sequence[str],
    priority: JobPriority | str = JobPriority.NORMAL,
) -> str:
    return queue.submit("cache-warmup", {"cache_keys": list(cache_keys)}, priority=priority)


def add_cleanup_job(
    queue: JobQueue,
    days_old: int = 30,
    priority: JobPriority | str = JobPriority.LOW,
) -> str:
    return queue.submit("file-cleanup", {"days_old": days_old}, priority=priority)


def add_cdn_purge_job(
    queue: JobQueue,
    paths: Sequence[str],
    priority: JobPriority | str = JobPriority.HIGH,
) -> str:
    return queue.submit("cdn-purge", {"paths": list(paths)}, priority=priority)


def add_email_notification_job(
    queue: JobQueue,
    to: str,
    subject: str,
    body: str,
    priority: JobPriority | str = JobPriority.NORMAL,
) -> str:
    return queue.submit(
        "email-notification",
        {"to": to, "subject": subject, "body": body},
        priority=priority,
    )


def add_database_maintenance_job(
    queue: JobQueue,
    tasks: Sequence[str] = ("cleanup", "optimize"),
    priority: JobPriority | str = JobPriority.LOW,
) -> str:
    return queue.submit("database-maintenance", {"tasks": list(tasks)}, priority=priority)

"""Built-in job processors.

Background tasks shipped with bgjobs:
- File compression and cleanup
- Cache warmup
- CDN purge
- Email notification
- Database maintenance
- Analytics aggregation
- Thumbnail generation and virus scanning (placeholders)

Processors reach their backends through ``ProcessorServices``. A processor
whose required backend is missing raises, so the job goes through the normal
retry and failure path. Every failure is reported as ``"<Label> failed: ..."``.

Example:
    from bgjobs.jobs.processors import ProcessorServices, register_builtin_processors

    queue = JobQueue()
    register_builtin_processors(queue, ProcessorServices.in_memory())
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import time
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, TypeVar

from bgjobs.jobs.errors import ProcessorError
from bgjobs.jobs.models import utcnow
from bgjobs.services.base import CacheBackend, CDNClient, DatabaseMaintenance, FileStorage, Mailer
from bgjobs.services.memory import (
    InMemoryCache,
    InMemoryDatabase,
    InMemoryFileStorage,
    LoggingCDN,
    LoggingMailer,
)

if TYPE_CHECKING:
    from bgjobs.jobs.models import Job
    from bgjobs.jobs.queue import JobQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
DEFAULT_MAINTENANCE_TASKS = ("cleanup", "optimize", "backup")
DEFAULT_ANALYTICS_METRICS = ("uploads", "downloads", "storage")


@dataclass
class ProcessorServices:
    """Backends available to built-in processors."""

    storage: FileStorage | None = None
    cache: CacheBackend | None = None
    cdn: CDNClient | None = None
    database: DatabaseMaintenance | None = None
    mailer: Mailer | None = None

    @classmethod
    def in_memory(cls) -> ProcessorServices:
        """Wire every backend with its in-memory implementation."""
        storage = InMemoryFileStorage()
        return cls(
            storage=storage,
            cache=InMemoryCache(storage),
            cdn=LoggingCDN(),
            database=InMemoryDatabase(),
            mailer=LoggingMailer(),
        )


def _require(service: T | None, name: str) -> T:
    if service is None:
        raise ProcessorError(f"{name} service is not configured")
    return service


@contextmanager
def _failure_label(label: str) -> Iterator[None]:
    try:
        yield
    except Exception as e:
        raise ProcessorError(f"{label} failed: {e}") from e


async def process_file_compression(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Gzip a stored file when that makes it smaller.

    Payload:
        file_id: Identifier of the stored file
        file_name: Original file name (informational)

    Returns:
        compressed: Whether the stored content was replaced
        original_size, compressed_size, space_saved: Sizes in bytes
    """
    file_id = job.data.get("file_id")

    with _failure_label("File compression"):
        storage = _require(services.storage, "storage")
        file = await storage.get_file(file_id)
        if file is None:
            raise FileNotFoundError(f"File not found: {file_id}")
        job.set_progress(20)

        original_size = file.file_size
        if file.metadata.get("compressed"):
            job.set_progress(100)
            return {
                "success": True,
                "compressed": False,
                "original_size": original_size,
                "compressed_size": original_size,
                "space_saved": 0,
            }

        content = await asyncio.to_thread(gzip.compress, file.content)
        compressed_size = len(content)
        job.set_progress(60)

        compressed = compressed_size < original_size
        if compressed:
            file.content = content
            file.metadata.update(
                {
                    "compressed": True,
                    "algorithm": "gzip",
                    "original_size": original_size,
                    "compressed_size": compressed_size,
                    "compression_ratio": round(compressed_size / original_size, 4),
                }
            )
            await storage.update_file(file)
            job.set_progress(90)

            if services.cache is not None:
                await services.cache.invalidate_file_cache(file_id)
        else:
            compressed_size = original_size

    logger.info(f"File compression done: {file_id} ({original_size} -> {compressed_size} bytes)")
    job.set_progress(100)
    return {
        "success": True,
        "compressed": compressed,
        "original_size": original_size,
        "compressed_size": compressed_size,
        "space_saved": original_size - compressed_size,
    }


async def process_cache_warmup(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Pre-load cache entries.

    Payload:
        cache_keys: Keys prefixed with ``file:``, ``user:`` or ``analytics:``

    Per-key failures are collected in ``errors`` and do not fail the job.
    """
    cache_keys: list[str] = job.data.get("cache_keys", [])
    warmed: list[str] = []
    errors: list[str] = []

    with _failure_label("Cache warmup"):
        storage = _require(services.storage, "storage")
        cache = _require(services.cache, "cache")

        for i, key in enumerate(cache_keys):
            job.set_progress(i / len(cache_keys) * 100)
            try:
                if key.startswith("file:"):
                    file = await storage.get_file(key[5:])
                    if file is None:
                        continue
                    await cache.cache_file_metadata(
                        file.id,
                        {
                            "file_name": file.file_name,
                            "file_size": file.file_size,
                            "created_at": file.created_at.isoformat(),
                            "is_password_protected": file.is_password_protected,
                        },
                    )
                elif key.startswith("user:"):
                    user_id = key[5:]
                    files = await storage.get_user_files(user_id)
                    await cache.cache_user_data(user_id, {"file_count": len(files)})
                elif key.startswith("analytics:"):
                    stats = await storage.get_storage_stats()
                    await cache.cache_analytics(
                        "global",
                        {"total_files": stats.total_files, "total_size": stats.total_size},
                    )
                else:
                    errors.append(f"Unknown cache key prefix: {key}")
                    continue
                warmed.append(key)
            except Exception as e:
                errors.append(f"Failed to warm {key}: {e}")

    job.set_progress(100)
    return {
        "success": True,
        "warmed_keys": warmed,
        "errors": errors,
        "total_requested": len(cache_keys),
        "successfully_warmed": len(warmed),
    }


async def process_file_cleanup(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Delete old files, then tidy the cache and database if available.

    Payload:
        days_old: Age threshold in days (default: 30)
    """
    days_old = int(job.data.get("days_old", 30))
    errors: list[str] = []

    with _failure_label("File cleanup"):
        storage = _require(services.storage, "storage")
        job.set_progress(10)

        deleted = await storage.cleanup_old_files(days_old)
        job.set_progress(50)

        if services.cache is not None:
            try:
                await services.cache.cleanup()
            except Exception as e:
                errors.append(f"Cache cleanup failed: {e}")
        job.set_progress(70)

        if services.database is not None:
            try:
                await services.database.perform_maintenance()
            except Exception as e:
                errors.append(f"Database cleanup failed: {e}")
        job.set_progress(90)

    logger.info(f"File cleanup removed {deleted} file(s) older than {days_old} day(s)")
    job.set_progress(100)
    return {"success": True, "deleted_files": deleted, "days_old": days_old, "errors": errors}


async def process_cdn_purge(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Purge paths from the CDN and drop their local cache entries.

    Payload:
        paths: URL paths to purge
    """
    paths: list[str] = job.data.get("paths", [])

    with _failure_label("CDN purge"):
        cdn = _require(services.cdn, "cdn")
        job.set_progress(20)

        response = await cdn.purge_cache(paths)
        job.set_progress(80)

        if services.cache is not None:
            for path in paths:
                await services.cache.delete(f"cdn:{path}")

    job.set_progress(100)
    return {
        "success": bool(response.get("success")),
        "purged_paths": paths,
        "cdn_response": response,
    }


async def process_email_notification(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Send an email.

    Payload:
        to: Recipient address
        subject: Subject line
        body: Message body
        attachments: Optional attachment descriptors
    """
    to = job.data.get("to")
    subject = job.data.get("subject", "")

    with _failure_label("Email notification"):
        mailer = _require(services.mailer, "mailer")
        if not to:
            raise ValueError("Recipient address is required")
        job.set_progress(20)

        response = await mailer.send(
            to,
            subject,
            job.data.get("body", ""),
            job.data.get("attachments", []),
        )
        job.set_progress(80)

    job.set_progress(100)
    return {
        "success": True,
        "to": to,
        "subject": subject,
        "sent_at": utcnow().isoformat(),
        "response": response,
    }


async def process_database_maintenance(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Run database housekeeping tasks in order.

    Payload:
        tasks: Any of ``cleanup``, ``optimize``, ``backup``
            (default: all three)

    Per-task failures are collected; the job succeeds if any task ran.
    """
    tasks: list[str] = list(job.data.get("tasks", DEFAULT_MAINTENANCE_TASKS))
    completed: list[str] = []
    errors: list[str] = []

    with _failure_label("Database maintenance"):
        database = _require(services.database, "database")
        actions: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
            "cleanup": database.perform_maintenance,
            "optimize": database.optimize,
            "backup": database.backup,
        }

        for i, task in enumerate(tasks):
            job.set_progress(i / len(tasks) * 100)
            action = actions.get(task)
            if action is None:
                errors.append(f"Unknown maintenance task: {task}")
                continue
            try:
                await action()
                completed.append(task)
            except Exception as e:
                errors.append(f"Task {task} failed: {e}")

    job.set_progress(100)
    return {
        "success": bool(completed),
        "completed_tasks": completed,
        "errors": errors,
        "total_tasks": len(tasks),
    }


async def process_analytics(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Aggregate storage statistics and cache the snapshot.

    Payload:
        time_range: Label of the aggregation window (default: "daily")
        metrics: Metric names to report (informational)
    """
    time_range = job.data.get("time_range", "daily")
    metrics = list(job.data.get("metrics", DEFAULT_ANALYTICS_METRICS))

    with _failure_label("Analytics processing"):
        storage = _require(services.storage, "storage")
        job.set_progress(20)

        stats = await storage.get_storage_stats()
        job.set_progress(50)

        analytics = {
            "timestamp": utcnow().isoformat(),
            "time_range": time_range,
            "metrics": {
                "total_files": stats.total_files,
                "total_size": stats.total_size,
                "average_file_size": stats.average_file_size,
            },
        }

        if services.cache is not None:
            await services.cache.cache_analytics(
                f"{time_range}:{int(time.time() * 1000)}", analytics
            )
        job.set_progress(90)

    job.set_progress(100)
    return {"success": True, "analytics": analytics, "processed_metrics": metrics}


async def process_thumbnail_generation(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Generate a thumbnail for an image file.

    Payload:
        file_id: Identifier of the stored file
        file_name: Original file name
        file_type: MIME type; must be an image type
    """
    file_id = job.data.get("file_id")
    file_type = job.data.get("file_type")

    with _failure_label("Thumbnail generation"):
        job.set_progress(20)
        if file_type not in IMAGE_TYPES:
            raise ValueError("File is not an image type")
        job.set_progress(50)

        logger.info(f"Generating thumbnail for {job.data.get('file_name')}")

        # Placeholder - no image library is wired in yet
        thumbnail = {
            "thumbnail_generated": True,
            "thumbnail_path": f"thumbnails/{file_id}.webp",
            "generated_at": utcnow().isoformat(),
        }
        job.set_progress(90)

    job.set_progress(100)
    return {"success": True, "file_id": file_id, "thumbnail_data": thumbnail}


async def process_virus_scan(job: Job, services: ProcessorServices) -> dict[str, Any]:
    """Scan an uploaded file for malware.

    Payload:
        file_id: Identifier of the stored file
        file_name: Original file name
        file_size: Size in bytes
    """
    file_id = job.data.get("file_id")

    with _failure_label("Virus scan"):
        job.set_progress(20)
        logger.info(f"Scanning {job.data.get('file_name')} for viruses")

        # Placeholder - reports every file as clean
        scan_result = {
            "clean": True,
            "threats": [],
            "scanned_at": utcnow().isoformat(),
            "scan_engine": "placeholder",
            "scan_version": "1.0.0",
        }
        job.set_progress(80)

    job.set_progress(100)
    return {"success": True, "file_id": file_id, "scan_result": scan_result}


BuiltinProcessor = Callable[["Job", ProcessorServices], Awaitable[dict[str, Any]]]

# Registry of all built-in processors
BUILTIN_PROCESSORS: dict[str, BuiltinProcessor] = {
    "file-compression": process_file_compression,
    "cache-warmup": process_cache_warmup,
    "file-cleanup": process_file_cleanup,
    "cdn-purge": process_cdn_purge,
    "email-notification": process_email_notification,
    "database-maintenance": process_database_maintenance,
    "analytics-processing": process_analytics,
    "thumbnail-generation": process_thumbnail_generation,
    "virus-scan": process_virus_scan,
}


def register_builtin_processors(
    queue: JobQueue,
    services: ProcessorServices | None = None,
) -> None:
    """Register all built-in processors with a queue.

    Args:
        queue: JobQueue to register processors with
        services: Backends handed to every processor (all missing if None)
    """
    services = services or ProcessorServices()
    for job_type, processor in BUILTIN_PROCESSORS.items():
        queue.register_processor(job_type, partial(processor, services=services))

    logger.info(f"Registered {len(BUILTIN_PROCESSORS)} built-in processors")

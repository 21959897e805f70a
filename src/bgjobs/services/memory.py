"""In-memory collaborator backends.

Suitable for single-process runs and tests. Nothing is persisted; the CDN
and mail backends only record and log what they were asked to do.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from bgjobs.services.base import (
    CacheBackend,
    CDNClient,
    DatabaseMaintenance,
    FileStorage,
    Mailer,
    StorageStats,
    StoredFile,
)

logger = logging.getLogger(__name__)


class InMemoryFileStorage(FileStorage):
    def __init__(self) -> None:
        self._files: dict[str, StoredFile] = {}

    def add(self, file: StoredFile) -> StoredFile:
        self._files[file.id] = file
        return file

    async def get_file(self, file_id: str) -> StoredFile | None:
        return self._files.get(file_id)

    async def update_file(self, file: StoredFile) -> None:
        if file.id not in self._files:
            raise FileNotFoundError(f"File not found: {file.id}")
        self._files[file.id] = file

    async def get_user_files(self, user_id: str) -> list[StoredFile]:
        return [f for f in self._files.values() if f.owner_id == user_id]

    async def get_storage_stats(self) -> StorageStats:
        return StorageStats(
            total_files=len(self._files),
            total_size=sum(f.file_size for f in self._files.values()),
        )

    async def cleanup_old_files(self, days_old: int) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days_old)
        expired = [file_id for file_id, f in self._files.items() if f.created_at < cutoff]
        for file_id in expired:
            del self._files[file_id]
        return len(expired)


class InMemoryCache(CacheBackend):
    """Dict-backed cache.

    ``cleanup`` removes ``file:`` entries whose file no longer exists in the
    attached storage, if one is given.
    """

    def __init__(self, storage: FileStorage | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._storage = storage

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def cleanup(self) -> int:
        if self._storage is None:
            return 0
        orphaned = []
        for key in self._data:
            if key.startswith("file:") and await self._storage.get_file(key[5:]) is None:
                orphaned.append(key)
        for key in orphaned:
            del self._data[key]
        return len(orphaned)

    def keys(self) -> list[str]:
        return list(self._data)


class LoggingCDN(CDNClient):
    """Records purge requests instead of calling a provider."""

    def __init__(self) -> None:
        self.purged: list[str] = []

    async def purge_cache(self, paths: list[str]) -> dict[str, Any]:
        self.purged.extend(paths)
        logger.info(f"CDN purge requested for {len(paths)} path(s)")
        return {"success": True, "paths": list(paths)}


class InMemoryDatabase(DatabaseMaintenance):
    def __init__(self) -> None:
        self.runs: dict[str, int] = {"maintenance": 0, "optimize": 0, "backup": 0}

    async def perform_maintenance(self) -> dict[str, Any]:
        self.runs["maintenance"] += 1
        return {"removed_rows": 0}

    async def optimize(self) -> dict[str, Any]:
        self.runs["optimize"] += 1
        logger.info("Database optimization requested")
        return {"optimized": True}

    async def backup(self) -> dict[str, Any]:
        self.runs["backup"] += 1
        logger.info("Database backup requested")
        return {"backup_id": f"backup-{self.runs['backup']}"}


class LoggingMailer(Mailer):
    """Keeps sent messages in ``outbox`` and logs them."""

    def __init__(self) -> None:
        self.outbox: list[dict[str, Any]] = []

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: list[Any] | None = None,
    ) -> dict[str, Any]:
        message = {
            "to": to,
            "subject": subject,
            "body": body,
            "attachments": list(attachments or []),
        }
        self.outbox.append(message)
        logger.info(f"Email queued for delivery: to={to}, subject={subject!r}")
        return {"accepted": [to], "message_id": f"msg-{len(self.outbox)}"}

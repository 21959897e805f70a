"""Collaborator interfaces used by the built-in processors.

Processors never talk to a concrete backend directly; they receive these
abstractions through ``ProcessorServices``. Deployments plug in their own
implementations, the in-memory ones in ``bgjobs.services.memory`` cover
single-process use and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class StoredFile:
    """A file held by a ``FileStorage`` backend."""

    id: str
    file_name: str
    content: bytes = b""
    owner_id: str | None = None
    is_password_protected: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def file_size(self) -> int:
        return len(self.content)


@dataclass
class StorageStats:
    """Aggregate storage figures used by analytics."""

    total_files: int = 0
    total_size: int = 0

    @property
    def average_file_size(self) -> float:
        if self.total_files == 0:
            return 0.0
        return self.total_size / self.total_files


class FileStorage(ABC):
    """Abstract file storage interface."""

    @abstractmethod
    async def get_file(self, file_id: str) -> StoredFile | None:
        """Fetch a file, or None if it does not exist."""
        ...

    @abstractmethod
    async def update_file(self, file: StoredFile) -> None:
        """Replace a stored file's content and metadata."""
        ...

    @abstractmethod
    async def get_user_files(self, user_id: str) -> list[StoredFile]:
        ...

    @abstractmethod
    async def get_storage_stats(self) -> StorageStats:
        ...

    @abstractmethod
    async def cleanup_old_files(self, days_old: int) -> int:
        """Delete files older than ``days_old`` days.

        Returns:
            Number of files deleted
        """
        ...


class CacheBackend(ABC):
    """Abstract cache interface."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def cleanup(self) -> int:
        """Drop orphaned entries; returns the number removed."""
        ...

    # Key layout shared by all backends

    async def cache_file_metadata(self, file_id: str, metadata: dict[str, Any]) -> None:
        await self.set(f"file:{file_id}", metadata)

    async def invalidate_file_cache(self, file_id: str) -> None:
        await self.delete(f"file:{file_id}")

    async def cache_user_data(self, user_id: str, data: dict[str, Any]) -> None:
        await self.set(f"user:{user_id}", data)

    async def cache_analytics(self, key: str, data: dict[str, Any]) -> None:
        await self.set(f"analytics:{key}", data)


class CDNClient(ABC):
    """Abstract CDN purge interface."""

    @abstractmethod
    async def purge_cache(self, paths: list[str]) -> dict[str, Any]:
        """Purge ``paths`` from the edge cache.

        Returns:
            Provider response; must contain a boolean ``success`` key
        """
        ...


class DatabaseMaintenance(ABC):
    """Abstract database housekeeping interface."""

    @abstractmethod
    async def perform_maintenance(self) -> dict[str, Any]:
        """Remove expired rows; returns a summary."""
        ...

    @abstractmethod
    async def optimize(self) -> dict[str, Any]:
        ...

    @abstractmethod
    async def backup(self) -> dict[str, Any]:
        ...


class Mailer(ABC):
    """Abstract outgoing mail interface."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: list[Any] | None = None,
    ) -> dict[str, Any]:
        """Send a message; returns the provider response."""
        ...

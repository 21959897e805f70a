"""Collaborator backends for built-in processors."""

from bgjobs.services.base import (
    CacheBackend,
    CDNClient,
    DatabaseMaintenance,
    FileStorage,
    Mailer,
    StorageStats,
    StoredFile,
)
from bgjobs.services.memory import (
    InMemoryCache,
    InMemoryDatabase,
    InMemoryFileStorage,
    LoggingCDN,
    LoggingMailer,
)

__all__ = [
    "CDNClient",
    "CacheBackend",
    "DatabaseMaintenance",
    "FileStorage",
    "InMemoryCache",
    "InMemoryDatabase",
    "InMemoryFileStorage",
    "LoggingCDN",
    "LoggingMailer",
    "Mailer",
    "StorageStats",
    "StoredFile",
]

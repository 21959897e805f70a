"""Tests for in-memory collaborator backends."""

from datetime import UTC, datetime, timedelta

import pytest

from bgjobs.services import (
    InMemoryCache,
    InMemoryDatabase,
    InMemoryFileStorage,
    LoggingMailer,
    StorageStats,
    StoredFile,
)


@pytest.fixture
def storage() -> InMemoryFileStorage:
    storage = InMemoryFileStorage()
    storage.add(StoredFile(id="f1", file_name="a.txt", content=b"hello", owner_id="u1"))
    storage.add(StoredFile(id="f2", file_name="b.txt", content=b"hi", owner_id="u2"))
    return storage


class TestInMemoryFileStorage:
    """Tests for InMemoryFileStorage."""

    @pytest.mark.asyncio
    async def test_get_and_user_files(self, storage: InMemoryFileStorage) -> None:
        assert (await storage.get_file("f1")).file_name == "a.txt"
        assert await storage.get_file("missing") is None
        assert [f.id for f in await storage.get_user_files("u1")] == ["f1"]

    @pytest.mark.asyncio
    async def test_update_unknown_file(self, storage: InMemoryFileStorage) -> None:
        """Updating a file that was never stored fails."""
        with pytest.raises(FileNotFoundError):
            await storage.update_file(StoredFile(id="nope", file_name="x"))

    @pytest.mark.asyncio
    async def test_stats(self, storage: InMemoryFileStorage) -> None:
        stats = await storage.get_storage_stats()

        assert stats.total_files == 2
        assert stats.total_size == 7
        assert stats.average_file_size == 3.5

    @pytest.mark.asyncio
    async def test_cleanup_old_files(self, storage: InMemoryFileStorage) -> None:
        """Only files past the age threshold are removed."""
        storage.add(
            StoredFile(
                id="old",
                file_name="old.txt",
                created_at=datetime.now(UTC) - timedelta(days=10),
            )
        )

        assert await storage.cleanup_old_files(7) == 1
        assert await storage.get_file("old") is None
        assert await storage.cleanup_old_files(7) == 0


class TestStorageStats:
    def test_average_of_empty_storage(self) -> None:
        assert StorageStats().average_file_size == 0.0


class TestInMemoryCache:
    """Tests for InMemoryCache."""

    @pytest.mark.asyncio
    async def test_key_layout(self) -> None:
        """Helper methods write under their prefixes."""
        cache = InMemoryCache()

        await cache.cache_file_metadata("f1", {"a": 1})
        await cache.cache_user_data("u1", {"b": 2})
        await cache.cache_analytics("daily", {"c": 3})

        assert sorted(cache.keys()) == ["analytics:daily", "file:f1", "user:u1"]

        await cache.invalidate_file_cache("f1")
        assert await cache.get("file:f1") is None

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        cache = InMemoryCache()
        await cache.set("k", "v")

        assert await cache.delete("k") is True
        assert await cache.delete("k") is False

    @pytest.mark.asyncio
    async def test_cleanup_removes_orphans(self, storage: InMemoryFileStorage) -> None:
        """File entries without a stored file are dropped."""
        cache = InMemoryCache(storage)
        await cache.cache_file_metadata("f1", {})
        await cache.cache_file_metadata("gone", {})
        await cache.set("user:u1", {})

        assert await cache.cleanup() == 1
        assert sorted(cache.keys()) == ["file:f1", "user:u1"]

    @pytest.mark.asyncio
    async def test_cleanup_without_storage(self) -> None:
        cache = InMemoryCache()
        await cache.cache_file_metadata("f1", {})

        assert await cache.cleanup() == 0


class TestRecordingBackends:
    """Tests for the database and mail stand-ins."""

    @pytest.mark.asyncio
    async def test_database_counts_runs(self) -> None:
        database = InMemoryDatabase()

        await database.perform_maintenance()
        await database.backup()
        result = await database.backup()

        assert database.runs == {"maintenance": 1, "optimize": 0, "backup": 2}
        assert result == {"backup_id": "backup-2"}

    @pytest.mark.asyncio
    async def test_mailer_outbox(self) -> None:
        mailer = LoggingMailer()

        response = await mailer.send("a@example.com", "Hi", "Body")

        assert response["accepted"] == ["a@example.com"]
        assert mailer.outbox == [
            {"to": "a@example.com", "subject": "Hi", "body": "Body", "attachments": []}
        ]

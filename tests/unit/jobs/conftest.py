"""Shared fixtures for job engine tests."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from bgjobs.jobs.events import Notification
from bgjobs.jobs.queue import JobQueue, QueueConfig


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


WaitUntil = Callable[..., Awaitable[None]]


@pytest.fixture
def fast_config() -> QueueConfig:
    """Engine config with tiny intervals for real-loop tests."""
    return QueueConfig(
        max_concurrency=2,
        retry_delay=0.01,
        max_attempts=3,
        processing_timeout=1.0,
        poll_interval=0.005,
        cleanup_interval=60.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def queue(fast_config: QueueConfig):
    """Engine that is stopped after the test."""
    q = JobQueue(fast_config)
    yield q
    await q.stop()


@pytest.fixture
async def make_queue(fast_config: QueueConfig):
    """Factory for engines with config overrides; all are stopped after the test."""
    created: list[JobQueue] = []

    def _make(clock: Callable[[], datetime] | None = None, **overrides: Any) -> JobQueue:
        config = dataclasses.replace(fast_config, **overrides)
        q = JobQueue(config, clock=clock) if clock is not None else JobQueue(config)
        created.append(q)
        return q

    yield _make
    for q in created:
        await q.stop()


@pytest.fixture
def events(queue: JobQueue) -> list[Notification]:
    """Every notification emitted by ``queue``, in order."""
    received: list[Notification] = []
    queue.subscribe(received.append)
    return received


@pytest.fixture
def wait_until() -> WaitUntil:
    """Poll a predicate on the running loop until it holds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.002)

    return _wait

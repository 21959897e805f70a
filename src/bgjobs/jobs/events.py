"""Lifecycle notification channel.

Observers subscribe to named lifecycle events. Synchronous handlers run
inline in subscription order; coroutine handlers are scheduled as tasks on
the running loop. A failing handler is logged and never affects the engine.

Example:
    channel = NotificationChannel()

    def on_done(note: Notification) -> None:
        print(note.event, note.job.id)

    unsubscribe = channel.subscribe(on_done, events=[JobEvent.COMPLETED])
    ...
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from bgjobs.jobs.models import Job, utcnow

logger = logging.getLogger(__name__)


class JobEvent(str, Enum):
    """Named lifecycle events."""

    ADDED = "added"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    CANCELLED = "cancelled"
    QUEUE_CLEANED = "queue:cleaned"
    QUEUE_PAUSED = "queue:paused"
    QUEUE_RESUMED = "queue:resumed"


@dataclass(frozen=True)
class Notification:
    """A single lifecycle announcement.

    Job events carry the affected job record; ``queue:cleaned`` carries the
    number of removed jobs in ``cleaned``.
    """

    event: JobEvent
    job: Job | None = None
    cleaned: int | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "event": self.event.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.job is not None:
            data["job"] = self.job.to_dict()
        if self.cleaned is not None:
            data["cleaned"] = self.cleaned
        return data


NotificationHandler = Callable[[Notification], Awaitable[None] | None]


@dataclass
class _Subscription:
    handler: NotificationHandler
    events: frozenset[JobEvent] | None


class NotificationChannel:
    """Explicit list of observer callbacks."""

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(
        self,
        handler: NotificationHandler,
        events: Iterable[JobEvent | str] | None = None,
    ) -> Callable[[], None]:
        """Subscribe a handler.

        Args:
            handler: Sync or async callable receiving a Notification
            events: Events to receive (None for all)

        Returns:
            Callable that removes the subscription
        """
        wanted = frozenset(JobEvent(e) for e in events) if events is not None else None
        subscription = _Subscription(handler=handler, events=wanted)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def emit(
        self,
        event: JobEvent,
        job: Job | None = None,
        cleaned: int | None = None,
    ) -> Notification:
        """Deliver an event to every interested subscriber."""
        notification = Notification(event=event, job=job, cleaned=cleaned)

        for subscription in list(self._subscriptions):
            if subscription.events is not None and event not in subscription.events:
                continue
            try:
                outcome = subscription.handler(notification)
                if inspect.isawaitable(outcome):
                    self._schedule(outcome)
            except Exception:
                logger.exception(f"Error in notification handler for {event.value}")

        return notification

    def _schedule(self, awaitable: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning("Async notification handler skipped: no running event loop")
            return

        async def runner() -> None:
            try:
                await awaitable
            except Exception:
                logger.exception("Error in async notification handler")

        task = loop.create_task(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def log_notifications(notification: Notification) -> None:
    """Observer that writes every lifecycle event to the log."""
    job = notification.job
    if job is None:
        logger.info(
            f"Queue event: {notification.event.value}",
            extra={"cleaned": notification.cleaned} if notification.cleaned is not None else None,
        )
        return

    level = logging.WARNING if notification.event == JobEvent.FAILED else logging.INFO
    logger.log(
        level,
        f"Job {notification.event.value}: {job.id} ({job.type})",
        extra={
            "event": notification.event.value,
            "job_status": job.status.value,
            "attempts": job.attempts,
            "error": job.error,
        },
    )

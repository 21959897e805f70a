"""Registry of cancellable per-job timers.

Holds the timeout guards and retry flips as ``loop.call_later`` handles
keyed by ``(kind, job_id)`` so they can be disarmed individually or all at
once on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable

logger = logging.getLogger(__name__)


class TimerRegistry:
    def __init__(self) -> None:
        self._handles: dict[Hashable, asyncio.TimerHandle] = {}

    def arm(self, key: Hashable, delay: float, callback: Callable[[], None]) -> None:
        """Schedule ``callback`` after ``delay`` seconds, replacing any timer on ``key``."""
        self.disarm(key)
        loop = asyncio.get_running_loop()

        def fire() -> None:
            self._handles.pop(key, None)
            try:
                callback()
            except Exception:
                logger.exception(f"Timer callback failed: {key}")

        self._handles[key] = loop.call_later(max(delay, 0.0), fire)

    def disarm(self, key: Hashable) -> bool:
        """Cancel the timer on ``key``; False if none was active."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_armed(self, key: Hashable) -> bool:
        return key in self._handles

    def clear(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def __len__(self) -> int:
        return len(self._handles)

# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Background persistence of door side effects.

Door transitions update in-memory state immediately and hand their durable
writes to a ``PersistenceQueue``. A single writer task drains the queue in
submission order, so log rows and alerts land in the same order as the
transitions that caused them.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .const import DEFAULT_PERSISTENCE_LAG_THRESHOLD
from .errors import AutoDoorError

logger = logging.getLogger(__name__)

WriteJob = Callable[[], Awaitable[Any]]


class PersistenceQueue:
    """FIFO queue of durable writes executed by one background task."""

    def __init__(self, lag_threshold: int = DEFAULT_PERSISTENCE_LAG_THRESHOLD):
        self.lag_threshold = lag_threshold
        self._queue: asyncio.Queue[tuple[str, WriteJob]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.completed = 0
        self.failed = 0
        self.last_error: Optional[str] = None
        self._failing = False
        self._pending = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        """Writes submitted but not yet finished."""
        return self._pending

    @property
    def healthy(self) -> bool:
        """False after a failed write until the next success, or when lagging."""
        return not self._failing and self.pending < self.lag_threshold

    def health(self) -> dict[str, Any]:
        """Health snapshot for status reports."""
        return {
            "healthy": self.healthy,
            "pending": self.pending,
            "completed": self.completed,
            "failed": self.failed,
            "lastError": self.last_error,
        }

    def start(self):
        """Start the writer task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._writer_loop())
        logger.debug("Persistence writer started")

    async def stop(self, drain: bool = True):
        """Stop the writer, by default after finishing queued writes."""
        if drain and self.running:
            await self._queue.join()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.debug("Persistence writer stopped")

    def submit(self, description: str, job: WriteJob):
        """Queue a write. Never blocks."""
        self._pending += 1
        self._queue.put_nowait((description, job))
        if self.pending == self.lag_threshold:
            logger.warning(f"Persistence is falling behind ({self.pending} writes pending)")

    async def join(self):
        """Wait until every queued write has been attempted."""
        await self._queue.join()

    async def _writer_loop(self):
        """Background task executing queued writes one at a time."""
        while True:
            description, job = await self._queue.get()
            try:
                await job()
                self.completed += 1
                self._failing = False
            except asyncio.CancelledError:
                raise
            except AutoDoorError as e:
                self._record_failure(description, e)
            except Exception as e:
                logger.exception(f"Unexpected error persisting {description}")
                self._record_failure(description, e)
            finally:
                self._pending -= 1
                self._queue.task_done()

    def _record_failure(self, description: str, error: Exception):
        self.failed += 1
        self._failing = True
        self.last_error = f"{description}: {error}"
        logger.error(f"Failed to persist {description}: {error}")

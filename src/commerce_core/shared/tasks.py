"""
Background task tracking.

Catalog generation runs after its HTTP call returns. Tasks are created on the
running loop, kept by id, and their outcome recorded when they finish so a
failure is logged instead of lost.
"""

import asyncio
import logging
from collections.abc import Coroutine
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel

from commerce_core.shared.clock import Clock

logger = logging.getLogger(__name__)

TASK_CLEANUP_MAX_AGE_HOURS = 24
TASK_CLEANUP_THRESHOLD = 1000


class TaskStatus(BaseModel):
    """Status of a background task."""

    status: str  # "running", "completed", "failed", "cancelled"
    description: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


class BackgroundTaskRegistry:
    """Creates, tracks and cancels the application's background tasks."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or Clock()
        self._tasks: dict[str, asyncio.Task] = {}
        self._status: dict[str, TaskStatus] = {}

    def __len__(self) -> int:
        return len(self._status)

    @property
    def running_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def create(
        self, task_id: str, coro: Coroutine[Any, Any, Any], description: str = ""
    ) -> asyncio.Task:
        """
        Schedule ``coro`` as a tracked task.

        Raises:
            ValueError: If a task with the same id is still running
        """
        if len(self._status) >= TASK_CLEANUP_THRESHOLD:
            self.cleanup_old_tasks()

        existing = self._tasks.get(task_id)
        if existing is not None and not existing.done():
            coro.close()
            raise ValueError(f"Task {task_id} is already running")

        task = asyncio.create_task(coro)
        self._tasks[task_id] = task
        self._status[task_id] = TaskStatus(
            status="running", description=description, started_at=self.clock.now()
        )

        def task_done_callback(future: asyncio.Task) -> None:
            status = self._status.get(task_id)
            if status is None:
                return
            if future.cancelled():
                status.status = "cancelled"
            elif future.exception() is not None:
                error = future.exception()
                logger.error(f"Background task {task_id} failed: {error}")
                status.status = "failed"
                status.error = str(error)
            else:
                status.status = "completed"
            status.completed_at = self.clock.now()

        task.add_done_callback(task_done_callback)
        return task

    def get_status(self, task_id: str) -> TaskStatus | None:
        return self._status.get(task_id)

    def cleanup_old_tasks(
        self, max_age_hours: int = TASK_CLEANUP_MAX_AGE_HOURS
    ) -> int:
        """Forget finished tasks older than ``max_age_hours``."""
        cutoff = self.clock.now() - timedelta(hours=max_age_hours)
        cleaned = 0
        for task_id, status in list(self._status.items()):
            if status.completed_at and status.completed_at < cutoff:
                self._status.pop(task_id, None)
                self._tasks.pop(task_id, None)
                cleaned += 1

        if cleaned:
            logger.info(f"Cleaned up {cleaned} old background tasks")
        return cleaned

    async def wait_all(self) -> None:
        """Wait for every running task to finish."""
        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def cancel_all(self) -> int:
        """Cancel every running task and wait for them to stop."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Cancelled {len(pending)} background tasks")
        return len(pending)

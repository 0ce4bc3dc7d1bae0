"""Background task utilities with error tracking.

Provides safe wrappers for fire-and-forget work (repository enrichment,
initial status loads) so that exceptions are logged and tracked instead of
vanishing with the task.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import UTC, datetime
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)


class BackgroundTaskError:
    """Record of a failed background task."""

    def __init__(
        self,
        task_name: str,
        error: Exception,
        timestamp: datetime | None = None,
    ):
        self.task_name = task_name
        self.error = error
        self.timestamp = timestamp or datetime.now(UTC)
        self.error_type = type(error).__name__
        self.error_message = str(error)


class BackgroundTaskTracker:
    """Track background task results and the tasks still running."""

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self.successful_tasks: list[tuple[str, datetime]] = []
        self.failed_tasks: list[BackgroundTaskError] = []
        self._running: set[asyncio.Task[None]] = set()

    def record_success(self, task_name: str) -> None:
        self.successful_tasks.append((task_name, datetime.now(UTC)))
        if len(self.successful_tasks) > self.max_history:
            self.successful_tasks = self.successful_tasks[-self.max_history :]

    def record_failure(self, task_name: str, error: Exception) -> None:
        self.failed_tasks.append(BackgroundTaskError(task_name, error))
        if len(self.failed_tasks) > self.max_history:
            self.failed_tasks = self.failed_tasks[-self.max_history :]

    def spawn(
        self,
        task_name: str,
        coro_fn: Callable[[], Coroutine[Any, Any, Any]],
    ) -> asyncio.Task[None]:
        """
        Schedule ``coro_fn`` on the running loop through safe_background_task.

        The task is referenced until it finishes so it cannot be garbage
        collected mid-flight.
        """
        task = asyncio.create_task(safe_background_task(task_name, coro_fn, tracker=self))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    @property
    def running(self) -> int:
        return len(self._running)

    async def cancel_all(self) -> None:
        """Cancel every running task and wait for them to unwind."""
        tasks = list(self._running)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_status(self) -> dict[str, Any]:
        """Get current status of background tasks."""
        return {
            "running_tasks": len(self._running),
            "successful_tasks": len(self.successful_tasks),
            "failed_tasks": len(self.failed_tasks),
            "recent_failures": [
                {
                    "task": f.task_name,
                    "error": f.error_message,
                    "type": f.error_type,
                    "timestamp": f.timestamp.isoformat(),
                }
                for f in self.failed_tasks[-5:]  # Last 5 failures
            ],
        }


async def safe_background_task(
    task_name: str,
    coro_fn: Callable[[], Any],
    *,
    tracker: BackgroundTaskTracker | None = None,
) -> None:
    """
    Execute a background task safely, logging any errors.

    Cancellation propagates; every other exception is logged with context
    and recorded on the tracker.

    Args:
        task_name: Name of the task for logging/tracking
        coro_fn: Callable to execute (can be sync or async)
        tracker: Optional tracker to record the outcome on
    """
    try:
        logger.debug(
            "Starting background task",
            extra={"task_name": task_name},
        )

        if inspect.iscoroutinefunction(coro_fn):
            await coro_fn()
        else:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, coro_fn)

        logger.debug(
            "Background task completed",
            extra={"task_name": task_name},
        )
        if tracker is not None:
            tracker.record_success(task_name)

    except asyncio.CancelledError:
        logger.debug("Background task cancelled", extra={"task_name": task_name})
        raise
    except Exception as e:
        logger.error(
            "Background task failed",
            exc_info=True,
            extra={
                "task_name": task_name,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        if tracker is not None:
            tracker.record_failure(task_name, e)

"""
Background task dispatcher.

Runs fire-and-forget work (settlement side effects) outside the request
that triggered it. Tasks are tracked so they are not garbage collected
mid-flight and so shutdown can wait for them.
"""
import asyncio
from typing import Any, Coroutine, Optional, Set

import structlog

from ambassador.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class BackgroundDispatcher:
    """Detached asyncio tasks with failure logging and graceful drain."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """
        Schedule ``coro`` on the running loop and return immediately.

        Args:
            coro: Coroutine to run in the background
            name: Task name used in logs and metrics

        Returns:
            asyncio.Task: The scheduled task
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

        logger.info("background_task_dispatched", task_name=name, pending=len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        name = task.get_name()

        if task.cancelled():
            logger.warning("background_task_cancelled", task_name=name)
            metrics.record_background_task(name.split(":")[0], "cancelled")
            return

        error = task.exception()
        if error is not None:
            logger.error(
                "background_task_failed",
                task_name=name,
                error=str(error),
                error_type=type(error).__name__,
            )
            metrics.record_background_task(name.split(":")[0], "failed")
        else:
            metrics.record_background_task(name.split(":")[0], "success")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait for outstanding tasks.

        Args:
            timeout: Seconds to wait before giving up; tasks still running are
                left alone, not cancelled
        """
        if not self._tasks:
            return

        logger.info("background_dispatcher_draining", pending=len(self._tasks))
        done, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)

        if still_running:
            logger.warning("background_dispatcher_drain_timeout", still_running=len(still_running))
        else:
            logger.info("background_dispatcher_drained", completed=len(done))

"""Bounded background task runner for agentmem.

Fire-and-forget work (background consolidation) is submitted here instead of
being spawned as bare tasks. The runner bounds concurrency and the number of
outstanding tasks, collapses duplicate submissions for the same key while one
is still outstanding, and routes failures to an error channel: structured
logs, a Prometheus counter and an optional callback. Tasks run at most once
and are lost if the process exits.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional

from pydantic import BaseModel, Field

from agentmem.logging import get_logger
from agentmem.metrics import get_metrics_collector

logger = get_logger(__name__, component="tasks")
metrics = get_metrics_collector()

ErrorCallback = Callable[[Hashable, BaseException], None]


class RunnerStatus(BaseModel):
    """Runner status information."""

    pending: int = Field(description="Tasks waiting for or holding a slot")
    running: int = Field(description="Tasks currently executing")
    max_concurrency: int = Field(description="Maximum concurrently executing tasks")
    max_pending: int = Field(description="Maximum outstanding tasks")
    total_completed: int = Field(description="Tasks that finished successfully")
    total_failed: int = Field(description="Tasks that raised")
    total_rejected: int = Field(description="Submissions refused at capacity")
    total_deduplicated: int = Field(description="Submissions collapsed into an outstanding task")


class BackgroundTaskRunner:
    """Runs keyed coroutines in the background with bounded concurrency.

    Example:
        >>> runner = BackgroundTaskRunner(max_concurrency=2)
        >>> runner.submit(("session", "agent"), lambda: engine.consolidate_session(req))
        >>> await runner.shutdown()
    """

    def __init__(
        self,
        max_concurrency: int = 4,
        max_pending: int = 100,
        on_error: Optional[ErrorCallback] = None,
    ):
        """Initialize the runner.

        Args:
            max_concurrency: Maximum tasks executing at once.
            max_pending: Maximum outstanding tasks (executing or waiting).
            on_error: Called with (key, exception) when a task fails.
        """
        self.max_concurrency = max_concurrency
        self.max_pending = max_pending
        self.on_error = on_error

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Dict[Hashable, asyncio.Task[Any]] = {}
        self._running = 0
        self._closed = False

        self._total_completed = 0
        self._total_failed = 0
        self._total_rejected = 0
        self._total_deduplicated = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def is_pending(self, key: Hashable) -> bool:
        return key in self._tasks

    def submit(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> bool:
        """Schedule ``factory()`` to run in the background.

        Must be called from a running event loop. Returns immediately.

        Args:
            key: Single-flight key; a submission whose key is already
                outstanding is dropped.
            factory: Zero-argument callable producing the coroutine to run.

        Returns:
            True if a task was scheduled.
        """
        if self._closed:
            logger.warning("background_submit_after_shutdown", key=str(key))
            self._reject()
            return False

        if key in self._tasks:
            self._total_deduplicated += 1
            metrics.increment_background_task(outcome="deduplicated")
            logger.debug("background_task_deduplicated", key=str(key))
            return False

        if len(self._tasks) >= self.max_pending:
            logger.warning("background_queue_full", key=str(key), pending=len(self._tasks))
            self._reject()
            return False

        task = asyncio.create_task(self._run(key, factory), name=f"agentmem-bg-{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda _t, k=key: self._tasks.pop(k, None))

        metrics.increment_background_task(outcome="submitted")
        metrics.update_active_background_tasks(len(self._tasks))
        return True

    def _reject(self) -> None:
        self._total_rejected += 1
        metrics.increment_background_task(outcome="rejected")

    async def _run(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> None:
        try:
            async with self._semaphore:
                self._running += 1
                try:
                    await factory()
                finally:
                    self._running -= 1
            self._total_completed += 1
            metrics.increment_background_task(outcome="completed")
        except asyncio.CancelledError:
            logger.info("background_task_cancelled", key=str(key))
            raise
        except Exception as e:
            self._total_failed += 1
            metrics.increment_background_task(outcome="failed")
            logger.error(
                "background_task_failed",
                key=str(key),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            if self.on_error is not None:
                try:
                    self.on_error(key, e)
                except Exception as callback_error:
                    logger.error("background_error_callback_failed", key=str(key), error=str(callback_error))
        finally:
            metrics.update_active_background_tasks(max(len(self._tasks) - 1, 0))

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for all outstanding tasks.

        Args:
            timeout: Maximum seconds to wait, or None to wait indefinitely.

        Returns:
            True if every task finished within the timeout.
        """
        if not self._tasks:
            return True
        _, still_pending = await asyncio.wait(list(self._tasks.values()), timeout=timeout)
        return not still_pending

    async def shutdown(self, drain: bool = True, timeout: float = 30.0) -> None:
        """Stop accepting work and wind down outstanding tasks.

        Args:
            drain: If True, wait up to ``timeout`` for tasks before cancelling
                the rest.
            timeout: Maximum time to wait for drain.
        """
        self._closed = True
        logger.info("background_runner_shutdown_initiated", drain=drain, pending=len(self._tasks))

        if drain and not await self.drain(timeout):
            logger.warning("background_drain_timeout_exceeded", remaining=len(self._tasks))

        remaining = list(self._tasks.values())
        for task in remaining:
            task.cancel()
        if remaining:
            await asyncio.gather(*remaining, return_exceptions=True)

        metrics.update_active_background_tasks(0)
        logger.info("background_runner_shutdown_complete")

    def get_status(self) -> RunnerStatus:
        return RunnerStatus(
            pending=len(self._tasks),
            running=self._running,
            max_concurrency=self.max_concurrency,
            max_pending=self.max_pending,
            total_completed=self._total_completed,
            total_failed=self._total_failed,
            total_rejected=self._total_rejected,
            total_deduplicated=self._total_deduplicated,
        )

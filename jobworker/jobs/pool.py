from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD_SECONDS = 60.0


class PoolRejectedError(RuntimeError):
    """Raised when a task cannot be scheduled: the pool is full or shutting down."""


@dataclass(slots=True, frozen=True)
class ShutdownResult:
    forced: bool
    unfinished: int


class WorkerPool:
    """Fixed number of worker slots, each running one asyncio task at a time.

    ``active_count`` is what the dispatcher sizes its polls against. Slots are
    released by a done-callback, so a finished task frees capacity before the
    next tick without any locking.
    """

    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers
        self._tasks: set[asyncio.Task[Any]] = set()
        self._accepting = True
        self._force_terminated = False
        self._drain: asyncio.Future[ShutdownResult] | None = None

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    @property
    def is_shutdown(self) -> bool:
        return not self._accepting

    @property
    def force_terminated(self) -> bool:
        return self._force_terminated

    def submit(
        self,
        fn: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        name: str | None = None,
    ) -> asyncio.Task[Any]:
        if not self._accepting:
            raise PoolRejectedError("worker pool is shutting down")
        if len(self._tasks) >= self.max_workers:
            raise PoolRejectedError(f"worker pool is at capacity ({self.max_workers} slots busy)")

        task = asyncio.create_task(fn(*args), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._release)
        return task

    async def shutdown(self, grace_period_seconds: float = DEFAULT_GRACE_PERIOD_SECONDS) -> ShutdownResult:
        """Stop accepting work and wait for in-flight tasks.

        Tasks still running after ``grace_period_seconds`` are cancelled. If the
        caller is cancelled while waiting, remaining tasks are cancelled at once
        and the cancellation propagates. Repeated calls share one drain and
        return its result.
        """
        self._accepting = False
        if self._drain is None:
            self._drain = asyncio.ensure_future(self._drain_tasks(grace_period_seconds))
        try:
            return await asyncio.shield(self._drain)
        except asyncio.CancelledError:
            if not self._drain.done():
                logger.warning("shutdown interrupted; force-terminating %s running tasks", self.active_count)
                self._force_terminate()
            raise

    def terminate(self) -> None:
        """Stop accepting work and cancel every running task without waiting."""
        self._accepting = False
        self._force_terminate()

    async def _drain_tasks(self, grace_period_seconds: float) -> ShutdownResult:
        pending = set(self._tasks)
        if pending:
            logger.info("waiting up to %.1fs for %s running tasks", grace_period_seconds, len(pending))
            _, pending = await asyncio.wait(pending, timeout=grace_period_seconds)

        if pending:
            logger.warning("%s tasks still running after %.1fs; force-terminating", len(pending), grace_period_seconds)
            self._force_terminate()
            _, pending = await asyncio.wait(pending, timeout=grace_period_seconds)
            if pending:
                logger.error("failed graceful shutdown: %s tasks did not terminate", len(pending))
        elif self._force_terminated and self._tasks:
            # Interrupted by the caller; give the cancelled tasks the chance to unwind.
            _, pending = await asyncio.wait(set(self._tasks), timeout=grace_period_seconds)

        return ShutdownResult(forced=self._force_terminated, unfinished=len(pending))

    def _force_terminate(self) -> None:
        if self._force_terminated:
            return
        self._force_terminated = True
        for task in self._tasks:
            task.cancel()

    def _release(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("task %s failed", task.get_name(), exc_info=exc)

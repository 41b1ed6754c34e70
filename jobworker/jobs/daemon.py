from __future__ import annotations

import asyncio
import logging

from jobworker.jobs.dispatcher import Dispatcher
from jobworker.jobs.pool import DEFAULT_GRACE_PERIOD_SECONDS, ShutdownResult, WorkerPool

logger = logging.getLogger(__name__)


class WorkerDaemon:
    """Drives ``Dispatcher.tick`` at a fixed rate and owns the worker lifecycle."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        pool: WorkerPool,
        *,
        poll_interval_seconds: float,
        shutdown_grace_seconds: float = DEFAULT_GRACE_PERIOD_SECONDS,
    ) -> None:
        if dispatcher is None:
            raise ValueError("dispatcher is required")
        if pool is None:
            raise ValueError("worker pool is required")
        if poll_interval_seconds <= 0:
            raise ValueError(f"poll_interval_seconds must be positive, got {poll_interval_seconds}")
        if shutdown_grace_seconds <= 0:
            raise ValueError(f"shutdown_grace_seconds must be positive, got {shutdown_grace_seconds}")
        self.dispatcher = dispatcher
        self.pool = pool
        self.poll_interval_seconds = poll_interval_seconds
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self._tick_loop: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._tick_loop is not None and not self._tick_loop.done()

    async def start(self) -> None:
        if self._stopped:
            raise RuntimeError("worker daemon was stopped and cannot be restarted")
        if self.running:
            return
        logger.info(
            "starting job worker poll_interval=%.1fs workers=%s batch_size=%s",
            self.poll_interval_seconds,
            self.pool.max_workers,
            self.dispatcher.poll_batch_size,
        )
        self._tick_loop = asyncio.create_task(self._run_ticks(), name="jobworker-ticks")

    async def stop(self, grace_period_seconds: float | None = None) -> ShutdownResult:
        if not self._stopped:
            logger.info("stopping job worker")
        self._stopped = True
        if self._tick_loop is not None and not self._tick_loop.done():
            self._tick_loop.cancel()
            try:
                await asyncio.wait({self._tick_loop})
            except asyncio.CancelledError:
                logger.warning("stop interrupted before the tick loop ended; force-terminating running jobs")
                self.pool.terminate()
                raise

        grace = self.shutdown_grace_seconds if grace_period_seconds is None else grace_period_seconds
        result = await self.pool.shutdown(grace)
        logger.info("stopped job worker forced=%s unfinished=%s", result.forced, result.unfinished)
        return result

    async def _run_ticks(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started_at = loop.time()
            try:
                await self.dispatcher.tick()
            except Exception:
                logger.exception("caught exception while processing jobs")
            elapsed = loop.time() - started_at
            await asyncio.sleep(max(0.0, self.poll_interval_seconds - elapsed))

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from jobworker.core.config import Settings, get_settings
from jobworker.core.telemetry import (
    configure_worker_logging,
    setup_worker_telemetry,
    shutdown_worker_telemetry,
)
from jobworker.jobs.daemon import WorkerDaemon
from jobworker.jobs.dispatcher import Dispatcher
from jobworker.jobs.executor import DefaultJobProcessor, JobProcessor
from jobworker.jobs.pool import WorkerPool
from jobworker.services.job_source import build_job_source

logger = logging.getLogger(__name__)


def build_daemon(settings: Settings, *, processor: JobProcessor | None = None) -> WorkerDaemon:
    pool = WorkerPool(settings.worker_count)
    dispatcher = Dispatcher(
        build_job_source(settings),
        processor or DefaultJobProcessor(),
        pool,
        poll_batch_size=settings.effective_poll_batch_size,
    )
    return WorkerDaemon(
        dispatcher,
        pool,
        poll_interval_seconds=settings.poll_interval_seconds,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )


async def run_worker() -> None:
    settings = get_settings()
    configure_worker_logging(settings)
    telemetry_runtime = setup_worker_telemetry(settings)
    daemon = build_daemon(settings)

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    stop_task: asyncio.Task | None = None

    def request_stop(signal_name: str) -> None:
        if not stop_requested.is_set():
            logger.info("received %s; shutting down gracefully", signal_name)
            stop_requested.set()
            return
        if stop_task is not None and not stop_task.done():
            logger.warning("received %s during shutdown; force-terminating running jobs", signal_name)
            stop_task.cancel()

    try:
        with _signal_handlers(loop, request_stop):
            await daemon.start()
            await stop_requested.wait()
            stop_task = asyncio.create_task(daemon.stop(), name="jobworker-stop")
            await asyncio.wait({stop_task})
            if stop_task.cancelled():
                logger.warning("shutdown interrupted; running jobs were force-terminated")
    finally:
        shutdown_worker_telemetry(telemetry_runtime)


@contextmanager
def _signal_handlers(loop: asyncio.AbstractEventLoop, handler: Callable[[str], None]) -> Iterator[None]:
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handler, sig.name)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform or outside the main thread.
            continue
        installed.append(sig)
    try:
        yield
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


if __name__ == "__main__":
    asyncio.run(run_worker())

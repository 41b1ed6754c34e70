from __future__ import annotations

import logging

from opentelemetry import trace

from jobworker.jobs.executor import JobProcessor
from jobworker.jobs.pool import PoolRejectedError, WorkerPool
from jobworker.jobs.task import JobTask
from jobworker.services.job_source import JobSource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class Dispatcher:
    """Polls for as many jobs as there are idle worker slots and fans them out.

    Sizing each poll to the idle capacity keeps jobs from queueing locally
    after they were handed out, where their claim window could lapse before a
    slot frees up.
    """

    def __init__(
        self,
        source: JobSource,
        processor: JobProcessor,
        pool: WorkerPool,
        *,
        poll_batch_size: int | None = None,
    ) -> None:
        if pool is None:
            raise ValueError("worker pool is required")
        batch_size = pool.max_workers if poll_batch_size is None else poll_batch_size
        if batch_size < 1:
            raise ValueError(f"poll_batch_size must be at least 1, got {batch_size}")
        if batch_size > pool.max_workers:
            raise ValueError(
                f"poll_batch_size {batch_size} exceeds the {pool.max_workers} worker slots; "
                "polled jobs would be claimed with no slot to run them"
            )
        self.source = source
        self.pool = pool
        self.poll_batch_size = batch_size
        self.job_task = JobTask(source, processor)

    async def tick(self) -> int:
        """Run one poll-and-dispatch cycle and return the number of submitted jobs."""
        with tracer.start_as_current_span("worker.tick") as span:
            available = self.poll_batch_size - self.pool.active_count
            if available <= 0:
                logger.debug("all %s worker slots busy; skipping poll", self.pool.max_workers)
                span.set_attribute("tick.batch_size", 0)
                span.set_attribute("tick.submitted", 0)
                return 0

            batch_size = min(available, self.poll_batch_size)
            span.set_attribute("tick.batch_size", batch_size)
            logger.debug("poll for jobs with batch size: %s", batch_size)
            try:
                jobs = await self.source.poll(batch_size)
            except Exception:
                logger.exception("poll for jobs failed batch_size=%s", batch_size)
                span.set_attribute("tick.submitted", 0)
                return 0

            submitted = 0
            for job in jobs:
                try:
                    self.pool.submit(self.job_task.run, job, name=f"job-{job.id}")
                except PoolRejectedError as exc:
                    # Not acknowledged yet, so the source will offer it again.
                    logger.error("worker pool rejected job id=%s: %s", job.id, exc)
                    continue
                submitted += 1

            span.set_attribute("tick.submitted", submitted)
            if jobs:
                logger.info("dispatched %s of %s polled jobs", submitted, len(jobs))
            return submitted

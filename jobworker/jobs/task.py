from __future__ import annotations

import logging
from enum import Enum

from opentelemetry import trace

from jobworker.core.models import Job, WorkResult, is_granted
from jobworker.jobs.executor import JobProcessor
from jobworker.services.job_source import JobSource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TaskOutcome(str, Enum):
    DENIED = "denied"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"


class JobTask:
    """Runs one polled job inside a worker slot: acknowledge, process, report.

    Nothing escapes ``run``. A lost claim ends the task quietly and any error
    is logged against the job id, so sibling tasks and the dispatcher never see
    it.
    """

    def __init__(self, source: JobSource, processor: JobProcessor) -> None:
        if source is None:
            raise ValueError("job source is required")
        if processor is None:
            raise ValueError("job processor is required")
        self.source = source
        self.processor = processor

    async def run(self, job: Job) -> TaskOutcome:
        with tracer.start_as_current_span("worker.process_job") as span:
            span.set_attribute("job.id", job.id)
            try:
                status = await self.source.acknowledge(job.id, job.client_id, job.nonce)
                if not is_granted(status):
                    logger.warning(
                        "cannot process job id=%s nonce=%s: acknowledge returned status=%s",
                        job.id,
                        job.nonce,
                        getattr(status, "value", status),
                    )
                    span.set_attribute("job.outcome", TaskOutcome.DENIED.value)
                    return TaskOutcome.DENIED

                logger.info("handing job id=%s to processor", job.id)
                result = await self.processor.process(job)
                outcome = await self._report(job, result)
            except Exception:
                logger.exception("error occurred processing job id=%s", job.id)
                span.set_attribute("job.outcome", TaskOutcome.ERRORED.value)
                return TaskOutcome.ERRORED

            span.set_attribute("job.outcome", outcome.value)
            return outcome

    async def _report(self, job: Job, result: WorkResult) -> TaskOutcome:
        if result.failure is not None:
            logger.info("job id=%s failed type=%s", job.id, result.failure.type.value)
            await self.source.report_failure(job.id, job.client_id, result.failure)
            return TaskOutcome.FAILED

        success = result.success
        logger.info("job id=%s succeeded continuation=%s", job.id, success.continuation_token is not None)
        await self.source.report_success(
            job.id,
            job.client_id,
            success.execution_details,
            success.current_revision,
            success.continuation_token,
        )
        return TaskOutcome.SUCCEEDED

from __future__ import annotations

import uuid
from typing import Protocol

from jobworker.core.models import (
    ExecutionDetails,
    FailureDetails,
    FailureType,
    Job,
    JobStatus,
    WorkResult,
)

JOB_STATUS_KEY = "JobStatus"


class JobProcessor(Protocol):
    async def process(self, job: Job) -> WorkResult: ...


class DefaultJobProcessor:
    """Sample processor: succeeds unless the job is configured to fail.

    Replace with the actual work for your action type.
    """

    async def process(self, job: Job) -> WorkResult:
        configuration = job.data.action_configuration
        if configuration.get(JOB_STATUS_KEY) == JobStatus.FAILED.value:
            return WorkResult.failed(job.id, FailureDetails(type=FailureType.JOB_FAILED, message="job failed"))

        return WorkResult.succeeded(
            job.id,
            execution_details=ExecutionDetails(
                summary="job completed",
                external_execution_id=str(uuid.uuid4()),
                percent_complete=100,
            ),
        )

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from jobworker.core.models import (
    CurrentRevision,
    ExecutionDetails,
    FailureDetails,
    Job,
    JobData,
    JobStatus,
    WorkResult,
)


class FakeJobSource:
    def __init__(self) -> None:
        self.queued: list[Job] = []
        self.overfill = False
        self.poll_error: Exception | None = None
        self.statuses: dict[str, Any] = {}
        self.acknowledge_errors: dict[str, Exception] = {}
        self.report_error: Exception | None = None
        self.poll_calls: list[int] = []
        self.acknowledged: list[tuple[str, str, str]] = []
        self.successes: list[dict[str, Any]] = []
        self.failures: list[dict[str, Any]] = []

    async def poll(self, max_batch_size: int) -> list[Job]:
        self.poll_calls.append(max_batch_size)
        if self.poll_error is not None:
            raise self.poll_error
        take = len(self.queued) if self.overfill else max_batch_size
        batch, self.queued = self.queued[:take], self.queued[take:]
        return batch

    async def acknowledge(self, job_id: str, client_id: str, nonce: str) -> Any:
        self.acknowledged.append((job_id, client_id, nonce))
        if job_id in self.acknowledge_errors:
            raise self.acknowledge_errors[job_id]
        return self.statuses.get(job_id, JobStatus.IN_PROGRESS)

    async def report_success(
        self,
        job_id: str,
        client_id: str,
        execution_details: ExecutionDetails | None,
        current_revision: CurrentRevision | None,
        continuation_token: str | None,
    ) -> None:
        if self.report_error is not None:
            raise self.report_error
        self.successes.append(
            {
                "job_id": job_id,
                "client_id": client_id,
                "execution_details": execution_details,
                "current_revision": current_revision,
                "continuation_token": continuation_token,
            }
        )

    async def report_failure(self, job_id: str, client_id: str, failure_details: FailureDetails) -> None:
        if self.report_error is not None:
            raise self.report_error
        self.failures.append({"job_id": job_id, "client_id": client_id, "failure_details": failure_details})

    def reported_ids(self) -> list[str]:
        return [entry["job_id"] for entry in self.successes + self.failures]


class FakeJobProcessor:
    def __init__(self) -> None:
        self.outcomes: dict[str, WorkResult | Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.processed: list[str] = []

    async def process(self, job: Job) -> WorkResult:
        self.processed.append(job.id)
        gate = self.gates.get(job.id)
        if gate is not None:
            await gate.wait()
        outcome = self.outcomes.get(job.id)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return WorkResult.succeeded(job.id, execution_details=ExecutionDetails(summary=f"done {job.id}"))
        return outcome


@pytest.fixture
def source() -> FakeJobSource:
    return FakeJobSource()


@pytest.fixture
def processor() -> FakeJobProcessor:
    return FakeJobProcessor()


@pytest.fixture
def make_job() -> Callable[..., Job]:
    def factory(job_id: str, *, client_id: str = "client-1", **data: Any) -> Job:
        return Job(id=job_id, nonce=f"nonce-{job_id}", client_id=client_id, data=JobData(**data))

    return factory

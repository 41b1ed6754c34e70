from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobStatus(str, Enum):
    """Status returned by the source when a job is acknowledged."""

    QUEUED = "Queued"
    DISPATCHED = "Dispatched"
    IN_PROGRESS = "InProgress"
    TIMED_OUT = "TimedOut"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


AcknowledgeOutcome = JobStatus | str


def is_granted(outcome: AcknowledgeOutcome | None) -> bool:
    # Only InProgress hands the job to this worker; every other value, known or not, is a lost claim.
    return outcome == JobStatus.IN_PROGRESS


def parse_job_status(raw: Any) -> AcknowledgeOutcome:
    try:
        return JobStatus(raw)
    except ValueError:
        return str(raw)


class FailureType(str, Enum):
    JOB_FAILED = "JobFailed"
    CONFIGURATION_ERROR = "ConfigurationError"
    PERMISSION_ERROR = "PermissionError"
    REVISION_OUT_OF_SYNC = "RevisionOutOfSync"
    REVISION_UNAVAILABLE = "RevisionUnavailable"
    SYSTEM_UNAVAILABLE = "SystemUnavailable"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class ActionType(_Frozen):
    category: str
    owner: str
    provider: str
    version: str


class Artifact(_Frozen):
    name: str | None = None
    revision: str | None = None
    location_bucket: str | None = None
    location_key: str | None = None


class ArtifactCredentials(_Frozen):
    access_key_id: str
    secret_access_key: str = Field(repr=False)
    session_token: str = Field(repr=False)


class JobData(_Frozen):
    action_configuration: dict[str, str] = Field(default_factory=dict)
    input_artifacts: tuple[Artifact, ...] = ()
    output_artifacts: tuple[Artifact, ...] = ()
    artifact_credentials: ArtifactCredentials | None = None
    continuation_token: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, value: Any) -> Any:
        # Sources send explicit nulls for empty collections.
        if isinstance(value, dict):
            return {key: item for key, item in value.items() if item is not None}
        return value


class Job(_Frozen):
    """A polled unit of work. Claimed with its nonce and consumed by exactly one task."""

    id: str
    nonce: str
    client_id: str
    data: JobData = Field(default_factory=JobData)


class ExecutionDetails(_Frozen):
    summary: str | None = None
    external_execution_id: str | None = None
    percent_complete: int | None = Field(default=None, ge=0, le=100)


class CurrentRevision(_Frozen):
    revision: str
    change_identifier: str


class FailureDetails(_Frozen):
    type: FailureType
    message: str | None = None


class SuccessOutcome(_Frozen):
    execution_details: ExecutionDetails | None = None
    current_revision: CurrentRevision | None = None
    # Set when the work is not finished yet; the source schedules a follow-up job for it.
    continuation_token: str | None = None


class WorkResult(_Frozen):
    """Outcome of processing one job.

    Exactly one of ``success`` and ``failure`` is populated; anything else is
    rejected at construction. Prefer :meth:`succeeded` and :meth:`failed`.
    """

    job_id: str
    success: SuccessOutcome | None = None
    failure: FailureDetails | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> WorkResult:
        if (self.success is None) == (self.failure is None):
            raise ValueError("work result must carry exactly one of success or failure")
        return self

    @classmethod
    def succeeded(
        cls,
        job_id: str,
        execution_details: ExecutionDetails | None = None,
        current_revision: CurrentRevision | None = None,
        continuation_token: str | None = None,
    ) -> WorkResult:
        return cls(
            job_id=job_id,
            success=SuccessOutcome(
                execution_details=execution_details,
                current_revision=current_revision,
                continuation_token=continuation_token,
            ),
        )

    @classmethod
    def failed(cls, job_id: str, failure_details: FailureDetails) -> WorkResult:
        return cls(job_id=job_id, failure=failure_details)

    @property
    def is_success(self) -> bool:
        return self.success is not None

    @property
    def continuation_token(self) -> str | None:
        return self.success.continuation_token if self.success is not None else None

from __future__ import annotations

import pytest
from pydantic import ValidationError

from jobworker.core.models import (
    ArtifactCredentials,
    CurrentRevision,
    FailureDetails,
    FailureType,
    Job,
    JobStatus,
    SuccessOutcome,
    WorkResult,
    is_granted,
    parse_job_status,
)


def test_work_result_rejects_missing_outcome() -> None:
    with pytest.raises(ValidationError):
        WorkResult(job_id="job-1")


def test_work_result_rejects_both_outcomes() -> None:
    with pytest.raises(ValidationError):
        WorkResult(
            job_id="job-1",
            success=SuccessOutcome(),
            failure=FailureDetails(type=FailureType.JOB_FAILED),
        )


def test_work_result_failed_requires_failure_details() -> None:
    with pytest.raises(ValidationError):
        WorkResult.failed("job-1", None)  # type: ignore[arg-type]


def test_work_result_success_carries_continuation_token() -> None:
    result = WorkResult.succeeded(
        "job-1",
        current_revision=CurrentRevision(revision="rev-1", change_identifier="change-1"),
        continuation_token="resume-here",
    )

    assert result.is_success
    assert result.failure is None
    assert result.continuation_token == "resume-here"
    assert result.success.current_revision.revision == "rev-1"


def test_work_result_failure_has_no_continuation_token() -> None:
    result = WorkResult.failed("job-1", FailureDetails(type=FailureType.SYSTEM_UNAVAILABLE, message="down"))

    assert not result.is_success
    assert result.continuation_token is None
    assert result.failure.message == "down"


def test_only_in_progress_grants_the_claim() -> None:
    assert is_granted(JobStatus.IN_PROGRESS)
    assert is_granted("InProgress")
    for status in (JobStatus.QUEUED, JobStatus.DISPATCHED, JobStatus.TIMED_OUT, JobStatus.SUCCEEDED, JobStatus.FAILED):
        assert not is_granted(status)
    assert not is_granted("Reassigned")
    assert not is_granted(None)


def test_parse_job_status_keeps_unknown_values() -> None:
    assert parse_job_status("TimedOut") is JobStatus.TIMED_OUT
    assert parse_job_status("Reassigned") == "Reassigned"


def test_job_parses_wire_payload_with_null_collections() -> None:
    job = Job.model_validate(
        {
            "id": "job-1",
            "nonce": "n-1",
            "client_id": "tenant-a",
            "data": {
                "action_configuration": {"Stage": "prod"},
                "input_artifacts": [{"name": "source", "location_key": "a/b.zip"}],
                "output_artifacts": None,
                "continuation_token": None,
            },
        }
    )

    assert job.data.action_configuration == {"Stage": "prod"}
    assert job.data.input_artifacts[0].location_key == "a/b.zip"
    assert job.data.output_artifacts == ()
    assert job.data.continuation_token is None


def test_job_is_immutable() -> None:
    job = Job(id="job-1", nonce="n-1", client_id="tenant-a")

    with pytest.raises(ValidationError):
        job.nonce = "other"  # type: ignore[misc]


def test_artifact_credentials_hide_secrets_from_repr() -> None:
    credentials = ArtifactCredentials(access_key_id="AKIA", secret_access_key="secret", session_token="token")

    assert repr(credentials) == "ArtifactCredentials(access_key_id='AKIA')"

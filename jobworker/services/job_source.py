from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from jobworker.core.config import Settings
from jobworker.core.models import (
    AcknowledgeOutcome,
    ActionType,
    CurrentRevision,
    ExecutionDetails,
    FailureDetails,
    Job,
    JobData,
    parse_job_status,
)
from jobworker.services.client_tokens import (
    ClientTokenProvider,
    StaticClientTokenProvider,
    parse_client_tokens,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class JobSource(Protocol):
    async def poll(self, max_batch_size: int) -> list[Job]: ...

    async def acknowledge(self, job_id: str, client_id: str, nonce: str) -> AcknowledgeOutcome: ...

    async def report_success(
        self,
        job_id: str,
        client_id: str,
        execution_details: ExecutionDetails | None,
        current_revision: CurrentRevision | None,
        continuation_token: str | None,
    ) -> None: ...

    async def report_failure(self, job_id: str, client_id: str, failure_details: FailureDetails) -> None: ...


class _JobApi:
    def __init__(
        self,
        base_url: str,
        module_id: str,
        api_key: str,
        *,
        timeout_seconds: float,
        client: httpx.AsyncClient | None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "X-Module-Id": module_id,
            "X-API-Key": api_key,
        }
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        merged_headers = {**self.headers, **(headers or {})}
        if self._client is not None:
            response = await self._client.request(method, url, params=params, json=json, headers=merged_headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(method, url, params=params, json=json, headers=merged_headers)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()


class HttpJobSource:
    """Job source backed by the direct job API."""

    def __init__(
        self,
        base_url: str,
        module_id: str,
        api_key: str,
        action_type: ActionType,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if action_type is None:
            raise ValueError("action_type is required")
        self.action_type = action_type
        self._api = _JobApi(base_url, module_id, api_key, timeout_seconds=timeout_seconds, client=client)

    async def poll(self, max_batch_size: int) -> list[Job]:
        logger.debug("poll for jobs action_type=%s max_batch_size=%s", self.action_type, max_batch_size)
        payload = await self._api.request(
            "GET",
            "/jobs/poll",
            params={"limit": max_batch_size, **_action_type_params(self.action_type)},
        )
        return _limit_batch(_parse_jobs(payload), max_batch_size)

    async def acknowledge(self, job_id: str, client_id: str, nonce: str) -> AcknowledgeOutcome:
        logger.debug("acknowledge job id=%s client_id=%s nonce=%s", job_id, client_id, nonce)
        payload = await self._api.request(
            "POST",
            f"/jobs/{_quote(job_id)}/acknowledge",
            json={"nonce": nonce, "client_id": client_id},
        )
        return parse_job_status(_as_dict(payload).get("status"))

    async def report_success(
        self,
        job_id: str,
        client_id: str,
        execution_details: ExecutionDetails | None,
        current_revision: CurrentRevision | None,
        continuation_token: str | None,
    ) -> None:
        logger.debug("put job success id=%s", job_id)
        await self._api.request(
            "POST",
            f"/jobs/{_quote(job_id)}/success",
            json=_success_body(client_id, execution_details, current_revision, continuation_token),
        )

    async def report_failure(self, job_id: str, client_id: str, failure_details: FailureDetails) -> None:
        logger.debug("put job failure id=%s", job_id)
        await self._api.request(
            "POST",
            f"/jobs/{_quote(job_id)}/failure",
            json=_failure_body(client_id, failure_details),
        )


class DelegatedJobSource:
    """Job source backed by the third-party job API.

    Jobs are listed without their payload; details, acknowledgement and results
    each require the token of the client that owns the job.
    """

    def __init__(
        self,
        base_url: str,
        module_id: str,
        api_key: str,
        action_type: ActionType,
        client_token_provider: ClientTokenProvider,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if action_type is None:
            raise ValueError("action_type is required")
        if client_token_provider is None:
            raise ValueError("client_token_provider is required")
        self.action_type = action_type
        self.client_token_provider = client_token_provider
        self._api = _JobApi(base_url, module_id, api_key, timeout_seconds=timeout_seconds, client=client)

    async def poll(self, max_batch_size: int) -> list[Job]:
        logger.debug("poll for third-party jobs action_type=%s max_batch_size=%s", self.action_type, max_batch_size)
        payload = await self._api.request(
            "GET",
            "/third-party-jobs/poll",
            params={"limit": max_batch_size, **_action_type_params(self.action_type)},
        )
        listed = _limit_batch(_as_list(payload), max_batch_size)

        jobs: list[Job] = []
        for item in listed:
            entry = _as_dict(item)
            job_id = entry.get("id")
            client_id = entry.get("client_id")
            if not isinstance(job_id, str) or not isinstance(client_id, str):
                logger.warning("skipping malformed third-party job entry: %s", entry)
                continue
            try:
                jobs.append(await self._job_details(job_id, client_id))
            except (httpx.HTTPError, ValidationError, LookupError) as exc:
                # Never acknowledged, so the source offers it again on a later poll.
                logger.warning("could not load details for third-party job id=%s: %s", job_id, exc)
        return jobs

    async def acknowledge(self, job_id: str, client_id: str, nonce: str) -> AcknowledgeOutcome:
        logger.debug("acknowledge third-party job id=%s client_id=%s nonce=%s", job_id, client_id, nonce)
        payload = await self._api.request(
            "POST",
            f"/third-party-jobs/{_quote(job_id)}/acknowledge",
            json={"nonce": nonce, "client_id": client_id},
            headers=self._client_token_header(client_id),
        )
        return parse_job_status(_as_dict(payload).get("status"))

    async def report_success(
        self,
        job_id: str,
        client_id: str,
        execution_details: ExecutionDetails | None,
        current_revision: CurrentRevision | None,
        continuation_token: str | None,
    ) -> None:
        logger.debug("put third-party job success id=%s", job_id)
        await self._api.request(
            "POST",
            f"/third-party-jobs/{_quote(job_id)}/success",
            json=_success_body(client_id, execution_details, current_revision, continuation_token),
            headers=self._client_token_header(client_id),
        )

    async def report_failure(self, job_id: str, client_id: str, failure_details: FailureDetails) -> None:
        logger.debug("put third-party job failure id=%s", job_id)
        await self._api.request(
            "POST",
            f"/third-party-jobs/{_quote(job_id)}/failure",
            json=_failure_body(client_id, failure_details),
            headers=self._client_token_header(client_id),
        )

    async def _job_details(self, job_id: str, client_id: str) -> Job:
        payload = _as_dict(
            await self._api.request(
                "GET",
                f"/third-party-jobs/{_quote(job_id)}",
                headers=self._client_token_header(client_id),
            )
        )
        return Job(
            id=job_id,
            nonce=payload.get("nonce"),
            client_id=client_id,
            data=JobData.model_validate(_as_dict(payload.get("data"))),
        )

    def _client_token_header(self, client_id: str) -> dict[str, str]:
        return {"X-Client-Token": self.client_token_provider.lookup_client_token(client_id)}


def build_job_source(settings: Settings, *, client: httpx.AsyncClient | None = None) -> JobSource:
    if settings.job_source_mode == "direct":
        return HttpJobSource(
            settings.api_base_url,
            settings.module_id,
            settings.api_key,
            _action_type(settings, owner="Custom"),
            timeout_seconds=settings.request_timeout_seconds,
            client=client,
        )
    if settings.job_source_mode == "delegated":
        return DelegatedJobSource(
            settings.api_base_url,
            settings.module_id,
            settings.api_key,
            _action_type(settings, owner="ThirdParty"),
            StaticClientTokenProvider(
                parse_client_tokens(settings.client_tokens_json),
                default_token=settings.default_client_token,
            ),
            timeout_seconds=settings.request_timeout_seconds,
            client=client,
        )
    raise ValueError(f"unsupported job source mode: {settings.job_source_mode}")


def _action_type(settings: Settings, *, owner: str) -> ActionType:
    return ActionType(
        category=settings.action_category,
        owner=owner,
        provider=settings.action_provider,
        version=settings.action_version,
    )


def _action_type_params(action_type: ActionType) -> dict[str, str]:
    return {
        "action_category": action_type.category,
        "action_owner": action_type.owner,
        "action_provider": action_type.provider,
        "action_version": action_type.version,
    }


def _parse_jobs(payload: Any) -> list[Job]:
    jobs: list[Job] = []
    for item in _as_list(payload):
        try:
            jobs.append(Job.model_validate(item))
        except ValidationError as exc:
            logger.warning("skipping malformed job payload: %s", exc)
    return jobs


def _limit_batch(items: list[Any], max_batch_size: int) -> list[Any]:
    if len(items) <= max_batch_size:
        return items
    logger.warning("source returned %s jobs for batch size %s; dropping the extra jobs", len(items), max_batch_size)
    return items[:max_batch_size]


def _success_body(
    client_id: str,
    execution_details: ExecutionDetails | None,
    current_revision: CurrentRevision | None,
    continuation_token: str | None,
) -> dict[str, Any]:
    return {
        "client_id": client_id,
        "execution_details": execution_details.model_dump(mode="json") if execution_details else None,
        "current_revision": current_revision.model_dump(mode="json") if current_revision else None,
        "continuation_token": continuation_token,
    }


def _failure_body(client_id: str, failure_details: FailureDetails) -> dict[str, Any]:
    return {
        "client_id": client_id,
        "failure_details": failure_details.model_dump(mode="json"),
    }


def _quote(job_id: str) -> str:
    return quote(job_id, safe="")


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}

"""HTTP implementations of the processing backend and idea lookup."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from duet.backend.base import IdeaLookup, ProcessingBackend
from duet.errors.exceptions import BackendError
from duet.models.enums import ACTIVE_STATUSES, JobStatus
from duet.models.job import IdeaRecord, Job
from duet.services.clock import Clock, utcnow

logger = logging.getLogger(__name__)


def _error_message(resp: httpx.Response) -> str:
    """Pull a readable message out of an error response."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message") or body.get("error")
        if isinstance(detail, dict):
            detail = detail.get("message")
        if isinstance(detail, str) and detail:
            return detail
    return f"HTTP {resp.status_code}"


def build_client(
    base_url: str,
    api_token: str | None = None,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = {"Accept": "application/json"}
    if api_token:
        headers["Authorization"] = f"Bearer {api_token}"
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        headers=headers,
        timeout=timeout,
        transport=transport,
    )


class _HttpCollaborator:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise BackendError(_error_message(resp), status_code=resp.status_code)
        return resp

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpProcessingBackend(_HttpCollaborator, ProcessingBackend):
    """Talks to the hosted processing API.

    ``POST /summarise`` and ``POST /groups/add-url`` answer with
    ``{processing_id, message, status}``; retry answers with the job document.
    """

    backend_type = "http"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        default_publish_ideas: bool = False,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(client)
        self.default_publish_ideas = default_publish_ideas
        self._clock = clock

    async def start_job(self, url: str, owner_id: str, group_id: str | None = None) -> Job:
        if group_id is None:
            path = "/summarise"
            body = {"url": url, "user_id": owner_id, "public": self.default_publish_ideas}
        else:
            # Group ideas are never published.
            path = "/groups/add-url"
            body = {"url": url, "user_id": owner_id, "group_id": group_id, "public": False}

        resp = await self._request("POST", path, json=body)
        return self._job_from_response(resp, url, owner_id, group_id)

    async def retry_job(self, job_id: str) -> Job:
        resp = await self._request("POST", f"/processing/{job_id}/retry")
        data = self._json(resp)
        try:
            return Job.model_validate(data)
        except ValidationError as exc:
            raise BackendError(f"Malformed retry response for job '{job_id}': {exc.error_count()} errors") from exc

    async def delete_job(self, job_id: str) -> None:
        await self._request("DELETE", f"/processing/{job_id}")

    def _json(self, resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError as exc:
            raise BackendError(f"Backend returned non-JSON body (HTTP {resp.status_code})") from exc
        if not isinstance(data, dict):
            raise BackendError("Backend returned an unexpected response shape")
        return data

    def _job_from_response(self, resp: httpx.Response, url: str, owner_id: str, group_id: str | None) -> Job:
        data = self._json(resp)
        job_id = data.get("processing_id") or data.get("id")
        if not job_id:
            raise BackendError("Backend response is missing processing_id")

        try:
            status = JobStatus(data.get("status"))
        except ValueError:
            status = JobStatus.QUEUED
        if status not in ACTIVE_STATUSES:
            # A fresh submission is never terminal from the client's point of view;
            # the push channel delivers the real outcome.
            status = JobStatus.QUEUED

        now = self._clock()
        return Job(
            id=str(job_id),
            owner_id=owner_id,
            group_id=group_id,
            source_url=url,
            status=status,
            progress_message=data.get("message") or "",
            created_at=now,
            updated_at=now,
        )


class HttpIdeaLookup(_HttpCollaborator, IdeaLookup):
    async def get_idea(self, result_id: str) -> IdeaRecord:
        resp = await self._request("GET", f"/activities/{result_id}")
        try:
            return IdeaRecord.from_document(resp.json())
        except (ValueError, KeyError, ValidationError) as exc:
            raise BackendError(f"Malformed idea document '{result_id}'") from exc

"""Processing job endpoints served by the local development backend."""

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field

from duet.api.dependencies import get_backend, get_ideas
from duet.backend.memory import InMemoryIdeaLookup, InMemoryProcessingBackend
from duet.errors.exceptions import JobNotFoundError
from duet.models.enums import JobStatus
from duet.models.job import IdeaRecord, JobScope
from duet.services.url_normalizer import normalize_source_url

router = APIRouter(tags=["Processing"])


class SummariseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    user_id: str = Field(..., min_length=1)
    public: bool = False


class GroupSummariseRequest(SummariseRequest):
    group_id: str = Field(..., min_length=1)


class AdvanceRequest(BaseModel):
    """Server-side transition applied by hand while developing against the stub."""

    status: JobStatus
    progress_message: str | None = None
    error_message: str | None = None
    result_id: str | None = None
    retryable: bool | None = None
    title: str | None = None
    thumbnail_b64: str | None = None


def _started(job) -> dict:
    return {"processing_id": job.id, "message": "Video processing started", "status": str(job.status)}


@router.post("/summarise", status_code=202)
async def summarise(
    body: SummariseRequest,
    backend: InMemoryProcessingBackend = Depends(get_backend),
) -> dict:
    job = await backend.start_job(normalize_source_url(body.url), body.user_id)
    return _started(job)


@router.post("/groups/add-url", status_code=202)
async def add_group_url(
    body: GroupSummariseRequest,
    backend: InMemoryProcessingBackend = Depends(get_backend),
) -> dict:
    job = await backend.start_job(normalize_source_url(body.url), body.user_id, body.group_id)
    return _started(job)


@router.get("/processing")
async def list_jobs(
    user_id: str = Query(..., min_length=1),
    group_id: str | None = None,
    backend: InMemoryProcessingBackend = Depends(get_backend),
) -> list[dict]:
    scope = JobScope(group_id)
    owner = user_id if scope.is_personal else None
    return [job.to_document() for job in backend.list_jobs(scope, owner)]


@router.get("/processing/{job_id}")
async def get_job(
    job_id: str,
    backend: InMemoryProcessingBackend = Depends(get_backend),
) -> dict:
    job = backend.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job.to_document()


@router.post("/processing/{job_id}/retry")
async def retry_job(
    job_id: str,
    backend: InMemoryProcessingBackend = Depends(get_backend),
) -> dict:
    job = await backend.retry_job(job_id)
    return job.to_document()


@router.delete("/processing/{job_id}", status_code=204)
async def delete_job(
    job_id: str,
    backend: InMemoryProcessingBackend = Depends(get_backend),
) -> Response:
    await backend.delete_job(job_id)
    return Response(status_code=204)


@router.post("/processing/{job_id}/advance")
async def advance_job(
    job_id: str,
    body: AdvanceRequest,
    backend: InMemoryProcessingBackend = Depends(get_backend),
    ideas: InMemoryIdeaLookup = Depends(get_ideas),
) -> dict:
    if backend.get_job(job_id) is None:
        raise JobNotFoundError(job_id)
    changes = body.model_dump(exclude_none=True)
    if "title" in changes:
        changes["title_preview"] = changes.pop("title")
    if "thumbnail_b64" in changes:
        changes["thumbnail_preview"] = changes.pop("thumbnail_b64")
    job = backend.advance(job_id, **changes)
    if job.result_id and job.result_id not in ideas.ideas:
        ideas.add(IdeaRecord(id=job.result_id, title=job.title_preview or "New Idea"))
    return job.to_document()


@router.get("/activities/{result_id}")
async def get_activity(
    result_id: str,
    ideas: InMemoryIdeaLookup = Depends(get_ideas),
) -> dict:
    idea = await ideas.get_idea(result_id)
    return {"id": idea.id, "summary": {**(idea.summary or {}), "title": idea.title}}

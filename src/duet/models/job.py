"""Pydantic models for processing jobs and their list scopes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from duet.errors.exceptions import InvalidInputError
from duet.models.enums import JobStatus

DEFAULT_FAILURE_MESSAGE = "Failed to process video"

_DISPLAY_URL_LIMIT = 80
_DISPLAY_URL_EDGE = 20


class Job(BaseModel):
    """One video-to-idea processing request, as delivered by the backend.

    Field aliases match the backend document keys (``user_id``, ``url``,
    ``thumbnail_b64``, ``title``); either spelling is accepted on input.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    owner_id: str = Field(..., alias="user_id", min_length=1)
    group_id: str | None = None
    source_url: str = Field(..., alias="url", min_length=1)
    status: JobStatus
    progress_message: str = ""
    error_message: str | None = None
    result_id: str | None = None
    retryable: bool = False
    thumbnail_preview: str | None = Field(None, alias="thumbnail_b64")
    title_preview: str | None = Field(None, alias="title")
    created_at: datetime
    updated_at: datetime

    # Local-only: set on optimistic writes, cleared by the next pushed document.
    pending: bool = Field(False, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _default_failure_message(cls, data):
        if isinstance(data, dict) and str(data.get("status")) == JobStatus.FAILED and not data.get("error_message"):
            data = {**data, "error_message": DEFAULT_FAILURE_MESSAGE}
        return data

    @field_validator("group_id", "error_message", "result_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("progress_message", mode="before")
    @classmethod
    def _none_to_blank(cls, value):
        return "" if value is None else value

    @model_validator(mode="after")
    def _check_invariants(self) -> Job:
        if (self.status == JobStatus.COMPLETED) != (self.result_id is not None):
            raise ValueError("result_id must be set if and only if status is completed")
        if (self.status == JobStatus.FAILED) != (self.error_message is not None):
            raise ValueError("error_message must be set if and only if status is failed")
        if self.updated_at < self.created_at:
            raise ValueError("updated_at precedes created_at")
        return self

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == JobStatus.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def can_retry(self) -> bool:
        return self.is_failed and self.retryable

    @property
    def scope(self) -> JobScope:
        return JobScope(self.group_id)

    @property
    def display_url(self) -> str:
        """Source URL without scheme or ``www.``, elided in the middle when long."""
        clean = self.source_url.replace("https://", "").replace("http://", "").replace("www.", "")
        if len(clean) > _DISPLAY_URL_LIMIT:
            return f"{clean[:_DISPLAY_URL_EDGE]}...{clean[-_DISPLAY_URL_EDGE:]}"
        return clean

    def processing_duration(self, now: datetime) -> float:
        """Seconds spent processing: running time while active, total time once finished."""
        if self.is_active:
            return max((now - self.created_at).total_seconds(), 0.0)
        return (self.updated_at - self.created_at).total_seconds()

    def reset_for_retry(self, now: datetime) -> Job:
        """Fresh attempt under the same id: back to queued, error and result cleared."""
        return self.model_copy(
            update={
                "status": JobStatus.QUEUED,
                "error_message": None,
                "result_id": None,
                "progress_message": "",
                "updated_at": max(now, self.updated_at),
                "pending": True,
            }
        )

    def to_document(self) -> dict:
        """Backend document form (aliased keys, JSON-safe values)."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class JobScope:
    """Personal list (``group_id is None``) or one group's shared list."""

    group_id: str | None = None

    @classmethod
    def personal(cls) -> JobScope:
        return cls(None)

    @classmethod
    def group(cls, group_id: str) -> JobScope:
        if not group_id or not group_id.strip():
            raise InvalidInputError("Group id must not be empty")
        return cls(group_id)

    @classmethod
    def of(cls, job: Job) -> JobScope:
        return cls(job.group_id)

    @property
    def is_personal(self) -> bool:
        return self.group_id is None

    def __str__(self) -> str:
        return "personal" if self.group_id is None else f"group:{self.group_id}"


class IdeaRecord(BaseModel):
    """Generated idea resolved from a completed job's ``result_id``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    summary: dict | None = None

    @classmethod
    def from_document(cls, doc: dict) -> IdeaRecord:
        summary = doc.get("summary") or {}
        title = doc.get("title") or summary.get("title") or "New Idea"
        return cls(id=str(doc["id"]), title=title, summary=summary or None)

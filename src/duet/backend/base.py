"""Abstract collaborators the job registry talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from duet.models.job import IdeaRecord, Job, JobScope


class ProcessingBackend(ABC):
    """Starts, retries and deletes server-side processing jobs."""

    backend_type: str = "unknown"

    @abstractmethod
    async def start_job(self, url: str, owner_id: str, group_id: str | None = None) -> Job:
        """Start processing ``url`` and return the initial job descriptor.

        Raises:
            BackendError: the backend rejected the request or was unreachable.
        """
        ...

    @abstractmethod
    async def retry_job(self, job_id: str) -> Job:
        """Resubmit a failed job under its existing id.

        Raises:
            BackendError: the backend rejected the request or was unreachable.
        """
        ...

    @abstractmethod
    async def delete_job(self, job_id: str) -> None:
        """Delete the job record.

        Raises:
            BackendError: the backend rejected the request or was unreachable.
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources. Override when holding a client."""


class JobUpdateChannel(ABC):
    """Live stream of job documents pushed by the backend."""

    channel_type: str = "unknown"

    @abstractmethod
    def subscribe(self, scope: JobScope) -> AsyncIterator[dict]:
        """Yield one raw job document per server-side mutation in ``scope``.

        Documents are passed through undecoded; validation belongs to the
        consumer so that a malformed document can be dropped without ending
        the stream.
        """
        ...

    @abstractmethod
    async def unsubscribe(self, scope: JobScope) -> None:
        """Tear down the stream for ``scope``. Safe to call repeatedly."""
        ...


class IdeaLookup(ABC):
    """Resolves the generated idea behind a completed job."""

    @abstractmethod
    async def get_idea(self, result_id: str) -> IdeaRecord:
        ...

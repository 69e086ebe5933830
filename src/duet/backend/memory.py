"""In-process collaborators used by the local dev server and tests.

The backend keeps job documents in a dict and publishes every mutation on an
``InMemoryUpdateChannel``, mirroring how the hosted backend writes
``processing_status`` documents that the live listener then delivers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from duet.backend.base import IdeaLookup, JobUpdateChannel, ProcessingBackend
from duet.errors.exceptions import BackendError
from duet.models.enums import JobStatus
from duet.models.job import IdeaRecord, Job, JobScope
from duet.services.clock import Clock, utcnow
from duet.services.id_generator import generate_id

logger = logging.getLogger(__name__)

_CLOSE = object()


class InMemoryUpdateChannel(JobUpdateChannel):
    """Fans published documents out to every open subscription of their scope.

    A personal subscription receives documents without a ``group_id``; a group
    subscription receives that group's documents.

    The channel itself acts as one client connection. ``connect()`` opens
    another one on the same feed, the way a second device would; each
    connection's ``unsubscribe`` only ends the streams it opened.
    """

    channel_type = "memory"

    def __init__(self) -> None:
        # scope -> [(queue, owning connection)]
        self._queues: dict[JobScope, list[tuple[asyncio.Queue, object]]] = {}
        self.subscribe_count: dict[JobScope, int] = {}
        self.unsubscribe_calls: list[JobScope] = []

    def connect(self) -> InMemoryChannelClient:
        return InMemoryChannelClient(self)

    def subscribe(self, scope: JobScope) -> AsyncIterator[dict]:
        return self._stream(scope, self)

    async def unsubscribe(self, scope: JobScope) -> None:
        self.unsubscribe_calls.append(scope)
        self._close(scope, self)

    async def _stream(self, scope: JobScope, owner) -> AsyncIterator[dict]:
        entry = (asyncio.Queue(), owner)
        self._queues.setdefault(scope, []).append(entry)
        owner.subscribe_count[scope] = owner.subscribe_count.get(scope, 0) + 1
        try:
            while True:
                doc = await entry[0].get()
                if doc is _CLOSE:
                    return
                yield doc
        finally:
            entries = self._queues.get(scope, [])
            if entry in entries:
                entries.remove(entry)
            if not entries:
                self._queues.pop(scope, None)

    def _close(self, scope: JobScope, owner) -> None:
        for queue, queue_owner in self._queues.get(scope, []):
            if queue_owner is owner:
                queue.put_nowait(_CLOSE)

    def open_subscriptions(self, scope: JobScope) -> int:
        return len(self._queues.get(scope, []))

    def publish(self, doc: dict) -> int:
        """Deliver ``doc`` to subscribers of its scope. Returns the delivery count."""
        scope = JobScope(doc.get("group_id") or None)
        entries = self._queues.get(scope, [])
        for queue, _ in entries:
            queue.put_nowait(doc)
        return len(entries)


class InMemoryChannelClient(JobUpdateChannel):
    """Separate connection to an ``InMemoryUpdateChannel`` feed."""

    channel_type = "memory"

    def __init__(self, feed: InMemoryUpdateChannel) -> None:
        self.feed = feed
        self.subscribe_count: dict[JobScope, int] = {}
        self.unsubscribe_calls: list[JobScope] = []

    def subscribe(self, scope: JobScope) -> AsyncIterator[dict]:
        return self.feed._stream(scope, self)

    async def unsubscribe(self, scope: JobScope) -> None:
        self.unsubscribe_calls.append(scope)
        self.feed._close(scope, self)


class InMemoryProcessingBackend(ProcessingBackend):
    """Dict-backed processing backend with scriptable failures."""

    backend_type = "memory"

    def __init__(self, channel: InMemoryUpdateChannel | None = None, clock: Clock = utcnow) -> None:
        self.channel = channel
        self.clock = clock
        self.jobs: dict[str, Job] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[str, BackendError] = {}

    def fail_next(self, operation: str, message: str = "Backend unavailable", status_code: int = 503) -> None:
        """Make the next ``start``/``retry``/``delete`` call raise ``BackendError``."""
        self._failures[operation] = BackendError(message, status_code=status_code)

    def _check_failure(self, operation: str, subject: str) -> None:
        self.calls.append((operation, subject))
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    def _publish(self, job: Job) -> None:
        if self.channel is not None:
            self.channel.publish(job.to_document())

    async def start_job(self, url: str, owner_id: str, group_id: str | None = None) -> Job:
        self._check_failure("start", url)
        now = self.clock()
        job = Job(
            id=generate_id("job_"),
            owner_id=owner_id,
            group_id=group_id,
            source_url=url,
            status=JobStatus.QUEUED,
            progress_message="Queued",
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        self._publish(job)
        return job

    async def retry_job(self, job_id: str) -> Job:
        self._check_failure("retry", job_id)
        job = self.jobs.get(job_id)
        if job is None:
            raise BackendError(f"Job '{job_id}' not found", status_code=404)
        if not job.can_retry:
            raise BackendError(f"Job '{job_id}' is not retryable", status_code=409)
        retried = job.reset_for_retry(self.clock()).model_copy(update={"pending": False})
        self.jobs[job_id] = retried
        self._publish(retried)
        return retried

    async def delete_job(self, job_id: str) -> None:
        self._check_failure("delete", job_id)
        job = self.jobs.pop(job_id, None)
        if job is None:
            raise BackendError(f"Job '{job_id}' not found", status_code=404)
        if self.channel is not None:
            self.channel.publish({"id": job.id, "user_id": job.owner_id, "group_id": job.group_id, "deleted": True})

    def advance(self, job_id: str, **changes) -> Job:
        """Apply a server-side transition and publish the resulting document."""
        current = self.jobs[job_id]
        data = current.model_dump()
        data.update(changes)
        status = JobStatus(data["status"])
        if status != JobStatus.FAILED and "error_message" not in changes:
            data["error_message"] = None
        if status != JobStatus.COMPLETED and "result_id" not in changes:
            data["result_id"] = None
        if "updated_at" not in changes:
            data["updated_at"] = max(self.clock(), current.updated_at)
        job = Job.model_validate(data)
        self.jobs[job_id] = job
        logger.debug("Job %s advanced to %s", job_id, job.status)
        self._publish(job)
        return job

    def get_job(self, job_id: str) -> Job | None:
        return self.jobs.get(job_id)

    def list_jobs(self, scope: JobScope, owner_id: str | None = None) -> list[Job]:
        return [
            job
            for job in self.jobs.values()
            if job.group_id == scope.group_id and (owner_id is None or job.owner_id == owner_id)
        ]


class InMemoryIdeaLookup(IdeaLookup):
    def __init__(self) -> None:
        self.ideas: dict[str, IdeaRecord] = {}

    def add(self, idea: IdeaRecord) -> None:
        self.ideas[idea.id] = idea

    async def get_idea(self, result_id: str) -> IdeaRecord:
        idea = self.ideas.get(result_id)
        if idea is None:
            raise BackendError(f"Idea '{result_id}' not found", status_code=404)
        return idea

"""Authoritative in-memory set of processing jobs, personal and per group.

All mutation happens on the event loop that owns the registry. Network calls
suspend, and their results are applied after the await resumes, so the job
maps never need a lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime, timedelta

from pydantic import ValidationError

from duet.backend.base import JobUpdateChannel, ProcessingBackend
from duet.errors.exceptions import (
    BackendError,
    NotRetryableError,
    RemovalFailedError,
    RetryFailedError,
    SubmissionFailedError,
)
from duet.events.bus import JobEvent, JobEventBus
from duet.models.enums import JobEventType, JobStatus
from duet.models.job import Job, JobScope
from duet.registry.subscriptions import SubscriptionManager, WatchHandle
from duet.services.clock import Clock, utcnow
from duet.services.url_normalizer import normalize_source_url

logger = logging.getLogger(__name__)

PERSONAL = JobScope.personal()

DEFAULT_GRACE_PERIOD = timedelta(seconds=120)


class JobRegistry:
    """Owns the job maps, submits work and reconciles pushed documents.

    Args:
        backend: Processing backend used by ``submit``, ``retry`` and ``remove``.
        channel: Push channel feeding ``reconcile_document`` while a scope is watched.
        owner_id: User submitting jobs through this registry.
        grace_period: How long terminal jobs stay listed before ``sweep`` drops them.
        clock: Source of "now"; injectable for tests.
        events: Bus receiving one event per effective change.
    """

    def __init__(
        self,
        backend: ProcessingBackend,
        channel: JobUpdateChannel,
        owner_id: str,
        *,
        grace_period: timedelta = DEFAULT_GRACE_PERIOD,
        clock: Clock = utcnow,
        events: JobEventBus | None = None,
    ) -> None:
        self.owner_id = owner_id
        self.grace_period = grace_period
        self.events = events or JobEventBus()
        self._backend = backend
        self._clock = clock
        self._personal: dict[str, Job] = {}
        self._groups: dict[str, dict[str, Job]] = {}
        # job id -> (updated_at of the dropped copy, when it was dropped)
        self._tombstones: dict[str, tuple[datetime, datetime]] = {}
        self._subscriptions = SubscriptionManager(
            channel,
            on_document=self.reconcile_document,
            on_teardown=self._forget_scope,
        )

    # ------------------------------------------------------------------
    # Lookup and derived views
    # ------------------------------------------------------------------

    def _bucket(self, group_id: str | None) -> dict[str, Job] | None:
        if group_id is None:
            return self._personal
        return self._groups.get(group_id)

    def _iter_jobs(self) -> Iterator[Job]:
        yield from self._personal.values()
        for bucket in self._groups.values():
            yield from bucket.values()

    def get(self, job_id: str) -> Job | None:
        job = self._personal.get(job_id)
        if job is not None:
            return job
        for bucket in self._groups.values():
            job = bucket.get(job_id)
            if job is not None:
                return job
        return None

    def jobs_in(self, scope: JobScope = PERSONAL) -> list[Job]:
        bucket = self._bucket(scope.group_id)
        return list(bucket.values()) if bucket else []

    def active_jobs(self, scope: JobScope = PERSONAL) -> list[Job]:
        """Queued, downloading and processing jobs, newest first."""
        active = [job for job in self.jobs_in(scope) if job.is_active]
        return sorted(active, key=lambda job: (-job.created_at.timestamp(), job.id))

    def all_jobs(self, scope: JobScope = PERSONAL) -> list[Job]:
        """Active jobs (newest created first), then terminal jobs (latest update first)."""

        def order(job: Job):
            if job.is_active:
                return (0, -job.created_at.timestamp(), job.id)
            return (1, -job.updated_at.timestamp(), job.id)

        return sorted(self.jobs_in(scope), key=order)

    def job_count(self) -> int:
        return sum(1 for _ in self._iter_jobs())

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, incoming: Job) -> bool:
        """Upsert ``incoming`` by id, replacing any stored copy wholesale.

        Returns False when nothing changed (identical document, or a stale
        copy of a job that was already removed or expired).
        """
        tombstone = self._tombstones.get(incoming.id)
        if tombstone is not None:
            removed_version, _ = tombstone
            if incoming.updated_at <= removed_version:
                logger.debug("Ignoring stale document for removed job %s", incoming.id)
                return False
            del self._tombstones[incoming.id]

        previous = self.get(incoming.id)
        if previous == incoming:
            return False

        if previous is not None:
            if previous.group_id != incoming.group_id:
                logger.warning(
                    "Job %s moved from %s to %s",
                    incoming.id, previous.scope, incoming.scope,
                )
                self._discard(incoming.id)
            if _is_regression(previous.status, incoming.status):
                logger.warning(
                    "Out-of-order update for job %s: %s -> %s (applied)",
                    incoming.id, previous.status, incoming.status,
                )

        self._put(incoming)
        self._emit_transition(previous, incoming)
        return True

    def reconcile_document(self, doc: dict) -> bool:
        """Validate a raw pushed document and reconcile it.

        Malformed documents are dropped with a warning; stored state is left
        untouched. A ``{"id": ..., "deleted": true}`` tombstone removes the job.
        """
        if isinstance(doc, dict) and doc.get("deleted") is True and doc.get("id"):
            return self._drop(str(doc["id"]), JobEventType.REMOVED) is not None

        try:
            job = Job.model_validate(doc)
        except ValidationError as exc:
            doc_id = doc.get("id") if isinstance(doc, dict) else None
            logger.warning(
                "Dropping malformed job document (id=%s): %s",
                doc_id, "; ".join(err["msg"] for err in exc.errors()),
            )
            return False
        return self.reconcile(job)

    def _put(self, job: Job) -> None:
        if job.group_id is None:
            self._personal[job.id] = job
        else:
            self._groups.setdefault(job.group_id, {})[job.id] = job

    def _discard(self, job_id: str) -> Job | None:
        job = self._personal.pop(job_id, None)
        if job is not None:
            return job
        for bucket in self._groups.values():
            job = bucket.pop(job_id, None)
            if job is not None:
                return job
        return None

    def _drop(self, job_id: str, event_type: JobEventType) -> Job | None:
        job = self._discard(job_id)
        if job is None:
            return None
        self._tombstones[job_id] = (job.updated_at, self._clock())
        self.events.emit(JobEvent(event_type, job))
        return job

    def _emit_transition(self, previous: Job | None, job: Job) -> None:
        self.events.emit(JobEvent(JobEventType.UPDATED, job, previous))
        if job.is_completed and (previous is None or not previous.is_completed):
            self.events.emit(JobEvent(JobEventType.COMPLETED, job, previous))
        elif job.is_failed and (previous is None or not previous.is_failed):
            self.events.emit(JobEvent(JobEventType.FAILED, job, previous))

    # ------------------------------------------------------------------
    # Backend operations
    # ------------------------------------------------------------------

    async def submit(self, url: str, group_id: str | None = None) -> Job:
        """Start processing ``url`` for the personal list or a group.

        Raises:
            InvalidInputError: empty or unparseable URL, or empty group id.
            SubmissionFailedError: the backend rejected the request.
        """
        normalized = normalize_source_url(url)
        scope = JobScope.group(group_id) if group_id is not None else PERSONAL

        try:
            job = await self._backend.start_job(normalized, self.owner_id, group_id)
        except BackendError as exc:
            logger.warning("Submission of %s failed: %s", normalized, exc.message)
            raise SubmissionFailedError(exc) from exc

        # The push channel may already have delivered a newer copy.
        current = self.get(job.id)
        if current is None:
            self.reconcile(job)
            current = job
        logger.info("Submitted job %s to %s (status=%s)", job.id, scope, current.status)
        return current

    async def retry(self, job: Job) -> Job:
        """Resubmit a failed, retryable job under its existing id.

        Raises:
            NotRetryableError: job is not failed or the server marked it non-retryable.
            RetryFailedError: the backend rejected the retry; state is unchanged.
        """
        current = self.get(job.id) or job
        if not current.can_retry:
            raise NotRetryableError(current.id, current.status, current.retryable)

        try:
            await self._backend.retry_job(current.id)
        except BackendError as exc:
            logger.warning("Retry of job %s failed: %s", current.id, exc.message)
            raise RetryFailedError(exc) from exc

        latest = self.get(current.id)
        if latest is not None and not latest.is_failed:
            # A pushed document overtook the response.
            return latest
        retried = (latest or current).reset_for_retry(self._clock())
        self._tombstones.pop(retried.id, None)
        self.reconcile(retried)
        logger.info("Retrying job %s", retried.id)
        return retried

    async def remove(self, job: Job) -> None:
        """Drop ``job`` locally, then delete it on the backend.

        The local entry is not restored when the backend call fails.

        Raises:
            RemovalFailedError: the backend could not delete the record.
        """
        self._drop(job.id, JobEventType.REMOVED)
        try:
            await self._backend.delete_job(job.id)
        except BackendError as exc:
            logger.warning("Remote removal of job %s failed: %s", job.id, exc.message)
            raise RemovalFailedError(exc) from exc

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    async def start_watching(self, scope: JobScope = PERSONAL) -> WatchHandle:
        """Open (or share) the push subscription for ``scope``."""
        return await self._subscriptions.acquire(scope)

    async def stop_watching(self, scope: JobScope = PERSONAL) -> None:
        """Drop one watcher of ``scope``; the last one closes the subscription."""
        await self._subscriptions.release(scope)

    def watcher_count(self, scope: JobScope) -> int:
        return self._subscriptions.count(scope)

    def watched_scopes(self) -> list[JobScope]:
        return self._subscriptions.scopes()

    def _forget_scope(self, scope: JobScope) -> None:
        # Group lists are only kept while someone is looking at the group.
        if scope.group_id is not None:
            self._groups.pop(scope.group_id, None)

    async def close(self) -> None:
        await self._subscriptions.close()

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def sweep(self, now: datetime | None = None) -> list[Job]:
        """Remove terminal jobs whose last update is older than the grace period."""
        now = now or self._clock()
        expired = [
            job for job in self._iter_jobs()
            if job.is_terminal and now - job.updated_at > self.grace_period
        ]
        for job in expired:
            self._drop(job.id, JobEventType.EXPIRED)

        horizon = now - 2 * self.grace_period
        for job_id, (_, dropped_at) in list(self._tombstones.items()):
            if dropped_at < horizon:
                del self._tombstones[job_id]

        for group_id in [gid for gid, bucket in self._groups.items() if not bucket]:
            if JobScope(group_id) not in self._subscriptions.scopes():
                del self._groups[group_id]

        if expired:
            logger.info("Swept %d expired jobs", len(expired))
        return expired


def _is_regression(previous: JobStatus, incoming: JobStatus) -> bool:
    if previous == JobStatus.FAILED and incoming == JobStatus.QUEUED:
        return False
    return incoming.rank < previous.rank

"""View-bound wrappers around registry operations.

A view creates one ``JobActions`` and calls ``detach()`` when it goes away.
Operations already in flight still finish and update the registry, but their
toasts are dropped once the view is gone.
"""

from __future__ import annotations

import logging

from duet.errors.exceptions import DuetError
from duet.events.notifier import Toaster
from duet.models.job import Job
from duet.registry.job_registry import JobRegistry

logger = logging.getLogger(__name__)


class JobActions:
    def __init__(self, registry: JobRegistry, toaster: Toaster) -> None:
        self.registry = registry
        self.toaster = toaster
        self.alive = True

    def detach(self) -> None:
        self.alive = False

    def _success(self, message: str) -> None:
        if self.alive:
            self.toaster.success(message)
        else:
            logger.debug("View detached, dropping toast: %s", message)

    def _error(self, exc: DuetError) -> None:
        if self.alive:
            self.toaster.error(exc.message)
        else:
            logger.debug("View detached, dropping error toast: %s", exc.message)

    async def submit_url(self, url: str, group_id: str | None = None) -> Job | None:
        try:
            job = await self.registry.submit(url, group_id)
        except DuetError as exc:
            self._error(exc)
            return None
        if group_id is not None:
            self._success("Video processing started for group")
        else:
            self._success("Video processing started")
        return job

    async def retry_job(self, job: Job) -> Job | None:
        try:
            retried = await self.registry.retry(job)
        except DuetError as exc:
            self._error(exc)
            return None
        self._success("Retrying video processing")
        return retried

    async def remove_job(self, job: Job) -> bool:
        try:
            await self.registry.remove(job)
        except DuetError as exc:
            self._error(exc)
            return False
        return True

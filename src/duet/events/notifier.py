"""User-facing notices for jobs that just finished."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from duet.backend.base import IdeaLookup
from duet.errors.exceptions import BackendError
from duet.events.bus import JobEvent, JobEventBus
from duet.models.enums import JobEventType
from duet.models.job import DEFAULT_FAILURE_MESSAGE, Job
from duet.services.clock import Clock, utcnow

logger = logging.getLogger(__name__)

GENERIC_SUCCESS_MESSAGE = "Video processed successfully!"


class Toaster(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class RecordingToaster:
    """Collects toasts as ``(level, message)`` pairs."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))


class LoggingToaster:
    """Routes toasts to the log, for headless runs."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.error(message)


class CompletionNotifier:
    """Announces completions and failures that happened within ``window`` seconds.

    Older terminal jobs (for example ones replayed when a subscription opens)
    are listed silently.
    """

    def __init__(
        self,
        events: JobEventBus,
        toaster: Toaster,
        ideas: IdeaLookup | None = None,
        *,
        window: float = 10.0,
        enabled: bool = True,
        clock: Clock = utcnow,
    ) -> None:
        self._events = events
        self._toaster = toaster
        self._ideas = ideas
        self._window = window
        self._clock = clock
        self.enabled = enabled
        self._unsubscribe = None
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._events.subscribe(
                self._on_event, (JobEventType.COMPLETED, JobEventType.FAILED)
            )

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in self._tasks:
            task.cancel()

    async def drain(self) -> None:
        """Wait for pending idea lookups to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _is_recent(self, job: Job) -> bool:
        return (self._clock() - job.updated_at).total_seconds() < self._window

    def _on_event(self, event: JobEvent) -> None:
        job = event.job
        if not self.enabled or not self._is_recent(job):
            return

        if event.event_type == JobEventType.FAILED:
            self._toaster.error(job.error_message or DEFAULT_FAILURE_MESSAGE)
            return

        if job.result_id is None or self._ideas is None:
            self._toaster.success(GENERIC_SUCCESS_MESSAGE)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Reconciled from synchronous code: no loop to resolve the title on.
            self._toaster.success(GENERIC_SUCCESS_MESSAGE)
            return

        task = loop.create_task(self._announce(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _announce(self, job: Job) -> None:
        try:
            idea = await self._ideas.get_idea(job.result_id)
        except BackendError as exc:
            logger.info("Could not resolve idea %s for job %s: %s", job.result_id, job.id, exc.message)
            self._toaster.success(GENERIC_SUCCESS_MESSAGE)
            return
        self._toaster.success(f"✨ {idea.title}")

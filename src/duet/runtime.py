"""Process-wide wiring of the job registry and its background tasks.

Build one ``JobRuntime`` at startup and pass it (or its ``registry``) to the
components that need it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import timedelta

from duet.backend.base import IdeaLookup, JobUpdateChannel, ProcessingBackend
from duet.backend.rest import HttpIdeaLookup, HttpProcessingBackend, build_client
from duet.backend.sse import SSEJobUpdateChannel
from duet.config import Settings
from duet.events.notifier import CompletionNotifier, LoggingToaster, Toaster
from duet.players.grid import PlaybackGrid
from duet.players.pool import PlayerPool, PlayerSlot
from duet.registry.actions import JobActions
from duet.registry.job_registry import JobRegistry
from duet.registry.sweeper import run_sweeper
from duet.services.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class JobRuntime:
    def __init__(
        self,
        settings: Settings,
        registry: JobRegistry,
        notifier: CompletionNotifier,
        player_pool: PlayerPool,
        backend: ProcessingBackend,
        ideas: IdeaLookup | None = None,
        toaster: Toaster | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.notifier = notifier
        self.player_pool = player_pool
        self.backend = backend
        self.ideas = ideas
        self.toaster = toaster or LoggingToaster()
        self._grids: list[PlaybackGrid] = []
        self._sweeper: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def start(self) -> None:
        if self.running:
            return
        self.notifier.start()
        self._sweeper = asyncio.create_task(
            run_sweeper(self.registry, self.settings.sweep_interval_seconds), name="job-sweeper"
        )
        logger.info("Job runtime started (owner=%s)", self.registry.owner_id)

    async def stop(self) -> None:
        self.notifier.stop()
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.registry.close()
        for grid in self._grids:
            grid.clear()
        self._grids.clear()
        self.player_pool.release_all()
        await self.backend.aclose()
        logger.info("Job runtime stopped")

    def actions(self, toaster: Toaster | None = None) -> JobActions:
        """Registry operations bound to one view; call ``detach()`` when the view closes."""
        return JobActions(self.registry, toaster or self.toaster)

    def playback_grid(
        self,
        *,
        on_start: Callable[[PlayerSlot], None] | None = None,
        on_stop: Callable[[str], None] | None = None,
    ) -> PlaybackGrid:
        """Grid over the shared pool; cleared by ``stop()`` along with its leases."""
        grid = PlaybackGrid(
            self.player_pool,
            threshold=self.settings.visibility_threshold,
            retry_delay=self.settings.acquire_retry_delay,
            on_start=on_start,
            on_stop=on_stop,
        )
        self._grids.append(grid)
        return grid

    async def __aenter__(self) -> JobRuntime:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def create_runtime(
    settings: Settings,
    *,
    backend: ProcessingBackend | None = None,
    channel: JobUpdateChannel | None = None,
    ideas: IdeaLookup | None = None,
    toaster: Toaster | None = None,
    clock: Clock = utcnow,
) -> JobRuntime:
    """Assemble a runtime; collaborators not supplied talk HTTP to ``settings.backend_url``."""
    if backend is None or channel is None or ideas is None:
        client = build_client(settings.backend_url, settings.api_token, settings.request_timeout)
        if backend is None:
            backend = HttpProcessingBackend(
                client, default_publish_ideas=settings.default_publish_ideas, clock=clock
            )
        if channel is None:
            channel = SSEJobUpdateChannel(
                client,
                settings.user_id,
                backoff_initial=settings.channel_backoff_initial,
                backoff_max=settings.channel_backoff_max,
            )
        if ideas is None:
            ideas = HttpIdeaLookup(client)

    registry = JobRegistry(
        backend,
        channel,
        settings.user_id,
        grace_period=timedelta(seconds=settings.grace_period_seconds),
        clock=clock,
    )
    toaster = toaster or LoggingToaster()
    notifier = CompletionNotifier(
        registry.events,
        toaster,
        ideas,
        window=settings.completion_notice_window,
        enabled=settings.notifications_enabled,
        clock=clock,
    )
    pool = PlayerPool(settings.player_pool_capacity)
    return JobRuntime(settings, registry, notifier, pool, backend, ideas, toaster)

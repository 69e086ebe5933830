"""Reference-counted push subscriptions, one consumer task per scope."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from duet.backend.base import JobUpdateChannel
from duet.models.job import JobScope

logger = logging.getLogger(__name__)


class WatchHandle:
    """Token held by one observer of a scope.

    Releasing it drops that observer's reference; the channel is torn down
    when the last handle for the scope is released. ``release`` is idempotent.
    """

    def __init__(self, scope: JobScope, manager: SubscriptionManager) -> None:
        self.scope = scope
        self._manager = manager
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._manager.release(self.scope)

    async def __aenter__(self) -> WatchHandle:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()


class SubscriptionManager:
    """Keeps one channel subscription per scope alive while anyone watches it."""

    def __init__(
        self,
        channel: JobUpdateChannel,
        on_document: Callable[[dict], object],
        on_teardown: Callable[[JobScope], None] | None = None,
    ) -> None:
        self._channel = channel
        self._on_document = on_document
        self._on_teardown = on_teardown
        self._counts: dict[JobScope, int] = {}
        self._tasks: dict[JobScope, asyncio.Task] = {}

    def count(self, scope: JobScope) -> int:
        return self._counts.get(scope, 0)

    def scopes(self) -> list[JobScope]:
        return list(self._counts)

    async def acquire(self, scope: JobScope) -> WatchHandle:
        count = self._counts.get(scope, 0)
        self._counts[scope] = count + 1
        if count == 0:
            self._tasks[scope] = asyncio.create_task(self._consume(scope), name=f"watch:{scope}")
            logger.info("Started watching %s jobs (channel=%s)", scope, self._channel.channel_type)
        return WatchHandle(scope, self)

    async def release(self, scope: JobScope) -> bool:
        """Drop one reference. Returns True when the subscription was torn down."""
        count = self._counts.get(scope, 0)
        if count == 0:
            logger.debug("Ignoring release for unwatched scope %s", scope)
            return False
        if count > 1:
            self._counts[scope] = count - 1
            return False

        del self._counts[scope]
        await self._teardown(scope)
        return True

    async def close(self) -> None:
        """Tear down every subscription regardless of outstanding handles."""
        for scope in list(self._counts):
            del self._counts[scope]
            await self._teardown(scope)

    async def _teardown(self, scope: JobScope) -> None:
        task = self._tasks.pop(scope, None)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if scope in self._counts:
            # Re-acquired while the old consumer was winding down; the new one owns the stream.
            logger.debug("Scope %s re-watched during teardown, keeping the stream", scope)
            return
        await self._channel.unsubscribe(scope)
        if self._on_teardown is not None:
            self._on_teardown(scope)
        logger.info("Stopped watching %s jobs", scope)

    async def _consume(self, scope: JobScope) -> None:
        try:
            async for doc in self._channel.subscribe(scope):
                self._on_document(doc)
            logger.info("Job stream for %s closed by channel", scope)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Job stream for %s failed", scope)

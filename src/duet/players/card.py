"""Per-card playback state driven by viewport visibility."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum

from duet.players.pool import PlayerPool, PlayerSlot
from duet.players.visibility import Rect, visibility_ratio

logger = logging.getLogger(__name__)

DEFAULT_VISIBILITY_THRESHOLD = 0.5
DEFAULT_RETRY_DELAY = 0.3


class CardState(StrEnum):
    HIDDEN = "hidden"
    ACTIVE = "active"


class CardPlayback:
    """Leases a decoder while the card is visible and returns it when hidden.

    A visible card that is denied a lease stays ``hidden`` and tries again
    after ``retry_delay`` seconds for as long as it remains visible. Retries
    are scheduled on the running event loop, so visibility updates must come
    from inside it.
    """

    def __init__(
        self,
        card_id: str,
        pool: PlayerPool,
        *,
        threshold: float = DEFAULT_VISIBILITY_THRESHOLD,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        on_start: Callable[[PlayerSlot], None] | None = None,
        on_stop: Callable[[str], None] | None = None,
    ) -> None:
        self.card_id = card_id
        self.threshold = threshold
        self.retry_delay = retry_delay
        self.state = CardState.HIDDEN
        self.visible = False
        self.denied_count = 0
        self._pool = pool
        self._on_start = on_start
        self._on_stop = on_stop
        self._retry: asyncio.TimerHandle | None = None
        self._torn_down = False

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None

    def update_visibility(self, ratio: float) -> CardState:
        visible = ratio >= self.threshold and not self._torn_down
        if visible == self.visible:
            return self.state
        self.visible = visible
        if visible:
            self._activate()
        else:
            self._deactivate()
        return self.state

    def update_frame(self, frame: Rect, viewport: Rect) -> CardState:
        return self.update_visibility(visibility_ratio(frame, viewport))

    def teardown(self) -> None:
        self._torn_down = True
        self.visible = False
        self._deactivate()

    def _activate(self) -> None:
        if self._torn_down or not self.visible or self.state == CardState.ACTIVE:
            return
        if not self._pool.try_acquire(self.card_id):
            self.denied_count += 1
            self._schedule_retry()
            return
        self.state = CardState.ACTIVE
        logger.debug("Card %s started playback", self.card_id)
        if self._on_start is not None:
            self._on_start(self._pool.slot(self.card_id))

    def _schedule_retry(self) -> None:
        if self._retry is not None:
            return
        loop = asyncio.get_running_loop()
        self._retry = loop.call_later(self.retry_delay, self._on_retry)

    def _on_retry(self) -> None:
        self._retry = None
        self._activate()

    def _deactivate(self) -> None:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        if self.state != CardState.ACTIVE:
            return
        self._pool.release(self.card_id)
        self.state = CardState.HIDDEN
        logger.debug("Card %s stopped playback", self.card_id)
        if self._on_stop is not None:
            self._on_stop(self.card_id)

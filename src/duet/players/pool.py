"""Bounded pool of video decoder slots shared by every card in a grid."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from duet.services.clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 4
DEFAULT_MAX_IDLE = 6


@dataclass
class PlayerSlot:
    """A decoder leased to exactly one card."""

    card_id: str
    player: Any = None
    leased_at: datetime = field(default_factory=utcnow)


class PlayerPool:
    """Caps concurrently leased decoders at ``capacity``.

    When ``player_factory`` is given each slot carries a player object.
    Released players are reset with ``recycle`` and up to ``max_idle`` of them
    are kept for reuse.

    The check and the lease happen in one synchronous step, so callers on the
    same event loop can never push the pool past capacity.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        *,
        player_factory: Callable[[], Any] | None = None,
        recycle: Callable[[Any], None] | None = None,
        max_idle: int = DEFAULT_MAX_IDLE,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._player_factory = player_factory
        self._recycle = recycle
        self._max_idle = max_idle
        self._leases: dict[str, PlayerSlot] = {}
        self._idle: list[Any] = []

    @property
    def leased(self) -> frozenset[str]:
        return frozenset(self._leases)

    @property
    def available(self) -> int:
        return self.capacity - len(self._leases)

    @property
    def idle_players(self) -> int:
        return len(self._idle)

    def is_leased(self, card_id: str) -> bool:
        return card_id in self._leases

    def slot(self, card_id: str) -> PlayerSlot | None:
        return self._leases.get(card_id)

    def try_acquire(self, card_id: str) -> bool:
        """Lease a slot to ``card_id``. False when the pool is full.

        A card that already holds a slot keeps it and gets True.
        """
        if card_id in self._leases:
            return True
        if len(self._leases) >= self.capacity:
            logger.debug("Player pool full (%d/%d), denied %s", len(self._leases), self.capacity, card_id)
            return False
        self._leases[card_id] = PlayerSlot(card_id=card_id, player=self._obtain_player())
        return True

    def release(self, card_id: str) -> None:
        """Return ``card_id``'s slot. No-op when it holds none."""
        slot = self._leases.pop(card_id, None)
        if slot is None or slot.player is None:
            return
        if self._recycle is not None:
            self._recycle(slot.player)
        if len(self._idle) < self._max_idle:
            self._idle.append(slot.player)

    def release_all(self) -> None:
        for card_id in list(self._leases):
            self.release(card_id)

    def _obtain_player(self) -> Any:
        if self._player_factory is None:
            return None
        if self._idle:
            return self._idle.pop()
        return self._player_factory()

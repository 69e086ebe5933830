"""Masonry grid glue: one ``CardPlayback`` per card, one shared pool."""

from __future__ import annotations

from collections.abc import Callable, Mapping

from duet.players.card import DEFAULT_RETRY_DELAY, DEFAULT_VISIBILITY_THRESHOLD, CardPlayback, CardState
from duet.players.pool import PlayerPool, PlayerSlot
from duet.players.visibility import Rect, visibility_ratio


class PlaybackGrid:
    def __init__(
        self,
        pool: PlayerPool,
        *,
        threshold: float = DEFAULT_VISIBILITY_THRESHOLD,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        on_start: Callable[[PlayerSlot], None] | None = None,
        on_stop: Callable[[str], None] | None = None,
    ) -> None:
        self.pool = pool
        self._threshold = threshold
        self._retry_delay = retry_delay
        self._on_start = on_start
        self._on_stop = on_stop
        self._cards: dict[str, CardPlayback] = {}

    def card(self, card_id: str) -> CardPlayback:
        card = self._cards.get(card_id)
        if card is None:
            card = CardPlayback(
                card_id,
                self.pool,
                threshold=self._threshold,
                retry_delay=self._retry_delay,
                on_start=self._on_start,
                on_stop=self._on_stop,
            )
            self._cards[card_id] = card
        return card

    def update_viewport(self, frames: Mapping[str, Rect], viewport: Rect) -> dict[str, CardState]:
        """Apply one scroll position. Cards missing from ``frames`` are torn down."""
        for card_id in [cid for cid in self._cards if cid not in frames]:
            self.remove(card_id)
        ratios = {card_id: visibility_ratio(frame, viewport) for card_id, frame in frames.items()}
        # Hide first so freed slots are available to newly visible cards.
        for card_id, ratio in ratios.items():
            if ratio < self._threshold:
                self.card(card_id).update_visibility(ratio)
        for card_id, ratio in ratios.items():
            if ratio >= self._threshold:
                self.card(card_id).update_visibility(ratio)
        return {card_id: self._cards[card_id].state for card_id in frames}

    def remove(self, card_id: str) -> None:
        card = self._cards.pop(card_id, None)
        if card is not None:
            card.teardown()

    def active_cards(self) -> list[str]:
        return [card_id for card_id, card in self._cards.items() if card.state == CardState.ACTIVE]

    def clear(self) -> None:
        for card_id in list(self._cards):
            self.remove(card_id)

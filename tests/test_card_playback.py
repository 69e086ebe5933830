"""Tests for per-card playback and the grid that drives it."""

import asyncio

import pytest

from duet.players.card import CardPlayback, CardState
from duet.players.grid import PlaybackGrid
from duet.players.pool import PlayerPool
from duet.players.visibility import Rect

RETRY = 0.01


@pytest.fixture
def pool():
    return PlayerPool(2)


def _card(card_id, pool, started=None, stopped=None):
    return CardPlayback(
        card_id,
        pool,
        retry_delay=RETRY,
        on_start=(lambda slot: started.append(slot.card_id)) if started is not None else None,
        on_stop=stopped.append if stopped is not None else None,
    )


class TestCardPlayback:
    async def test_visible_card_leases_a_player(self, pool):
        started, stopped = [], []
        card = _card("a", pool, started, stopped)

        assert card.update_visibility(0.6) == CardState.ACTIVE
        assert started == ["a"]
        assert pool.is_leased("a")

        assert card.update_visibility(0.2) == CardState.HIDDEN
        assert stopped == ["a"]
        assert not pool.is_leased("a")

    async def test_threshold_is_inclusive(self, pool):
        card = _card("a", pool)
        assert card.update_visibility(0.49) == CardState.HIDDEN
        assert card.update_visibility(0.5) == CardState.ACTIVE

    async def test_repeated_visibility_does_not_restart(self, pool):
        started = []
        card = _card("a", pool, started)
        card.update_visibility(0.7)
        card.update_visibility(0.9)
        card.update_visibility(1.0)

        assert started == ["a"]

    async def test_denied_card_retries_until_slot_frees(self, pool):
        holders = [_card(name, pool) for name in ("a", "b")]
        for card in holders:
            card.update_visibility(1.0)

        late = _card("c", pool)
        assert late.update_visibility(1.0) == CardState.HIDDEN
        assert late.denied_count == 1
        assert late.retry_pending

        await asyncio.sleep(RETRY * 3)
        assert late.state == CardState.HIDDEN
        assert late.denied_count > 1

        holders[0].update_visibility(0.0)
        await asyncio.sleep(RETRY * 3)

        assert late.state == CardState.ACTIVE
        assert pool.leased == frozenset({"b", "c"})

    async def test_hidden_card_stops_retrying(self, pool):
        for name in ("a", "b"):
            _card(name, pool).update_visibility(1.0)
        late = _card("c", pool)
        late.update_visibility(1.0)

        late.update_visibility(0.0)
        denied = late.denied_count
        await asyncio.sleep(RETRY * 3)

        assert not late.retry_pending
        assert late.denied_count == denied
        assert not pool.is_leased("c")

    async def test_teardown_releases_and_blocks_reactivation(self, pool):
        card = _card("a", pool)
        card.update_visibility(1.0)

        card.teardown()
        card.teardown()

        assert not pool.is_leased("a")
        assert card.update_visibility(1.0) == CardState.HIDDEN
        assert pool.available == 2

    async def test_update_frame(self, pool):
        card = _card("a", pool)
        viewport = Rect(0, 0, 400, 800)
        assert card.update_frame(Rect(0, 600, 200, 400), viewport) == CardState.ACTIVE
        assert card.update_frame(Rect(0, 700, 200, 400), viewport) == CardState.HIDDEN


class TestPlaybackGrid:
    @staticmethod
    def _column(count, height=300):
        return {f"card_{i}": Rect(0, i * height, 200, height) for i in range(count)}

    async def test_never_more_than_capacity_active(self):
        grid = PlaybackGrid(PlayerPool(4), retry_delay=RETRY)
        frames = self._column(10, height=100)

        states = grid.update_viewport(frames, Rect(0, 0, 400, 1000))

        assert sum(1 for s in states.values() if s == CardState.ACTIVE) == 4
        assert len(grid.active_cards()) == 4
        assert grid.pool.available == 0

    async def test_scrolling_hands_slots_to_new_cards(self):
        grid = PlaybackGrid(PlayerPool(2), retry_delay=RETRY)
        frames = self._column(6)

        grid.update_viewport(frames, Rect(0, 0, 400, 600))
        assert sorted(grid.active_cards()) == ["card_0", "card_1"]

        # Scrolled down: the first two cards leave, the next two enter in the same pass.
        grid.update_viewport(frames, Rect(0, 600, 400, 600))
        assert sorted(grid.active_cards()) == ["card_2", "card_3"]

    async def test_removed_cards_release_slots(self):
        grid = PlaybackGrid(PlayerPool(2), retry_delay=RETRY)
        frames = self._column(2)
        grid.update_viewport(frames, Rect(0, 0, 400, 600))

        grid.update_viewport({"card_1": frames["card_1"]}, Rect(0, 0, 400, 600))

        assert grid.active_cards() == ["card_1"]
        assert grid.pool.leased == frozenset({"card_1"})

    async def test_clear(self):
        grid = PlaybackGrid(PlayerPool(2), retry_delay=RETRY)
        grid.update_viewport(self._column(2), Rect(0, 0, 400, 600))

        grid.clear()

        assert grid.active_cards() == []
        assert grid.pool.available == 2

"""Tests for the event bus and completion notices."""

import logging
from datetime import timedelta

import pytest

from duet.events.bus import JobEvent, JobEventBus
from duet.events.notifier import GENERIC_SUCCESS_MESSAGE, CompletionNotifier, LoggingToaster, RecordingToaster
from duet.models.enums import JobEventType
from duet.models.job import IdeaRecord

from conftest import START


# ---------------------------------------------------------------------------
# JobEventBus
# ---------------------------------------------------------------------------


class TestEventBus:
    def test_filtered_delivery(self, make_job):
        bus = JobEventBus()
        everything, completions = [], []
        bus.subscribe(everything.append)
        bus.subscribe(completions.append, [JobEventType.COMPLETED])

        job = make_job()
        assert bus.emit(JobEvent(JobEventType.UPDATED, job)) == 1
        assert bus.emit(JobEvent(JobEventType.COMPLETED, job)) == 2

        assert len(everything) == 2
        assert [e.event_type for e in completions] == [JobEventType.COMPLETED]

    def test_unsubscribe(self, make_job):
        bus = JobEventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        assert bus.emit(JobEvent(JobEventType.UPDATED, make_job())) == 0
        assert bus.listener_count() == 0
        assert received == []

    def test_failing_listener_does_not_block_others(self, make_job, caplog):
        bus = JobEventBus()
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(received.append)

        with caplog.at_level(logging.ERROR, logger="duet.events.bus"):
            delivered = bus.emit(JobEvent(JobEventType.FAILED, make_job(status="failed")))

        assert delivered == 1
        assert len(received) == 1
        assert "listener failed" in caplog.text

    def test_event_ids_are_unique(self, make_job):
        job = make_job()
        first = JobEvent(JobEventType.UPDATED, job)
        second = JobEvent(JobEventType.UPDATED, job)
        assert first.event_id.startswith("evt_")
        assert first.event_id != second.event_id


# ---------------------------------------------------------------------------
# CompletionNotifier
# ---------------------------------------------------------------------------


@pytest.fixture
def toaster():
    return RecordingToaster()


@pytest.fixture
def bus():
    return JobEventBus()


@pytest.fixture
def notifier(bus, toaster, ideas, clock):
    n = CompletionNotifier(bus, toaster, ideas, window=10, clock=clock)
    n.start()
    yield n
    n.stop()


class TestCompletionNotifier:
    async def test_announces_idea_title(self, bus, notifier, toaster, ideas, clock, make_job):
        ideas.add(IdeaRecord(id="idea_1", title="Sunset picnic spots"))
        clock.advance(2)

        bus.emit(JobEvent(JobEventType.COMPLETED, make_job(status="completed", result_id="idea_1")))
        await notifier.drain()

        assert toaster.messages == [("success", "✨ Sunset picnic spots")]

    async def test_unknown_idea_falls_back_to_generic(self, bus, notifier, toaster, make_job):
        bus.emit(JobEvent(JobEventType.COMPLETED, make_job(status="completed", result_id="idea_404")))
        await notifier.drain()

        assert toaster.messages == [("success", GENERIC_SUCCESS_MESSAGE)]

    async def test_failure_uses_error_message(self, bus, notifier, toaster, make_job):
        bus.emit(JobEvent(JobEventType.FAILED, make_job(status="failed", error_message="Video is private")))
        assert toaster.messages == [("error", "Video is private")]

    async def test_failure_without_message_uses_default(self, bus, notifier, toaster, make_job):
        bus.emit(JobEvent(JobEventType.FAILED, make_job(status="failed")))
        assert toaster.messages == [("error", "Failed to process video")]

    async def test_old_completions_are_silent(self, bus, notifier, toaster, clock, make_job):
        clock.advance(60)
        bus.emit(JobEvent(JobEventType.COMPLETED, make_job(status="completed", result_id="idea_1")))
        bus.emit(JobEvent(JobEventType.FAILED, make_job(id="job_2", status="failed")))
        await notifier.drain()

        assert toaster.messages == []

    async def test_ignores_other_event_types(self, bus, notifier, toaster, make_job):
        bus.emit(JobEvent(JobEventType.UPDATED, make_job(status="processing")))
        bus.emit(JobEvent(JobEventType.EXPIRED, make_job(status="completed", result_id="idea_1")))
        assert toaster.messages == []

    async def test_disabled(self, bus, notifier, toaster, make_job):
        notifier.enabled = False
        bus.emit(JobEvent(JobEventType.FAILED, make_job(status="failed", error_message="nope")))
        assert toaster.messages == []

    async def test_without_lookup_uses_generic(self, bus, toaster, clock, make_job):
        n = CompletionNotifier(bus, toaster, None, clock=clock)
        n.start()
        bus.emit(JobEvent(JobEventType.COMPLETED, make_job(status="completed", result_id="idea_1")))
        n.stop()

        assert toaster.messages == [("success", GENERIC_SUCCESS_MESSAGE)]

    async def test_stop_unsubscribes(self, bus, notifier, toaster, make_job):
        notifier.stop()
        bus.emit(JobEvent(JobEventType.FAILED, make_job(status="failed")))
        assert toaster.messages == []
        assert bus.listener_count() == 0

    async def test_registry_completion_reaches_toaster(self, registry, toaster, ideas, clock, make_job):
        ideas.add(IdeaRecord(id="idea_9", title="Rooftop bars"))
        n = CompletionNotifier(registry.events, toaster, ideas, clock=clock)
        n.start()

        registry.reconcile(make_job(status="processing"))
        clock.advance(1)
        registry.reconcile(make_job(status="completed", result_id="idea_9", updated_at=START + timedelta(seconds=1)))
        await n.drain()
        n.stop()

        assert toaster.messages == [("success", "✨ Rooftop bars")]


def test_logging_toaster(caplog):
    with caplog.at_level(logging.INFO, logger="duet.events.notifier"):
        LoggingToaster().success("Video processing started")
        LoggingToaster().error("Failed to start processing")

    assert "Video processing started" in caplog.text
    assert "Failed to start processing" in caplog.text


def test_completion_outside_event_loop_uses_generic(bus, notifier, toaster, ideas, make_job):
    ideas.add(IdeaRecord(id="idea_1", title="Sunset picnic spots"))

    bus.emit(JobEvent(JobEventType.COMPLETED, make_job(status="completed", result_id="idea_1")))

    assert toaster.messages == [("success", GENERIC_SUCCESS_MESSAGE)]

"""Shared test fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from duet.backend.memory import InMemoryIdeaLookup, InMemoryProcessingBackend, InMemoryUpdateChannel
from duet.models.job import Job
from duet.registry.job_registry import JobRegistry

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return InMemoryUpdateChannel()


@pytest.fixture
def backend(channel, clock):
    return InMemoryProcessingBackend(channel, clock=clock)


@pytest.fixture
def ideas():
    return InMemoryIdeaLookup()


@pytest.fixture
async def registry(backend, channel, clock):
    reg = JobRegistry(backend, channel, "user_1", grace_period=timedelta(seconds=120), clock=clock)
    yield reg
    await reg.close()


@pytest.fixture
def settle():
    """Let queued tasks and channel deliveries run."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def make_job():
    """Build a valid Job, overriding any field by name."""

    def _make(**overrides) -> Job:
        data = {
            "id": "job_test0001",
            "owner_id": "user_1",
            "group_id": None,
            "source_url": "https://www.tiktok.com/@a/video/1",
            "status": "queued",
            "created_at": START,
            "updated_at": START,
        }
        data.update(overrides)
        return Job.model_validate(data)

    return _make

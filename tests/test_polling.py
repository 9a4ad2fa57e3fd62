from __future__ import annotations

import pytest

from venue_imagegen.exceptions import GenerationTimeoutError
from venue_imagegen.shard.enums import JobStatus
from venue_imagegen.utils.polling import poll_until


class FakeProvider:
    """Replays a fixed status sequence and records every poll."""

    def __init__(self, statuses: list[str]):
        self.statuses = list(statuses)
        self.polls = 0

    async def fetch(self) -> str:
        status = self.statuses[min(self.polls, len(self.statuses) - 1)]
        self.polls += 1
        return status


class FakeClock:
    def __init__(self) -> None:
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def classify(status: str) -> JobStatus:
    if status == "ready":
        return JobStatus.READY
    if status in ("error", "failed"):
        return JobStatus.ERROR
    return JobStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_ready_after_exactly_three_polls():
    provider = FakeProvider(["in_progress", "in_progress", "ready"])
    clock = FakeClock()

    outcome = await poll_until(provider.fetch, classify, interval=2, max_attempts=60, sleep=clock.sleep)

    assert outcome.status == JobStatus.READY
    assert outcome.attempts == 3
    assert provider.polls == 3
    assert clock.sleeps == [2, 2, 2]


@pytest.mark.asyncio
async def test_error_status_is_terminal():
    provider = FakeProvider(["in_progress", "failed"])
    outcome = await poll_until(provider.fetch, classify, interval=2, max_attempts=60, sleep=FakeClock().sleep)
    assert outcome.status == JobStatus.ERROR
    assert outcome.payload == "failed"
    assert provider.polls == 2


@pytest.mark.asyncio
async def test_times_out_after_cap_and_stops_polling():
    provider = FakeProvider(["in_progress"] * 100)
    clock = FakeClock()

    with pytest.raises(GenerationTimeoutError) as exc:
        await poll_until(provider.fetch, classify, interval=2, max_attempts=60, sleep=clock.sleep)

    assert provider.polls == 60
    assert len(clock.sleeps) == 60
    assert exc.value.details["attempts"] == 60
    assert exc.value.code == "timeout"


@pytest.mark.asyncio
async def test_unrecognized_statuses_do_not_reset_attempts():
    provider = FakeProvider(["in_progress", "Pending", "queued", "in_progress", "Pending"] * 4)

    with pytest.raises(GenerationTimeoutError):
        await poll_until(provider.fetch, classify, interval=0, max_attempts=5, sleep=FakeClock().sleep)

    assert provider.polls == 5

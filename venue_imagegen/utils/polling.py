from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from loguru import logger

from ..exceptions import GenerationTimeoutError
from ..shard.enums import JobStatus

T = TypeVar("T")

TERMINAL_STATUSES = frozenset({JobStatus.READY, JobStatus.ERROR})


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    """Terminal observation from :func:`poll_until`."""

    status: JobStatus
    payload: T
    attempts: int


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    classify: Callable[[T], JobStatus],
    *,
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], Awaitable[Any]] | None = None,
    label: str = "job",
) -> PollOutcome[T]:
    """Wait a fixed interval, fetch, classify; repeat until a terminal status.

    Every fetch counts as one attempt regardless of what status it reports,
    so a provider flipping between known and unknown statuses cannot extend
    the window. After ``max_attempts`` non-terminal observations the job is
    abandoned with :class:`GenerationTimeoutError`; no further fetches are
    made and nothing is cancelled on the provider side.
    """
    pause = sleep or asyncio.sleep
    last_status: JobStatus | None = None
    for attempt in range(1, max_attempts + 1):
        await pause(interval)
        payload = await fetch()
        status = classify(payload)
        if status in TERMINAL_STATUSES:
            logger.debug(f"{label} reached {status.value} after {attempt} poll(s)")
            return PollOutcome(status=status, payload=payload, attempts=attempt)
        if status != last_status:
            logger.debug(f"{label} is {status.value} (poll {attempt}/{max_attempts})")
            last_status = status

    raise GenerationTimeoutError(
        f"{label} did not complete after {max_attempts} polls ({max_attempts * interval:g}s)",
        details={"attempts": max_attempts, "interval_seconds": interval},
    )


__all__ = ["PollOutcome", "poll_until", "TERMINAL_STATUSES"]

"""Reusable poll-until abstraction for waiting on external state.

Every wait on the editing surface, the published page or the asset store goes
through `poll_until`, which owns the deadline, the sleep interval and the
heartbeat logging.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from qic.exceptions import PollTimeoutError
from qic.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    *,
    interval: float,
    timeout: float,
    description: str,
    heartbeat: float = 10.0,
    tolerate_errors: bool = False,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call `probe` until `predicate(value)` holds or the timeout expires.

    Args:
        probe: Async callable producing the observed value
        predicate: Acceptance test for the observed value
        interval: Seconds to sleep between probes
        timeout: Overall deadline in seconds
        description: Human-readable name of the awaited condition
        heartbeat: Seconds between progress log lines
        tolerate_errors: Log probe exceptions and keep polling instead of raising
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock (injectable for tests)

    Returns:
        The first value accepted by the predicate

    Raises:
        PollTimeoutError: The condition did not hold before the deadline.
            `last_value` on the error holds the final observation.
    """
    started = clock()
    deadline = started + timeout
    last_beat = started
    last_value: T | None = None
    attempts = 0

    while True:
        attempts += 1
        try:
            last_value = await probe()
        except Exception as e:
            if not tolerate_errors:
                raise
            log.warning("poll.probe_failed", waiting_for=description, error=str(e))
        else:
            if predicate(last_value):
                return last_value

        now = clock()
        if now >= deadline:
            break
        if now - last_beat >= heartbeat:
            last_beat = now
            log.info(
                "poll.waiting",
                waiting_for=description,
                elapsed=round(now - started, 1),
                attempts=attempts,
            )
        await sleep(min(interval, max(0.0, deadline - now)))

    raise PollTimeoutError(description, timeout, last_value=last_value)

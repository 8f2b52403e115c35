"""
peak_server/polling.py

Generic "poll until terminal state or attempts exhausted" loop.

Both video providers use this: Kling polls a task-status endpoint on a fixed
interval, HuggingFace re-submits while the model reports it is still loading
and waits for the estimated time the provider supplies.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import PollTimeoutError

logger = logging.getLogger("peak-server.polling")

T = TypeVar("T")


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    *,
    interval: float | Callable[[T], float],
    max_attempts: int,
    wait_first: bool = False,
    label: str = "job",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call *fetch* until *is_terminal* accepts its result.

    Args:
        fetch: Coroutine factory performing one attempt.
        is_terminal: Predicate deciding whether an attempt's result ends the
            loop.  It may raise to abort polling (e.g. on a failed job).
        interval: Seconds to wait between attempts, or a callable computing
            the wait from the last (non-terminal) result.
        max_attempts: Total number of attempts allowed.
        wait_first: Sleep before the first attempt as well.  Used for
            submit-then-poll jobs where the first status check is pointless.
        label: Name used in log lines and the timeout message.
        sleep: Awaitable sleep function; injectable for tests.

    Returns:
        The first terminal result.

    Raises:
        PollTimeoutError: If no attempt produced a terminal result.
    """
    last: T | None = None
    for attempt in range(1, max_attempts + 1):
        if attempt > 1 or wait_first:
            if callable(interval):
                delay = interval(last) if last is not None else 0.0
            else:
                delay = interval
            await sleep(float(delay))

        last = await fetch()
        if is_terminal(last):
            logger.info("[poll] %s terminal after %d attempt(s)", label, attempt)
            return last
        logger.debug("[poll] %s attempt %d/%d not terminal", label, attempt, max_attempts)

    raise PollTimeoutError(
        f"{label} did not finish after {max_attempts} attempts",
        provider=label,
    )

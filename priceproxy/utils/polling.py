"""
Bounded polling primitive.

Replaces per-call-site "check, sleep, check again" loops with one helper that
re-evaluates an async predicate until it returns a truthy value or the time
budget runs out.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def wait_for(
    predicate: Callable[[], Awaitable[Optional[T]]],
    timeout: float,
    interval: float = 0.5,
    backoff: float = 1.5,
    max_interval: float = 2.0,
    description: str = "condition",
) -> Optional[T]:
    """
    Poll ``predicate`` until it returns a truthy value or ``timeout`` expires.

    Args:
        predicate: Coroutine function returning the value of interest, or a
            falsy value while the condition does not hold yet
        timeout: Total time budget in seconds
        interval: Delay before the second check
        backoff: Factor applied to the delay after every unsuccessful check
        max_interval: Upper bound for the delay
        description: Used in log messages

    Returns:
        The first truthy value returned by ``predicate``, or None on timeout.
        The predicate is always checked at least once.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(timeout, 0)
    delay = max(interval, 0)
    attempts = 0

    while True:
        attempts += 1
        value = await predicate()
        if value:
            logger.debug(f"{description} satisfied after {attempts} check(s)")
            return value

        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.debug(f"Gave up waiting for {description} after {attempts} check(s)")
            return None

        await asyncio.sleep(min(delay, remaining))
        delay = min(delay * backoff, max_interval)

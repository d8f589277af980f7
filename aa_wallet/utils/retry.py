import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


@dataclass
class PollTimeout(Exception):
    attempts: int


async def poll_until(
    fetch: Callable[[], Awaitable[Any]],
    max_attempts: int,
    delay: float,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    should_retry: Callable[[Exception], bool] = lambda excp: True,
) -> tuple[Any, int]:
    """
    Call fetch up to max_attempts times, waiting a fixed delay between
    attempts. An empty result, or an exception accepted by should_retry,
    counts as not ready. Any other exception is raised immediately.
    Returns the first non-empty result and the number of attempts used.
    """
    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            await sleep(delay)
        try:
            result = await fetch()
        except Exception as excp:
            if not should_retry(excp):
                raise
            logging.debug(f"Poll attempt No. {attempt} failed: {excp}")
            continue
        if result:
            return result, attempt
        logging.debug(f"Poll attempt No. {attempt}: not ready")
    raise PollTimeout(max_attempts)

"""
Exponential backoff for transient failures.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ..errors import PipelineError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, multiplier: float) -> float:
    """Delay before retrying after ``attempt`` (1-based) failed attempts."""
    return base_delay * (multiplier ** max(attempt - 1, 0))


def is_retryable(exc: BaseException) -> bool:
    """PipelineErrors carry their own retryable flag; anything else is retried."""
    if isinstance(exc, PipelineError):
        return exc.retryable
    return True


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    base_delay: float,
    multiplier: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Callable[[BaseException], bool] = is_retryable,
    label: str = "operation",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Await ``operation()`` up to ``attempts`` times.

    An exception that is not in ``retry_on``, or that ``should_retry``
    rejects, propagates immediately. The last exception propagates once
    attempts are exhausted.
    """
    sleep = sleep or asyncio.sleep

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt >= attempts or not should_retry(e):
                raise
            delay = backoff_delay(attempt, base_delay, multiplier)
            logger.warning(
                f"{label} failed (attempt {attempt}/{attempts}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            await sleep(delay)

    raise ValueError("attempts must be at least 1")

"""Periodic progress logging while a long phase runs."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


async def _beat(label: str, interval: float, visible_every: float, started: float) -> None:
    last_visible = started
    while True:
        await asyncio.sleep(interval)
        now = time.monotonic()
        elapsed = now - started
        if now - last_visible >= visible_every:
            logger.info(f"[{label}] still running ({elapsed:.0f}s elapsed)")
            last_visible = now
        else:
            logger.debug(f"[{label}] heartbeat ({elapsed:.0f}s elapsed)")


@asynccontextmanager
async def heartbeat(label: str, interval: float = 25.0, visible_every: float = 180.0) -> AsyncIterator[None]:
    """Log a heartbeat every ``interval`` seconds for the duration of the block."""
    started = time.monotonic()
    task = asyncio.create_task(_beat(label, interval, visible_every, started))
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"[{label}] finished after {time.monotonic() - started:.1f}s")

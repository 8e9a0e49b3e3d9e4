"""
Removal of a session's working objects once the episode is published.
"""

import logging
from typing import Iterable

from ..errors import PipelineError
from .object_store import ObjectStore

logger = logging.getLogger(__name__)

WORKING_ALIASES = ("edited", "raw_text", "merged", "chunks")


async def _delete_matching(store: ObjectStore, alias: str, keys: Iterable[str]) -> int:
    deleted = 0
    for key in keys:
        try:
            await store.delete_object(alias, key)
            deleted += 1
        except PipelineError as e:
            logger.warning(f"Could not delete {alias}/{key}: {e}")
    return deleted


async def cleanup_session(store: ObjectStore, session_id: str, aliases: Iterable[str] = WORKING_ALIASES) -> int:
    """Delete every object whose key starts with the session id."""
    total = 0
    for alias in aliases:
        try:
            keys = await store.list_keys(alias, prefix=session_id)
        except PipelineError as e:
            logger.warning(f"Could not list {alias} for {session_id}: {e}")
            continue
        total += await _delete_matching(store, alias, keys)

    logger.info(f"Cleaned up {total} objects for session {session_id}")
    return total


async def final_cleanup_session(store: ObjectStore, session_id: str, aliases: Iterable[str] = WORKING_ALIASES) -> int:
    """Sweep for stragglers: any key that contains the session id."""
    total = 0
    for alias in aliases:
        try:
            keys = [k for k in await store.list_keys(alias) if session_id in k]
        except PipelineError as e:
            logger.warning(f"Could not list {alias} for final sweep of {session_id}: {e}")
            continue
        total += await _delete_matching(store, alias, keys)

    if total:
        logger.info(f"Final sweep removed {total} leftover objects for session {session_id}")
    return total

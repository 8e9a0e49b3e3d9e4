"""
Episode metadata document: read, merge, write.

Upstream services write title, description and keywords; final assembly
adds the published URL, duration and size. Writes always merge into what
is already stored so neither side loses the other's fields.
"""

import json
import logging
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from .errors import AssemblyError, ObjectNotFoundError, StorageError
from .models import EpisodeMetadata
from .storage.object_store import ObjectStore
from .utils.retry import retry_async

logger = logging.getLogger(__name__)

META_BUCKET = "meta"


def metadata_key(session_id: str) -> str:
    return f"{session_id}.json"


def _parse_date(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_pub_date(session_date: str, fallback: datetime) -> str:
    """RFC 2822 date in GMT, as podcast feeds expect."""
    parsed = _parse_date(session_date) or fallback.astimezone(timezone.utc)
    return format_datetime(parsed, usegmt=True)


def merge_metadata(
    existing: Optional[dict],
    session_id: str,
    podcast_url: str,
    duration: Optional[float],
    file_size: int,
    art_url: Optional[str] = None,
    transcript_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Merge freshly computed fields into an existing metadata document.

    Fields the assembly step does not compute are carried over unchanged,
    including ones this code does not know about.
    """
    existing = dict(existing or {})
    now = now or datetime.now(timezone.utc)
    stored_session = existing.get("session") if isinstance(existing.get("session"), dict) else {}

    session_date = stored_session.get("date") or existing.get("createdAt") or now.isoformat()

    document = dict(existing)
    document.update({
        "session": {**stored_session, "sessionId": session_id, "date": session_date},
        "title": existing.get("title") or "Untitled Episode",
        "description": existing.get("description") or "",
        "keywords": existing.get("keywords") or [],
        "artworkPrompt": existing.get("artworkPrompt") or "",
        "episodeNumber": existing.get("episodeNumber") or 1,
        "createdAt": existing.get("createdAt") or session_date,
        "updatedAt": now.isoformat(),
        "podcastUrl": podcast_url,
        "duration": round(duration, 2) if duration is not None else None,
        "fileSize": file_size,
        "pubDate": format_pub_date(session_date, now),
    })
    if art_url:
        document["artUrl"] = art_url
    if transcript_url:
        document["transcriptUrl"] = transcript_url

    return EpisodeMetadata.model_validate(document).to_document()


async def load_metadata(
    store: ObjectStore,
    session_id: str,
    attempts: int = 3,
    base_delay: float = 2.0,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> dict:
    """Stored metadata for the session, or {} if there is none yet."""
    key = metadata_key(session_id)
    try:
        raw = await retry_async(
            lambda: store.get_object_as_text(META_BUCKET, key),
            attempts=attempts,
            base_delay=base_delay,
            retry_on=(StorageError,),
            label=f"fetch metadata {key}",
            sleep=sleep,
        )
    except ObjectNotFoundError:
        logger.info(f"No existing metadata for {session_id}, starting fresh")
        return {}

    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Existing metadata for {session_id} is not valid JSON ({e}), starting fresh")
        return {}
    return document if isinstance(document, dict) else {}


async def update_episode_metadata(
    store: ObjectStore,
    session_id: str,
    podcast_url: str,
    duration: Optional[float],
    file_size: int,
    attempts: int = 3,
    base_delay: float = 2.0,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> dict:
    """Read, merge and re-persist the session's metadata document."""
    existing = await load_metadata(store, session_id, attempts=attempts, base_delay=base_delay, sleep=sleep)

    art_url = store.public_url("art", f"{session_id}.png") if store.has_public_base("art") else None
    transcript_url = (
        store.public_url("transcript", f"{session_id}.txt") if store.has_public_base("transcript") else None
    )

    try:
        document = merge_metadata(
            existing,
            session_id,
            podcast_url=podcast_url,
            duration=duration,
            file_size=file_size,
            art_url=art_url,
            transcript_url=transcript_url,
        )
    except ValidationError as e:
        raise AssemblyError(f"Stored metadata for {session_id} cannot be merged: {e}") from e

    await store.put_json(META_BUCKET, metadata_key(session_id), document)
    logger.info(f"Metadata updated for {session_id}")
    return document

"""
Final assembly: intro + edited main track + outro, published with metadata.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from ..errors import AssemblyError, PipelineError, StorageError
from ..metadata import update_episode_metadata
from ..models import EditResult, EpisodeResult
from ..session import SessionContext
from ..storage.object_store import ObjectStore
from ..utils.files import safe_unlink
from ..utils.retry import retry_async
from .ffmpeg import FFmpegRunner
from .post_production import EDITED_BUCKET
from .sources import SourceLoader

logger = logging.getLogger(__name__)

PODCAST_BUCKET = "podcast"


class EpisodeMixer:
    """
    Joins the edited track with the show's intro and outro by stream copy.
    """

    def __init__(
        self,
        store: ObjectStore,
        ffmpeg: FFmpegRunner,
        loader: SourceLoader,
        settings,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.store = store
        self.ffmpeg = ffmpeg
        self.loader = loader
        self.settings = settings
        self._sleep = sleep

    async def _fetch_main(self, key: str) -> bytes:
        return await retry_async(
            lambda: self.store.get_object(EDITED_BUCKET, key),
            attempts=self.settings.download_retries,
            base_delay=self.settings.download_retry_delay_seconds,
            multiplier=self.settings.download_backoff_multiplier,
            retry_on=(StorageError,),
            label=f"fetch edited {key}",
            sleep=self._sleep,
        )

    async def _stage_part(self, ctx: SessionContext, name: str, data: bytes, scratch: List[Path]) -> Path:
        path = ctx.scratch_path(f"{name}.mp3")
        scratch.append(path)
        await asyncio.to_thread(path.write_bytes, data)
        return path

    async def assemble(self, ctx: SessionContext, edited: EditResult) -> EpisodeResult:
        """Build, publish and describe the finished episode."""
        scratch: List[Path] = []
        try:
            parts: List[Path] = []

            if self.settings.podcast_intro_url:
                intro = await self.loader.load(self.settings.podcast_intro_url, store=self.store)
                parts.append(await self._stage_part(ctx, "intro", intro, scratch))
            else:
                logger.warning("PODCAST_INTRO_URL not set, assembling without intro")

            main = await self._fetch_main(edited.key)
            parts.append(await self._stage_part(ctx, "main", main, scratch))

            if self.settings.podcast_outro_url:
                outro = await self.loader.load(self.settings.podcast_outro_url, store=self.store)
                parts.append(await self._stage_part(ctx, "outro", outro, scratch))
            else:
                logger.warning("PODCAST_OUTRO_URL not set, assembling without outro")

            final = ctx.scratch_path("final.mp3")
            scratch.append(final)
            list_path = ctx.scratch_path("concat_list.txt")
            scratch.append(list_path)
            await self.ffmpeg.concat_files(parts, final, list_path)

            data = await asyncio.to_thread(final.read_bytes)
            key = f"{ctx.session_id}.mp3"
            url = await self.store.put_buffer(PODCAST_BUCKET, key, data, "audio/mpeg")

            duration = await self.ffmpeg.probe_duration(final)
            await update_episode_metadata(
                self.store,
                ctx.session_id,
                podcast_url=url,
                duration=duration,
                file_size=len(data),
                attempts=self.settings.download_retries,
                base_delay=self.settings.download_retry_delay_seconds,
                sleep=self._sleep,
            )
        except AssemblyError:
            raise
        except PipelineError as e:
            raise AssemblyError(f"Assembly failed for {ctx.session_id}: {e}") from e
        finally:
            for path in scratch:
                safe_unlink(path)

        duration_text = f"{duration:.1f}s" if duration else "unknown duration"
        logger.info(f"Episode published for {ctx.session_id}: {url} ({duration_text}, {len(data):,} bytes)")
        return EpisodeResult(
            session_id=ctx.session_id,
            podcast_key=key,
            podcast_url=url,
            duration=duration,
            file_size=len(data),
        )

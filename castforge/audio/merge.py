"""
Recursive merge of synthesized segments into one main track.

Sources are concatenated in batches of ``merge_batch_size`` with stream
copy. Each round's outputs feed the next round until one file remains, so
a session with M segments needs ceil(log_B M) rounds.
"""

import asyncio
import logging
import math
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Union

from ..config.settings import Settings
from ..errors import AudioToolError, MergeError, PipelineError
from ..models import MergeNode, MergeResult
from ..session import SessionContext
from ..storage.object_store import ObjectStore
from ..utils.files import safe_unlink, verify_file_ready
from ..utils.retry import retry_async
from .ffmpeg import FFmpegRunner
from .sources import SourceLoader

logger = logging.getLogger(__name__)

MERGED_BUCKET = "merged"

MergeItem = Union[str, Path]


def plan_rounds(count: int, batch_size: int) -> List[int]:
    """Number of items alive at the start of each round, ending with 1."""
    if count < 1:
        raise ValueError("Nothing to merge")
    if batch_size < 2:
        raise ValueError("batch_size must be at least 2")
    sizes = [count]
    while count > 1:
        count = math.ceil(count / batch_size)
        sizes.append(count)
    return sizes


class MergeEngine:
    def __init__(
        self,
        store: ObjectStore,
        ffmpeg: FFmpegRunner,
        loader: SourceLoader,
        settings: Settings,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.store = store
        self.ffmpeg = ffmpeg
        self.loader = loader
        self.settings = settings
        self._sleep = sleep
        self.nodes: List[MergeNode] = []

    async def _load(self, item: MergeItem) -> bytes:
        return await self.loader.load(str(item), store=self.store)

    async def _merge_group(self, group: Sequence[MergeItem], output: Path) -> Path:
        buffers = await asyncio.gather(*(self._load(item) for item in group))

        return await retry_async(
            lambda: self.ffmpeg.concat_bytes(buffers, output),
            attempts=self.settings.download_retries,
            base_delay=self.settings.download_retry_delay_seconds,
            multiplier=self.settings.download_backoff_multiplier,
            retry_on=(AudioToolError,),
            should_retry=lambda e: True,
            label=f"concat {output.name}",
            sleep=self._sleep,
        )

    async def _run_rounds(self, ctx: SessionContext, sources: Sequence[str], intermediates: List[Path]) -> Path:
        batch_size = self.settings.merge_batch_size
        items: List[MergeItem] = list(sources)
        round_no = 1

        while len(items) > 1:
            logger.info(f"Merge round {round_no}: {len(items)} inputs, batch size {batch_size}")
            next_items: List[MergeItem] = []
            for offset in range(0, len(items), batch_size):
                group = items[offset:offset + batch_size]
                if len(group) == 1:
                    next_items.append(group[0])
                    continue
                output = ctx.scratch_path(f"batch_{round_no}_{offset}.mp3")
                intermediates.append(output)
                await self._merge_group(group, output)
                self.nodes.append(MergeNode(round=round_no, position=offset, path=str(output)))
                next_items.append(output)
            items = next_items
            round_no += 1

        final = ctx.scratch_path("merged.mp3")
        last = items[0]
        if isinstance(last, Path):
            last.replace(final)
        else:
            # Single source: nothing to concatenate
            data = await self._load(last)
            await asyncio.to_thread(final.write_bytes, data)

        if not verify_file_ready(final):
            raise MergeError(f"Merged output is missing or empty: {final}")
        return final

    async def merge(self, ctx: SessionContext, sources: Sequence[str]) -> MergeResult:
        """Concatenate ``sources`` in order and publish the result."""
        if not sources:
            raise MergeError(f"No audio segments to merge for {ctx.session_id}")

        rounds = len(plan_rounds(len(sources), self.settings.merge_batch_size)) - 1
        intermediates: List[Path] = []
        self.nodes = []

        try:
            final = await self._run_rounds(ctx, sources, intermediates)
            data = await asyncio.to_thread(final.read_bytes)
            key = f"{ctx.session_id}.mp3"
            url = await self.store.put_buffer(MERGED_BUCKET, key, data, "audio/mpeg")
        except MergeError:
            self._delete_now(intermediates)
            raise
        except PipelineError as e:
            self._delete_now(intermediates)
            raise MergeError(f"Merge failed for {ctx.session_id}: {e}") from e

        logger.info(f"Merged {len(sources)} segments in {rounds} round(s) -> {url}")
        leftovers = [p for p in intermediates if p != final]
        if leftovers:
            ctx.spawn_background(
                self._deferred_cleanup(leftovers, self.settings.merge_cleanup_delay_seconds),
                name=f"merge-cleanup-{ctx.session_id}",
            )

        return MergeResult(key=key, url=url, path=str(final), source_count=len(sources), rounds=rounds)

    @staticmethod
    def _delete_now(paths: Iterable[Path]) -> None:
        for path in paths:
            safe_unlink(path)

    async def _deferred_cleanup(self, paths: List[Path], delay: float) -> None:
        """Delete superseded batch files after a delay, or at once if cancelled."""
        try:
            await asyncio.sleep(delay)
        finally:
            self._delete_now(paths)
            logger.debug(f"Removed {len(paths)} merge intermediates")

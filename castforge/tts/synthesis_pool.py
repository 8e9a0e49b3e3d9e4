"""
Bounded-concurrency speech synthesis for a session's text chunks.

Chunks are synthesized with at most ``tts_concurrency`` provider calls in
flight. Each chunk retries transient failures with exponential backoff; a
chunk that still fails becomes a failed segment and never cancels its
siblings.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from ..config.settings import Settings
from ..errors import ConfigurationError, PipelineError
from ..models import AudioSegment, SegmentStatus, TextChunk
from ..session import SessionContext
from ..storage.object_store import ObjectStore
from ..utils.retry import backoff_delay
from .base import SpeechProvider, sanitize_for_tts

logger = logging.getLogger(__name__)

CHUNK_BUCKET = "chunks"


def chunk_key(session_id: str, index: int) -> str:
    return f"{session_id}/chunk-{index:03d}.mp3"


class SynthesisPool:
    def __init__(
        self,
        provider: SpeechProvider,
        store: ObjectStore,
        voice_id: str,
        settings: Settings,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.provider = provider
        self.store = store
        self.voice_id = voice_id
        self.settings = settings
        self._sleep = sleep or asyncio.sleep

    async def run(self, ctx: SessionContext, chunks: Sequence[TextChunk]) -> List[AudioSegment]:
        """Synthesize every chunk. Results are ordered by chunk index."""
        semaphore = asyncio.Semaphore(self.settings.tts_concurrency)

        async def process(chunk: TextChunk) -> AudioSegment:
            async with semaphore:
                return await self._synthesize_chunk(ctx, chunk)

        logger.info(
            f"Synthesizing {len(chunks)} chunks for {ctx.session_id} "
            f"(concurrency {self.settings.tts_concurrency}, provider {self.provider.name})"
        )
        tasks = [asyncio.ensure_future(process(chunk)) for chunk in chunks]
        try:
            segments = await asyncio.gather(*tasks)
        except ConfigurationError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        segments = sorted(segments, key=lambda s: s.index)

        failed = [s.index for s in segments if not s.ok]
        if failed:
            logger.warning(
                f"{len(failed)}/{len(segments)} chunks failed for {ctx.session_id}: {failed}",
                extra={"session_id": ctx.session_id},
            )
        else:
            logger.info(f"All {len(segments)} chunks synthesized for {ctx.session_id}")
        return segments

    async def _synthesize_chunk(self, ctx: SessionContext, chunk: TextChunk) -> AudioSegment:
        limit = self.settings.provider_text_limit
        text = sanitize_for_tts(chunk.text)
        if len(text) > limit:
            logger.warning(
                f"Chunk {chunk.index} truncated from {len(text)} to {limit} chars for the provider",
                extra={"session_id": ctx.session_id, "chunk_index": chunk.index},
            )
            text = text[:limit]
        if not text:
            return AudioSegment(
                index=chunk.index,
                status=SegmentStatus.FAILED,
                error="chunk is empty after sanitizing",
            )

        max_attempts = self.settings.max_chunk_retries
        last_error = ""
        attempt = 0

        for attempt in range(1, max_attempts + 1):
            try:
                audio = await self.provider.synthesize(text, self.voice_id)
                key = chunk_key(ctx.session_id, chunk.index)
                url = await self.store.put_buffer(CHUNK_BUCKET, key, audio, "audio/mpeg")
                logger.debug(f"Chunk {chunk.index} stored as {key} ({len(audio):,} bytes)")
                return AudioSegment(
                    index=chunk.index,
                    status=SegmentStatus.SUCCESS,
                    reference=url,
                    key=key,
                    attempt_count=attempt,
                    byte_size=len(audio),
                )
            except ConfigurationError:
                raise
            except PipelineError as e:
                last_error = str(e)
                if not e.retryable or attempt >= max_attempts:
                    break
                delay = backoff_delay(
                    attempt, self.settings.retry_delay_seconds, self.settings.retry_backoff_multiplier
                )
                logger.warning(
                    f"Chunk {chunk.index} attempt {attempt}/{max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
            except Exception as e:
                logger.exception(f"Unexpected error synthesizing chunk {chunk.index}")
                last_error = repr(e)
                break

        logger.error(
            f"Chunk {chunk.index} failed after {attempt} attempt(s): {last_error}",
            extra={"session_id": ctx.session_id, "chunk_index": chunk.index},
        )
        return AudioSegment(
            index=chunk.index,
            status=SegmentStatus.FAILED,
            attempt_count=attempt,
            error=last_error,
        )

"""
Episode production pipeline.

Drives one session through chunking, synthesis, merging, post-production
and final assembly. Phases run strictly in sequence; each one starts only
after the previous phase's outputs are complete.
"""

import logging
from typing import Awaitable, Callable, List, Optional

from .audio.ffmpeg import FFmpegRunner
from .audio.merge import MergeEngine
from .audio.mixdown import EpisodeMixer
from .audio.post_production import PostProductionPipeline
from .audio.sources import SourceLoader
from .config.settings import Settings
from .errors import PipelineError
from .models import EpisodeResult, Session, TextChunk
from .session import SessionContext, SessionState
from .storage.cleanup import cleanup_session, final_cleanup_session
from .storage.object_store import ObjectStore, create_object_store
from .text.chunker import chunk_text, clean_transcript
from .tts.base import SpeechProvider
from .tts.factory import create_provider
from .tts.synthesis_pool import SynthesisPool
from .utils.heartbeat import heartbeat

logger = logging.getLogger(__name__)

RAW_TEXT_BUCKET = "raw_text"


class EpisodeProducer:
    """Turns a transcript into a published episode."""

    def __init__(
        self,
        settings: Settings,
        store: ObjectStore,
        provider: SpeechProvider,
        voice_id: str,
        ffmpeg: Optional[FFmpegRunner] = None,
        loader: Optional[SourceLoader] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings
        self.store = store
        self.provider = provider
        self.ffmpeg = ffmpeg or FFmpegRunner.from_settings(settings)
        self.loader = loader or SourceLoader.from_settings(settings, sleep=sleep)

        self.pool = SynthesisPool(provider, store, voice_id, settings, sleep=sleep)
        self.merger = MergeEngine(store, self.ffmpeg, self.loader, settings, sleep=sleep)
        self.editor = PostProductionPipeline.from_settings(store, self.ffmpeg, settings)
        self.mixer = EpisodeMixer(store, self.ffmpeg, self.loader, settings, sleep=sleep)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EpisodeProducer":
        provider, voice_id = create_provider(settings)
        return cls(settings, create_object_store(settings), provider, voice_id)

    def new_context(self, session_id: Optional[str] = None) -> SessionContext:
        session = Session(session_id=session_id) if session_id else Session()
        return SessionContext(session=session, settings=self.settings)

    async def produce(self, transcript: str, session_id: Optional[str] = None) -> EpisodeResult:
        """Run the whole pipeline for a transcript."""
        ctx = self.new_context(session_id)
        return await self.run_session(ctx, transcript)

    async def produce_from_store(self, session_id: str) -> EpisodeResult:
        """Run the pipeline on transcript text stored as ``<session>/chunk-*.txt``."""
        ctx = self.new_context(session_id)
        transcript = await self.load_transcript(session_id)
        return await self.run_session(ctx, transcript)

    async def load_transcript(self, session_id: str) -> str:
        keys = await self.store.list_keys(RAW_TEXT_BUCKET, prefix=f"{session_id}/chunk-")
        keys = sorted(k for k in keys if k.endswith(".txt"))
        logger.info(f"Loading {len(keys)} stored text chunks for {session_id}")
        parts = [await self.store.get_object_as_text(RAW_TEXT_BUCKET, key) for key in keys]
        return "\n\n".join(p.strip() for p in parts if p.strip())

    def _chunk(self, ctx: SessionContext, transcript: str) -> List[TextChunk]:
        chunks = chunk_text(clean_transcript(transcript), self.settings.max_chunk_chars)
        if not chunks:
            raise PipelineError(f"Transcript for {ctx.session_id} is empty")
        ctx.session.chunk_count = len(chunks)
        logger.info(f"Transcript split into {len(chunks)} chunks for {ctx.session_id}")
        return chunks

    async def run_session(self, ctx: SessionContext, transcript: str) -> EpisodeResult:
        interval = self.settings.heartbeat_interval_seconds
        try:
            chunks = self._chunk(ctx, transcript)

            ctx.transition(SessionState.SYNTHESIZING)
            async with heartbeat(f"{ctx.session_id} synthesis", interval):
                segments = await self.pool.run(ctx, chunks)

            succeeded = [s for s in segments if s.ok]
            if not succeeded:
                raise PipelineError(f"No chunks were synthesized for {ctx.session_id}")
            if len(succeeded) < len(segments):
                if self.settings.partial_synthesis_policy == "abort":
                    raise PipelineError(
                        f"{len(segments) - len(succeeded)} of {len(segments)} chunks failed "
                        f"and partial synthesis policy is 'abort'"
                    )
                logger.warning(
                    f"Continuing with {len(succeeded)}/{len(segments)} chunks for {ctx.session_id}",
                    extra={"session_id": ctx.session_id},
                )

            ctx.transition(SessionState.MERGING)
            async with heartbeat(f"{ctx.session_id} merge", interval):
                merged = await self.merger.merge(ctx, [s.reference for s in succeeded])

            ctx.transition(SessionState.EDITING)
            async with heartbeat(f"{ctx.session_id} editing", interval):
                edited = await self.editor.process(ctx, merged.path)

            ctx.transition(SessionState.ASSEMBLING)
            async with heartbeat(f"{ctx.session_id} assembly", interval):
                episode = await self.mixer.assemble(ctx, edited)

            ctx.transition(SessionState.DONE)
        except Exception as e:
            ctx.fail(str(e) or repr(e))
            await ctx.drain_background(cancel=True)
            raise

        if self.settings.cleanup_after_publish:
            await cleanup_session(self.store, ctx.session_id)
            await final_cleanup_session(self.store, ctx.session_id)

        return episode

    async def aclose(self) -> None:
        await self.provider.aclose()

"""
Integration tests for a full session: chunking through publishing.

Speech synthesis and ffmpeg are replaced by byte-level fakes so the
pipeline's ordering, retry and fallback behavior can be observed exactly.
"""

import json

import pytest

from castforge.errors import SynthesisError, SynthesisErrorKind


def _transcript(paragraphs: int) -> str:
    return "\n\n".join(
        f"Paragraph {n} opens here. " + " ".join(["words"] * 25) + "."
        for n in range(1, paragraphs + 1)
    )


@pytest.mark.integration
class TestSessionPipeline:
    """End-to-end runs of EpisodeProducer with fakes."""

    @pytest.mark.asyncio
    async def test_short_transcript_single_chunk(self, producer, store, fake_provider, fake_ffmpeg, settings):
        """Test a 500 character transcript is one chunk, one call and a pass-through merge."""
        from castforge.session import SessionState

        settings.provider_text_limit = 5800
        settings.max_chunk_chars = 5800
        transcript = ("This is a short transcript sentence. " * 14)[:500]
        ctx = producer.new_context("TT-500")

        episode = await producer.run_session(ctx, transcript)

        assert ctx.state == SessionState.DONE
        assert ctx.session.chunk_count == 1
        assert len(fake_provider.calls) == 1
        assert fake_ffmpeg.concat_calls == 0
        assert episode.podcast_key == "TT-500.mp3"
        assert episode.podcast_url == "memory://podcast/TT-500.mp3"
        published = await store.get_object("podcast", "TT-500.mp3")
        assert published.startswith(b"AUDIO(This is a short transcript")
        assert published.endswith(b"|afade")

    @pytest.mark.asyncio
    async def test_intro_and_outro_wrap_main_track(self, producer, store, settings, tmp_path):
        """Test configured intro and outro are placed around the edited track."""
        intro = tmp_path / "intro.mp3"
        outro = tmp_path / "outro.mp3"
        intro.write_bytes(b"INTRO")
        outro.write_bytes(b"OUTRO")
        settings.podcast_intro_url = str(intro)
        settings.podcast_outro_url = str(outro)

        await producer.produce("A tiny episode.", session_id="TT-io")

        published = await store.get_object("podcast", "TT-io.mp3")
        assert published.startswith(b"INTRO")
        assert published.endswith(b"OUTRO")

    @pytest.mark.asyncio
    async def test_failed_chunk_is_skipped_in_order(self, producer, store, fake_provider, settings, sleeps):
        """Test chunk 4 of 7 failing every retry leaves 6 ordered segments in the merge."""
        settings.max_chunk_chars = 200
        fake_provider.fail_always(
            "Paragraph 4 ", SynthesisError("Rate exceeded", SynthesisErrorKind.RATE_LIMITED)
        )
        ctx = producer.new_context("TT-7")

        await producer.run_session(ctx, _transcript(7))

        assert ctx.session.chunk_count == 7
        merged = await store.get_object("merged", "TT-7.mp3")
        order = [merged.find(f"Paragraph {n} ".encode()) for n in (1, 2, 3, 5, 6, 7)]
        assert -1 not in order
        assert order == sorted(order)
        assert b"Paragraph 4 " not in merged
        assert len(sleeps) == settings.max_chunk_retries - 1
        await ctx.drain_background(cancel=True)

    @pytest.mark.asyncio
    async def test_nine_segments_merge_in_order(self, producer, store, settings):
        """Test nine chunks merge pairwise and keep transcript order."""
        settings.max_chunk_chars = 200
        ctx = producer.new_context("TT-9")

        await producer.run_session(ctx, _transcript(9))

        assert ctx.session.chunk_count == 9
        assert len({n.round for n in producer.merger.nodes}) == 4
        merged = await store.get_object("merged", "TT-9.mp3")
        positions = [merged.find(f"Paragraph {n} ".encode()) for n in range(1, 10)]
        assert positions == sorted(positions)
        await ctx.drain_background(cancel=True)

    @pytest.mark.asyncio
    async def test_metadata_fetch_retried_and_merged(self, producer, store, fake_sleep, sleeps):
        """Test a transient metadata read failure is retried and fields are merged."""
        from unittest.mock import AsyncMock

        from castforge.errors import StorageError

        await store.put_json("meta", "TT-meta.json", {"title": "Upstream Title", "keywords": ["k"], "custom": 7})
        stored_text = await store.get_object_as_text("meta", "TT-meta.json")
        store.get_object_as_text = AsyncMock(side_effect=[StorageError("503 Slow Down", retryable=True), stored_text])

        episode = await producer.produce("Metadata episode text.", session_id="TT-meta")

        document = json.loads((await store.get_object("meta", "TT-meta.json")).decode())
        assert document["title"] == "Upstream Title"
        assert document["keywords"] == ["k"]
        assert document["custom"] == 7
        assert document["podcastUrl"] == episode.podcast_url
        assert document["fileSize"] == episode.file_size
        assert document["duration"] == 600.0
        assert 2.0 in sleeps

    @pytest.mark.asyncio
    async def test_all_chunks_failing_fails_session(self, producer, fake_provider):
        """Test the session fails when no chunk is synthesized."""
        from castforge.errors import PipelineError
        from castforge.session import SessionState

        fake_provider.fail_always("", SynthesisError("bad request", SynthesisErrorKind.FATAL))
        ctx = producer.new_context("TT-none")

        with pytest.raises(PipelineError, match="No chunks"):
            await producer.run_session(ctx, "Some text.")

        assert ctx.state == SessionState.FAILED
        assert [s for s, _ in ctx.history][-2:] == [SessionState.SYNTHESIZING, SessionState.FAILED]

    @pytest.mark.asyncio
    async def test_abort_policy_fails_on_partial(self, producer, fake_provider, settings):
        """Test the abort policy turns any failed chunk into a session failure."""
        from castforge.errors import PipelineError

        settings.max_chunk_chars = 200
        settings.partial_synthesis_policy = "abort"
        fake_provider.fail_always("Paragraph 2 ", SynthesisError("bad", SynthesisErrorKind.FATAL))

        with pytest.raises(PipelineError, match="abort"):
            await producer.produce(_transcript(3), session_id="TT-abort")

    @pytest.mark.asyncio
    async def test_empty_transcript_fails_while_chunking(self, producer):
        """Test an empty transcript fails before synthesis."""
        from castforge.errors import PipelineError
        from castforge.session import SessionState

        ctx = producer.new_context("TT-empty")
        with pytest.raises(PipelineError):
            await producer.run_session(ctx, "   ")

        assert [s for s, _ in ctx.history] == [SessionState.CHUNKING, SessionState.FAILED]

    @pytest.mark.asyncio
    async def test_produce_from_store(self, producer, store):
        """Test stored text chunks are loaded in key order."""
        await store.put_text("raw_text", "TT-raw/chunk-002.txt", "Second part.")
        await store.put_text("raw_text", "TT-raw/chunk-001.txt", "First part.")

        await producer.produce_from_store("TT-raw")

        published = await store.get_object("podcast", "TT-raw.mp3")
        assert published.index(b"First part.") < published.index(b"Second part.")

    @pytest.mark.asyncio
    async def test_cleanup_after_publish(self, producer, store, settings):
        """Test working objects are removed once the episode is published."""
        settings.cleanup_after_publish = True

        await producer.produce("Cleanup episode.", session_id="TT-clean")

        assert await store.list_keys("chunks", prefix="TT-clean") == []
        assert await store.list_keys("merged", prefix="TT-clean") == []
        assert await store.list_keys("podcast", prefix="TT-clean") == ["TT-clean.mp3"]

    @pytest.mark.asyncio
    async def test_local_run_with_default_loader(self, settings, fake_provider, fake_ffmpeg, fake_sleep):
        """Test an in-memory store run completes with the loader the producer builds itself."""
        from castforge.pipeline import EpisodeProducer
        from castforge.session import SessionState
        from castforge.storage.object_store import InMemoryObjectStore

        store = InMemoryObjectStore()
        producer = EpisodeProducer(settings, store, fake_provider, "Brian", ffmpeg=fake_ffmpeg, sleep=fake_sleep)
        ctx = producer.new_context("TT-42")

        episode = await producer.run_session(ctx, _transcript(3))

        assert ctx.state == SessionState.DONE
        assert episode.podcast_url == "memory://podcast/TT-42.mp3"
        merged = await store.get_object("merged", "TT-42.mp3")
        assert merged.index(b"Paragraph 1 ") < merged.index(b"Paragraph 3 ")
        await ctx.drain_background(cancel=True)

    @pytest.mark.asyncio
    async def test_missing_public_base_fails_session_with_config_error(self, settings, fake_provider, fake_ffmpeg, fake_sleep):
        """Test a missing chunk public base surfaces as a configuration error and writes nothing."""
        from castforge.errors import ConfigurationError
        from castforge.pipeline import EpisodeProducer
        from castforge.session import SessionState
        from castforge.storage.object_store import InMemoryObjectStore

        store = InMemoryObjectStore(public_bases={"podcast": "memory://podcast"})
        producer = EpisodeProducer(settings, store, fake_provider, "Brian", ffmpeg=fake_ffmpeg, sleep=fake_sleep)
        ctx = producer.new_context("TT-nobase")

        with pytest.raises(ConfigurationError, match="chunks"):
            await producer.run_session(ctx, _transcript(3))

        assert ctx.state == SessionState.FAILED
        assert await store.list_keys("chunks") == []

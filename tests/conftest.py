"""
Pytest configuration and fixtures for castforge tests.
"""

import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


# ============================================================
# Settings
# ============================================================

@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the developer's environment and .env."""
    from castforge.config.settings import Settings

    return Settings(
        _env_file=None,
        tts_provider="polly",
        scratch_dir=str(tmp_path / "scratch"),
        max_chunk_chars=200,
        provider_text_limit=2800,
        tts_concurrency=3,
        max_chunk_retries=4,
        retry_delay_seconds=1.2,
        retry_backoff_multiplier=2.1,
        merge_batch_size=2,
        merge_cleanup_delay_seconds=120,
        download_retries=3,
        download_retry_delay_seconds=2.0,
        podcast_intro_url=None,
        podcast_outro_url=None,
        heartbeat_interval_seconds=5,
        partial_synthesis_policy="degrade",
        cleanup_after_publish=False,
    )


@pytest.fixture
def store():
    """In-memory object store with default bucket aliases."""
    from castforge.storage.object_store import InMemoryObjectStore

    return InMemoryObjectStore()


@pytest.fixture
def sleeps():
    """Records requested backoff delays instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def session_ctx(settings):
    """A fresh session context in the CHUNKING state."""
    from castforge.models import Session
    from castforge.session import SessionContext

    return SessionContext(session=Session(session_id="TT-1000"), settings=settings)


# ============================================================
# Fakes
# ============================================================

class FakeProvider:
    """
    Speech provider returning ``AUDIO(<text>)`` bytes.

    ``fail_on`` queues errors raised by successive calls whose text contains
    a marker; ``fail_always`` makes every such call fail.
    """

    name = "fake"

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[str] = []
        self.queued: Dict[str, List[Exception]] = {}
        self.permanent: Dict[str, Exception] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def fail_on(self, marker: str, *errors: Exception) -> None:
        self.queued[marker] = list(errors)

    def fail_always(self, marker: str, error: Exception) -> None:
        self.permanent[marker] = error

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            for marker, error in self.permanent.items():
                if marker in text:
                    raise error
            for marker, errors in self.queued.items():
                if marker in text and errors:
                    raise errors.pop(0)
            return f"AUDIO({text})".encode()
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        return None


class FakeFFmpeg:
    """
    Stand-in for FFmpegRunner that works on bytes.

    Filters append ``|<filter name>`` to the data; concatenation joins
    inputs. ``fail_filters`` lists filter prefixes that should fail.
    """

    def __init__(self, duration: Optional[float] = 600.0):
        self.duration = duration
        self.fail_filters: List[str] = []
        self.fail_concat_times = 0
        self.filters: List[str] = []
        self.concat_calls = 0

    async def apply_filter(self, input_path, output_path, filter_expr):
        from castforge.errors import AudioToolError

        self.filters.append(filter_expr)
        if any(filter_expr.startswith(prefix) for prefix in self.fail_filters):
            raise AudioToolError(f"filter failed: {filter_expr}", returncode=1)
        name = filter_expr.split("=", 1)[0]
        Path(output_path).write_bytes(Path(input_path).read_bytes() + f"|{name}".encode())
        return Path(output_path)

    async def concat_bytes(self, buffers, output_path):
        from castforge.errors import AudioToolError

        self.concat_calls += 1
        if self.fail_concat_times > 0:
            self.fail_concat_times -= 1
            raise AudioToolError("concat failed", returncode=1)
        Path(output_path).write_bytes(b"".join(buffers))
        return Path(output_path)

    async def concat_files(self, inputs, output_path, list_path):
        Path(output_path).write_bytes(b"".join(Path(p).read_bytes() for p in inputs))
        return Path(output_path)

    async def probe_duration(self, path):
        return self.duration


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def loader(fake_sleep):
    """SourceLoader with recorded backoff."""
    from castforge.audio.sources import SourceLoader

    return SourceLoader(attempts=3, base_delay=2.0, multiplier=2.0, sleep=fake_sleep)


@pytest.fixture
def producer(settings, store, fake_provider, fake_ffmpeg, loader, fake_sleep):
    """EpisodeProducer wired to fakes."""
    from castforge.pipeline import EpisodeProducer

    return EpisodeProducer(
        settings,
        store,
        fake_provider,
        voice_id="Brian",
        ffmpeg=fake_ffmpeg,
        loader=loader,
        sleep=fake_sleep,
    )

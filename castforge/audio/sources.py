"""Loading audio from the object store, URLs or local paths, with retry."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from ..errors import StorageError
from ..storage.object_store import ObjectStore
from ..utils.retry import retry_async

logger = logging.getLogger(__name__)


def is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


class SourceLoader:
    def __init__(
        self,
        timeout: float = 30.0,
        attempts: int = 3,
        base_delay: float = 2.0,
        multiplier: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.timeout = timeout
        self.attempts = attempts
        self.base_delay = base_delay
        self.multiplier = multiplier
        self._client = client
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "SourceLoader":
        return cls(
            timeout=settings.request_timeout_seconds,
            attempts=settings.download_retries,
            base_delay=settings.download_retry_delay_seconds,
            multiplier=settings.download_backoff_multiplier,
            **kwargs,
        )

    async def _fetch(self, url: str) -> bytes:
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(url, timeout=self.timeout)
        except httpx.TransportError as e:
            raise StorageError(f"Download failed for {url}: {e}", retryable=True, key=url) from e

        if response.status_code != 200:
            retryable = response.status_code in (408, 429) or response.status_code >= 500
            raise StorageError(
                f"Download failed for {url}: HTTP {response.status_code}",
                retryable=retryable,
                key=url,
            )
        if not response.content:
            raise StorageError(f"Download returned empty body for {url}", retryable=True, key=url)
        return response.content

    async def _read_local(self, source: str) -> bytes:
        path = Path(source)
        if not path.is_file():
            raise StorageError(f"Audio source not found: {source}", retryable=False, key=source)
        data = await asyncio.to_thread(path.read_bytes)
        if not data:
            raise StorageError(f"Audio source is empty: {source}", retryable=False, key=source)
        return data

    async def _read_stored(self, store: ObjectStore, alias: str, key: str) -> bytes:
        data = await store.get_object(alias, key)
        if not data:
            raise StorageError(f"Stored audio is empty: {alias}/{key}", retryable=False, key=key)
        return data

    async def load(self, source: str, store: Optional[ObjectStore] = None) -> bytes:
        """
        Return the bytes behind a source reference.

        Public URLs of ``store`` are read back through the store itself,
        other http(s) URLs are downloaded and anything else is a local path.
        """
        location = store.locate(source) if store is not None else None
        if location is not None:
            alias, key = location
            operation = lambda: self._read_stored(store, alias, key)
        elif is_remote(source):
            operation = lambda: self._fetch(source)
        else:
            operation = lambda: self._read_local(source)

        return await retry_async(
            operation,
            attempts=self.attempts,
            base_delay=self.base_delay,
            multiplier=self.multiplier,
            retry_on=(StorageError,),
            label=f"load {source}",
            sleep=self._sleep,
        )

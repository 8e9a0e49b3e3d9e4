"""
Durable object store.

Pipeline code addresses buckets by logical alias ("chunks", "merged",
"edited", "podcast", "meta", ...). The store resolves aliases to bucket
names and builds public URLs from per-alias base URLs.
"""

import asyncio
import json
import logging
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from ..config.settings import BUCKET_ALIASES, Settings
from ..errors import ConfigurationError, ObjectNotFoundError, StorageError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_THROTTLE_CODES = {"Throttling", "ThrottlingException", "SlowDown", "RequestTimeout", "TooManyRequests"}


class ObjectStore:
    """Base object store interface."""

    def __init__(self, buckets: Mapping[str, Optional[str]], public_bases: Mapping[str, Optional[str]]):
        self._buckets = dict(buckets)
        self._public_bases = dict(public_bases)

    def resolve_bucket(self, alias: str) -> str:
        bucket = self._buckets.get(alias)
        if not bucket:
            raise ConfigurationError(f"No bucket configured for alias '{alias}'")
        return bucket

    def has_public_base(self, alias: str) -> bool:
        return bool(self._public_bases.get(alias))

    def public_url(self, alias: str, key: str) -> str:
        base = self._public_bases.get(alias)
        if not base:
            raise ConfigurationError(f"No public base URL configured for alias '{alias}'")
        return f"{base.rstrip('/')}/{quote(key, safe='')}"

    def locate(self, url: str) -> Optional[Tuple[str, str]]:
        """Map one of this store's public URLs back to (alias, key)."""
        for alias, base in self._public_bases.items():
            if not base:
                continue
            prefix = base.rstrip("/") + "/"
            if url.startswith(prefix) and len(url) > len(prefix):
                return alias, unquote(url[len(prefix):])
        return None

    async def get_object(self, alias: str, key: str) -> bytes:
        raise NotImplementedError

    async def put_object(self, alias: str, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    async def list_keys(self, alias: str, prefix: str = "") -> List[str]:
        raise NotImplementedError

    async def delete_object(self, alias: str, key: str) -> None:
        raise NotImplementedError

    async def get_object_as_text(self, alias: str, key: str) -> str:
        data = await self.get_object(alias, key)
        return data.decode("utf-8")

    async def put_buffer(self, alias: str, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store bytes and return the object's public URL."""
        url = self.public_url(alias, key)
        await self.put_object(alias, key, data, content_type)
        logger.info(f"Stored {alias}/{key} ({len(data):,} bytes)")
        return url

    async def put_text(self, alias: str, key: str, text: str, content_type: str = "text/plain; charset=utf-8") -> None:
        await self.put_object(alias, key, text.encode("utf-8"), content_type)

    async def put_json(self, alias: str, key: str, document: dict) -> None:
        body = json.dumps(document, indent=2, ensure_ascii=False)
        await self.put_object(alias, key, body.encode("utf-8"), "application/json")


class InMemoryObjectStore(ObjectStore):
    """
    Process-local object store.

    Used for local runs and tests. Bucket names default to the alias and
    public URLs to ``memory://<alias>/<key>``.
    """

    def __init__(
        self,
        buckets: Optional[Mapping[str, Optional[str]]] = None,
        public_bases: Optional[Mapping[str, Optional[str]]] = None,
    ):
        super().__init__(
            buckets if buckets is not None else {a: a for a in BUCKET_ALIASES},
            public_bases if public_bases is not None else {a: f"memory://{a}" for a in BUCKET_ALIASES},
        )
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}

    async def get_object(self, alias: str, key: str) -> bytes:
        bucket = self.resolve_bucket(alias)
        try:
            return self.objects[(bucket, key)][0]
        except KeyError:
            raise ObjectNotFoundError(bucket, key)

    async def put_object(self, alias: str, key: str, data: bytes, content_type: str) -> None:
        bucket = self.resolve_bucket(alias)
        self.objects[(bucket, key)] = (bytes(data), content_type)

    async def list_keys(self, alias: str, prefix: str = "") -> List[str]:
        bucket = self.resolve_bucket(alias)
        return sorted(k for b, k in self.objects if b == bucket and k.startswith(prefix))

    async def delete_object(self, alias: str, key: str) -> None:
        bucket = self.resolve_bucket(alias)
        self.objects.pop((bucket, key), None)


class R2ObjectStore(ObjectStore):
    """Cloudflare R2 (or any S3 compatible endpoint) via boto3."""

    def __init__(
        self,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        buckets: Mapping[str, Optional[str]],
        public_bases: Mapping[str, Optional[str]],
        region: str = "auto",
        client=None,
    ):
        super().__init__(buckets, public_bases)
        self.endpoint_url = endpoint_url
        self.region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2ObjectStore":
        missing = [
            name for name in ("r2_endpoint", "r2_access_key_id", "r2_secret_access_key")
            if not getattr(settings, name)
        ]
        if missing:
            raise ConfigurationError(f"Missing R2 settings: {', '.join(m.upper() for m in missing)}")
        return cls(
            endpoint_url=settings.r2_endpoint,
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            buckets=settings.buckets(),
            public_bases=settings.public_bases(),
            region=settings.r2_region,
        )

    @property
    def client(self):
        if self._client is None:
            import boto3

            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url,
                aws_access_key_id=self._access_key_id,
                aws_secret_access_key=self._secret_access_key,
                region_name=self.region,
            )
        return self._client

    def _translate(self, exc: Exception, bucket: str, key: str) -> StorageError:
        from botocore.exceptions import BotoCoreError, ClientError

        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            code = str(error.get("Code", ""))
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
            if code in _NOT_FOUND_CODES or status == 404:
                return ObjectNotFoundError(bucket, key)
            retryable = code in _THROTTLE_CODES or status == 429 or status >= 500
            return StorageError(
                f"R2 {code or status} on {bucket}/{key}: {error.get('Message', exc)}",
                retryable=retryable, bucket=bucket, key=key,
            )
        if isinstance(exc, BotoCoreError):
            return StorageError(f"R2 transport error on {bucket}/{key}: {exc}", retryable=True, bucket=bucket, key=key)
        return StorageError(f"R2 error on {bucket}/{key}: {exc}", retryable=False, bucket=bucket, key=key)

    async def _call(self, bucket: str, key: str, func, **kwargs):
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(func, **kwargs)
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, bucket, key) from e

    async def get_object(self, alias: str, key: str) -> bytes:
        bucket = self.resolve_bucket(alias)
        response = await self._call(bucket, key, self.client.get_object, Bucket=bucket, Key=key)
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        finally:
            body.close()

    async def put_object(self, alias: str, key: str, data: bytes, content_type: str) -> None:
        bucket = self.resolve_bucket(alias)
        await self._call(
            bucket, key, self.client.put_object,
            Bucket=bucket, Key=key, Body=data, ContentType=content_type,
        )

    async def list_keys(self, alias: str, prefix: str = "") -> List[str]:
        bucket = self.resolve_bucket(alias)

        def _list() -> List[str]:
            keys = []
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        return sorted(await self._call(bucket, prefix, _list))

    async def delete_object(self, alias: str, key: str) -> None:
        bucket = self.resolve_bucket(alias)
        await self._call(bucket, key, self.client.delete_object, Bucket=bucket, Key=key)


def create_object_store(settings: Settings) -> ObjectStore:
    """R2 when any R2 connection setting is present, otherwise an in-memory store."""
    if settings.has_r2_credentials():
        return R2ObjectStore.from_settings(settings)
    logger.warning("R2 credentials not configured. Using in-memory object store.")
    return InMemoryObjectStore()

"""
Amazon Polly Text-to-Speech provider
"""

import asyncio
import logging
from typing import Optional

from ..errors import SynthesisError, SynthesisErrorKind, classify_error_message
from .base import SpeechProvider

logger = logging.getLogger(__name__)

THROTTLE_CODES = {"Throttling", "ThrottlingException", "TooManyRequestsException", "ServiceUnavailableException"}


def classify_polly_error(exc: Exception) -> SynthesisErrorKind:
    """Translate a botocore failure into a SynthesisErrorKind."""
    from botocore.exceptions import ClientError, ConnectTimeoutError, ReadTimeoutError

    if isinstance(exc, (ReadTimeoutError, ConnectTimeoutError)):
        return SynthesisErrorKind.TIMEOUT

    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
        if code in THROTTLE_CODES or status == 429:
            return SynthesisErrorKind.RATE_LIMITED
        kind = classify_error_message(str(exc))
        if kind != SynthesisErrorKind.UNKNOWN:
            return kind
        if 400 <= status < 500:
            return SynthesisErrorKind.FATAL
        return SynthesisErrorKind.UNKNOWN

    return classify_error_message(str(exc))


class PollyTTS(SpeechProvider):
    """Amazon Polly neural voices, mp3 output"""

    name = "polly"

    def __init__(self, region: str = "us-east-1", engine: str = "neural", client=None):
        self.region = region
        self.engine = engine
        self._client = client

    @property
    def client(self):
        if self._client is None:
            import boto3

            self._client = boto3.client("polly", region_name=self.region)
        return self._client

    def _synthesize_sync(self, text: str, voice_id: str) -> bytes:
        response = self.client.synthesize_speech(
            Text=text,
            VoiceId=voice_id,
            Engine=self.engine,
            OutputFormat="mp3",
        )
        stream = response.get("AudioStream")
        if stream is None:
            return b""
        try:
            return stream.read()
        finally:
            stream.close()

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            audio: Optional[bytes] = await asyncio.to_thread(self._synthesize_sync, text, voice_id)
        except (BotoCoreError, ClientError) as e:
            kind = classify_polly_error(e)
            raise SynthesisError(f"Polly synthesis failed: {e}", kind) from e

        if not audio:
            raise SynthesisError("Polly returned empty audio stream", SynthesisErrorKind.UNKNOWN)
        return audio

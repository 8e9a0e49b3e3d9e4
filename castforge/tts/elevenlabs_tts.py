"""
ElevenLabs Text-to-Speech provider
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from ..errors import SynthesisError, SynthesisErrorKind
from .base import SpeechProvider

logger = logging.getLogger(__name__)


class VoiceSettings(BaseModel):
    """Voice tuning sent with every request"""

    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    use_speaker_boost: bool = True


def classify_status(status_code: int) -> SynthesisErrorKind:
    if status_code in (429, 503):
        return SynthesisErrorKind.RATE_LIMITED
    if status_code in (408, 504):
        return SynthesisErrorKind.TIMEOUT
    if 400 <= status_code < 500:
        return SynthesisErrorKind.FATAL
    return SynthesisErrorKind.UNKNOWN


class ElevenLabsTTS(SpeechProvider):
    """
    ElevenLabs Text-to-Speech client
    """

    name = "elevenlabs"
    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(
        self,
        api_key: str,
        model_id: str = "eleven_multilingual_v2",
        voice_settings: Optional[VoiceSettings] = None,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model_id = model_id
        self.voice_settings = voice_settings or VoiceSettings()
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """Generate speech for a single text chunk"""
        url = f"{self.BASE_URL}/text-to-speech/{voice_id}"

        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }

        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": self.voice_settings.model_dump(),
        }

        try:
            response = await self._get_client().post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise SynthesisError(f"ElevenLabs request timed out: {e}", SynthesisErrorKind.TIMEOUT) from e
        except httpx.TransportError as e:
            raise SynthesisError(f"ElevenLabs transport error: {e}", SynthesisErrorKind.UNKNOWN) from e

        if response.status_code != 200:
            kind = classify_status(response.status_code)
            raise SynthesisError(
                f"ElevenLabs TTS failed: {response.status_code} - {response.text[:200]}",
                kind,
            )

        if not response.content:
            raise SynthesisError("ElevenLabs returned empty audio", SynthesisErrorKind.UNKNOWN)

        return response.content

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

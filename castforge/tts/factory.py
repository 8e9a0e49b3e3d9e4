"""Speech provider selection."""

from typing import Tuple

from ..config.settings import Settings
from ..errors import ConfigurationError
from .base import SpeechProvider
from .elevenlabs_tts import ElevenLabsTTS
from .polly_tts import PollyTTS


def create_provider(settings: Settings) -> Tuple[SpeechProvider, str]:
    """Return the configured provider and the voice id to use with it."""
    if settings.tts_provider == "elevenlabs":
        if not settings.elevenlabs_api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY is required for the elevenlabs provider")
        provider = ElevenLabsTTS(
            api_key=settings.elevenlabs_api_key,
            model_id=settings.elevenlabs_model_id,
            timeout=settings.request_timeout_seconds,
        )
        return provider, settings.elevenlabs_voice_id

    if settings.tts_provider == "polly":
        return PollyTTS(region=settings.aws_region, engine=settings.polly_engine), settings.polly_voice_id

    raise ConfigurationError(f"Unknown TTS provider: {settings.tts_provider}")

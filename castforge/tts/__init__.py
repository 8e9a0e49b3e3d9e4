"""Text-to-Speech modules"""
from .base import SpeechProvider, sanitize_for_tts
from .elevenlabs_tts import ElevenLabsTTS
from .polly_tts import PollyTTS
from .factory import create_provider
from .synthesis_pool import SynthesisPool, chunk_key

__all__ = [
    "SpeechProvider",
    "sanitize_for_tts",
    "ElevenLabsTTS",
    "PollyTTS",
    "create_provider",
    "SynthesisPool",
    "chunk_key",
]

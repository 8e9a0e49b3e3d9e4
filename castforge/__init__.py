"""
castforge - turns a long-form transcript into a mastered, published podcast episode.
"""

from .models import AudioSegment, EditResult, EpisodeMetadata, EpisodeResult, Session, TextChunk
from .pipeline import EpisodeProducer
from .session import SessionContext, SessionState
from .text.chunker import chunk_text

__version__ = "0.1.0"

__all__ = [
    "AudioSegment",
    "EditResult",
    "EpisodeMetadata",
    "EpisodeProducer",
    "EpisodeResult",
    "Session",
    "SessionContext",
    "SessionState",
    "TextChunk",
    "chunk_text",
]

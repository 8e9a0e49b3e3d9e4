"""
Speech provider interface and request text sanitizing
"""

import re
from typing import Optional

_TAG = re.compile(r"<[^>]*>")
_UNSUPPORTED = re.compile(r"[^\x09\x0A\x0D\x20-\x7EÀ-ÿ]")


def sanitize_for_tts(text: str, max_chars: Optional[int] = None) -> str:
    """
    Make chunk text safe for a plain-text synthesis request.

    Strips markup and characters the voices cannot read, spells out ``&``,
    turns paragraph breaks into sentence pauses and, when ``max_chars`` is
    given, caps the length.
    """
    if not text:
        return ""
    text = _TAG.sub(" ", text)
    text = _UNSUPPORTED.sub("", text)
    text = text.replace("&", "and")
    text = text.replace("<", "").replace(">", "")
    text = re.sub(r"\n{2,}", ". ", text)
    text = text.strip()
    return text[:max_chars] if max_chars is not None else text


class SpeechProvider:
    """
    Base speech provider.

    Implementations return mp3 bytes and raise SynthesisError with a kind
    describing the failure.
    """

    name = "base"

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any client resources."""
        return None

"""
Transcript chunking.

Splits a transcript into ordered chunks that each fit a speech provider's
request limit, preferring paragraph boundaries, then sentence boundaries,
then word boundaries.
"""

import re
from typing import List

from ..models import TextChunk

DEFAULT_MAX_CHARS = 5800
TRUNCATION_MARKER = "..."

ABBREVIATIONS = {
    "mr", "mrs", "ms", "dr", "prof", "sr", "jr", "st", "vs",
    "etc", "inc", "ltd", "co", "approx", "e.g", "i.e",
}

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_END = re.compile(r"[.!?]+[\"'”’)\]]*(?=\s+[\"'“‘(\[]?[A-Z0-9]|\s*$)")
_TRAILING_WORD = re.compile(r"([A-Za-z.]+)$")


def normalize_text(text: str) -> str:
    """CRLF to LF, collapse runs of blank lines, strip."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def clean_transcript(text: str) -> str:
    """Tidy a generated transcript before chunking."""
    if not text:
        return ""
    text = (
        text.replace("“", '"').replace("”", '"')
        .replace("‘", "'").replace("’", "'")
    )
    text = re.sub(r"[ \t]{2,}", " ", text)
    return normalize_text(text)


def _is_abbreviation(text: str, end: int, punctuation: str) -> bool:
    if punctuation != ".":
        return False
    match = _TRAILING_WORD.search(text[:end])
    if not match:
        return False
    return match.group(1).strip(".").lower() in ABBREVIATIONS


def split_into_sentences(text: str) -> List[str]:
    """
    Split text on sentence-ending punctuation.

    A boundary is one or more of ``.!?`` (plus closing quotes or brackets)
    followed by whitespace and a capital, digit or opening quote, or the end
    of the text. A single period after a common abbreviation is not a boundary.
    """
    sentences = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        if _is_abbreviation(text, match.start(), match.group().rstrip("\"'”’)]")):
            continue
        sentence = text[start:match.end()].strip()
        if sentence:
            sentences.append(sentence)
        start = match.end()

    tail = text[start:].strip()
    if tail:
        sentences.append(tail)
    return sentences


def _truncate_word(word: str, max_chars: int) -> str:
    if max_chars <= len(TRUNCATION_MARKER):
        return word[:max_chars]
    return word[:max_chars - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def split_by_words(text: str, max_chars: int) -> List[str]:
    """Pack whitespace-separated words into runs no longer than max_chars."""
    pieces = []
    current = ""
    for word in text.split():
        if len(word) > max_chars:
            word = _truncate_word(word, max_chars)
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
        else:
            pieces.append(current)
            current = word
    if current:
        pieces.append(current)
    return pieces


def _pack(blocks: List[str], separator: str, max_chars: int) -> List[str]:
    pieces = []
    current = ""

    for block in blocks:
        if len(block) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            if separator == "\n\n":
                pieces.extend(_pack(split_into_sentences(block), " ", max_chars))
            else:
                pieces.extend(split_by_words(block, max_chars))
            continue

        candidate = f"{current}{separator}{block}" if current else block
        if len(candidate) <= max_chars:
            current = candidate
        else:
            pieces.append(current)
            current = block

    if current:
        pieces.append(current)
    return pieces


def chunk_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> List[TextChunk]:
    """
    Split a transcript into 1-based, ordered chunks of at most max_chars.

    Empty or whitespace-only input yields no chunks. Text that already fits
    yields exactly one chunk equal to the normalized text.
    """
    if max_chars < 1:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if not isinstance(text, str):
        return []

    normalized = normalize_text(text)
    if not normalized:
        return []

    if len(normalized) <= max_chars:
        return [TextChunk(index=1, text=normalized)]

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(normalized) if p.strip()]
    if len(paragraphs) > 1:
        pieces = _pack(paragraphs, "\n\n", max_chars)
    else:
        pieces = _pack(split_into_sentences(normalized), " ", max_chars)

    # Nothing above should exceed the limit; re-split anything that does
    validated = []
    for piece in pieces:
        if len(piece) > max_chars:
            validated.extend(split_by_words(piece, max_chars))
        elif piece:
            validated.append(piece)

    return [TextChunk(index=i, text=piece) for i, piece in enumerate(validated, start=1)]

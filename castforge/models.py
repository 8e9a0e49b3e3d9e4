"""
Data models shared across the episode pipeline
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def default_session_id() -> str:
    """Session ids default to the TT-<epoch millis> form."""
    return f"TT-{int(time.time() * 1000)}"


class Session(BaseModel):
    """One run of the pipeline for one transcript"""

    session_id: str = Field(default_factory=default_session_id)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    chunk_count: int = 0


class TextChunk(BaseModel):
    """A bounded, ordered slice of a transcript"""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=1)
    text: str

    @property
    def size(self) -> int:
        return len(self.text)


class SegmentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class AudioSegment(BaseModel):
    """Result of synthesizing one text chunk"""

    index: int
    status: SegmentStatus
    reference: Optional[str] = None
    key: Optional[str] = None
    attempt_count: int = 0
    byte_size: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SegmentStatus.SUCCESS


class MergeNode(BaseModel):
    """An intermediate file produced by one merge round"""

    round: int
    position: int
    path: str


class MergeResult(BaseModel):
    """The single merged main track"""

    key: str
    url: str
    path: str
    source_count: int
    rounds: int = 0


class StageArtifact(BaseModel):
    """Output of one post-production stage"""

    stage_id: str
    path: str
    byte_size: int = 0
    valid: bool = False


class EditResult(BaseModel):
    """Outcome of the post-production pipeline"""

    key: str
    url: str
    byte_size: int
    applied_stages: List[str] = Field(default_factory=list)
    failed_stage: Optional[str] = None
    fell_back: bool = False


class EpisodeResult(BaseModel):
    """Published episode returned by final assembly"""

    session_id: str
    podcast_key: str
    podcast_url: str
    duration: Optional[float] = None
    file_size: int = 0


class SessionInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: str = Field(alias="sessionId")
    date: Optional[str] = None


class EpisodeMetadata(BaseModel):
    """
    Per-episode metadata document.

    Stored as camelCase JSON. Fields this model does not know about are kept,
    so upstream services can add to the document without losing data.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session: SessionInfo
    title: str = "Untitled Episode"
    description: str = ""
    keywords: List[str] = Field(default_factory=list)
    artwork_prompt: str = Field(default="", alias="artworkPrompt")
    episode_number: int = Field(default=1, alias="episodeNumber")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    art_url: Optional[str] = Field(default=None, alias="artUrl")
    transcript_url: Optional[str] = Field(default=None, alias="transcriptUrl")
    podcast_url: Optional[str] = Field(default=None, alias="podcastUrl")
    duration: Optional[float] = None
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    pub_date: Optional[str] = Field(default=None, alias="pubDate")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

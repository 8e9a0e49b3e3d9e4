"""
Configuration settings for the castforge episode pipeline
"""

from functools import lru_cache
from typing import Dict, Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BUCKET_ALIASES = (
    "chunks",
    "merged",
    "edited",
    "podcast",
    "meta",
    "raw_text",
    "art",
    "transcript",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Speech synthesis
    tts_provider: Literal["polly", "elevenlabs"] = "polly"
    aws_region: str = "us-east-1"
    polly_voice_id: str = "Brian"
    polly_engine: str = "neural"
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_voice_id: str = "pNInz6obpgDQGcFmaJgB"
    elevenlabs_model_id: str = "eleven_multilingual_v2"

    max_chunk_chars: int = Field(default=2800, ge=1)
    provider_text_limit: int = Field(default=2800, ge=1)
    tts_concurrency: int = Field(default=3, ge=1)
    max_chunk_retries: int = Field(default=4, ge=1)
    retry_delay_seconds: float = Field(default=1.2, ge=0)
    retry_backoff_multiplier: float = Field(default=2.1, ge=1)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    partial_synthesis_policy: Literal["degrade", "abort"] = "degrade"

    # Cloudflare R2 (S3 compatible)
    r2_endpoint: Optional[str] = None
    r2_region: str = "auto"
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None

    r2_bucket_chunks: Optional[str] = None
    r2_bucket_merged: Optional[str] = None
    r2_bucket_edited: Optional[str] = None
    r2_bucket_podcast: Optional[str] = None
    r2_bucket_meta: Optional[str] = None
    r2_bucket_raw_text: Optional[str] = None
    r2_bucket_art: Optional[str] = None
    r2_bucket_transcript: Optional[str] = None

    r2_public_base_url_chunks: Optional[str] = None
    r2_public_base_url_merged: Optional[str] = None
    r2_public_base_url_edited: Optional[str] = None
    r2_public_base_url_podcast: Optional[str] = None
    r2_public_base_url_meta: Optional[str] = None
    r2_public_base_url_raw_text: Optional[str] = None
    r2_public_base_url_art: Optional[str] = None
    r2_public_base_url_transcript: Optional[str] = None

    # Merge
    merge_batch_size: int = Field(default=2, ge=2)
    merge_cleanup_delay_seconds: float = Field(default=120.0, ge=0)
    download_retries: int = Field(default=3, ge=1)
    download_retry_delay_seconds: float = Field(default=2.0, ge=0)
    download_backoff_multiplier: float = Field(default=2.0, ge=1)

    # Audio tooling
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    ffmpeg_timeout_seconds: float = Field(default=900.0, gt=0)
    audio_sample_rate: int = Field(default=44100, gt=0)
    audio_bitrate: str = "192k"
    fade_seconds: float = Field(default=3.0, gt=0)

    # Assembly
    podcast_intro_url: Optional[str] = None
    podcast_outro_url: Optional[str] = None

    # Runtime
    scratch_dir: str = "/tmp/castforge"
    heartbeat_interval_seconds: float = Field(default=25.0, gt=0)
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None
    cleanup_after_publish: bool = False
    max_concurrent_jobs: int = Field(default=1, ge=1)
    max_pending_jobs: int = Field(default=8, ge=0)

    @model_validator(mode="after")
    def _chunks_fit_provider(self) -> "Settings":
        # Chunks longer than the provider cap would be cut before synthesis
        if self.max_chunk_chars > self.provider_text_limit:
            raise ValueError(
                f"MAX_CHUNK_CHARS ({self.max_chunk_chars}) must not exceed "
                f"PROVIDER_TEXT_LIMIT ({self.provider_text_limit})"
            )
        return self

    def has_r2_credentials(self) -> bool:
        """True when any R2 connection setting is present."""
        return any((self.r2_endpoint, self.r2_access_key_id, self.r2_secret_access_key))

    def buckets(self) -> Dict[str, Optional[str]]:
        """Bucket name for every logical alias."""
        return {alias: getattr(self, f"r2_bucket_{alias}") for alias in BUCKET_ALIASES}

    def public_bases(self) -> Dict[str, Optional[str]]:
        """Public base URL for every logical alias."""
        return {alias: getattr(self, f"r2_public_base_url_{alias}") for alias in BUCKET_ALIASES}


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

"""
Startup validation for the episode pipeline.

Checks credentials, storage layout, the audio toolchain and show assets
before any session starts, so misconfiguration fails fast with a clear
message instead of halfway through a run.
"""

import logging
import shutil
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from ..errors import ConfigurationError
from .settings import Settings

logger = logging.getLogger(__name__)

REQUIRED_ALIASES = ("chunks", "merged", "edited", "podcast", "meta")


class ServiceStatus(Enum):
    AVAILABLE = "available"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


_TAGS = {
    ServiceStatus.AVAILABLE: "OK  ",
    ServiceStatus.DEGRADED: "WARN",
    ServiceStatus.UNAVAILABLE: "FAIL",
}


@dataclass
class ValidationResult:
    """Outcome of one check. ``missing`` names the settings that caused it."""
    service: str
    status: ServiceStatus
    message: str
    required: bool = True
    missing: List[str] = field(default_factory=list)

    @property
    def blocking(self) -> bool:
        return self.required and self.status == ServiceStatus.UNAVAILABLE


@dataclass
class StartupValidation:
    """All check results plus the storage mode sessions will run in."""
    storage_mode: str = "r2"
    results: List[ValidationResult] = field(default_factory=list)

    def add(self, result: ValidationResult) -> None:
        self.results.append(result)

    @property
    def is_valid(self) -> bool:
        return not any(r.blocking for r in self.results)

    @property
    def errors(self) -> List[str]:
        return [f"[{r.service}] {r.message}" for r in self.results if r.blocking]

    @property
    def warnings(self) -> List[str]:
        return [
            f"[{r.service}] {r.message}"
            for r in self.results
            if r.status != ServiceStatus.AVAILABLE and not r.blocking
        ]

    def summary_lines(self) -> List[str]:
        lines = [f"castforge startup checks (storage: {self.storage_mode})"]
        for r in self.results:
            lines.append(f"[{_TAGS[r.status]}] {r.service}: {r.message}")
            if r.missing:
                lines.append(f"       set: {', '.join(r.missing)}")
        if self.storage_mode == "memory":
            lines.append("Objects are kept in memory and discarded when the process exits.")
        lines.append("Ready" if self.is_valid else f"Not ready: {len(self.errors)} blocking problem(s)")
        return lines

    def print_summary(self) -> None:
        print("\n".join(self.summary_lines()))


def validate_object_store(settings: Settings) -> ValidationResult:
    """Validate R2 credentials and the bucket map."""
    missing = [
        name.upper()
        for name in ("r2_endpoint", "r2_access_key_id", "r2_secret_access_key")
        if not getattr(settings, name)
    ]
    if missing:
        return ValidationResult(
            service="Object Store",
            status=ServiceStatus.UNAVAILABLE,
            message=f"Missing environment variables: {', '.join(missing)}",
            missing=missing,
        )

    buckets = settings.buckets()
    bases = settings.public_bases()
    missing_buckets = [f"R2_BUCKET_{a.upper()}" for a in REQUIRED_ALIASES if not buckets.get(a)]
    missing_bases = [f"R2_PUBLIC_BASE_URL_{a.upper()}" for a in REQUIRED_ALIASES if not bases.get(a)]

    if missing_buckets or missing_bases:
        return ValidationResult(
            service="Object Store",
            status=ServiceStatus.UNAVAILABLE,
            message=f"Missing bucket configuration: {', '.join(missing_buckets + missing_bases)}",
            missing=missing_buckets + missing_bases,
        )

    return ValidationResult(
        service="Object Store",
        status=ServiceStatus.AVAILABLE,
        message=f"R2 configured at {settings.r2_endpoint}",
    )


def validate_tts_provider(settings: Settings) -> ValidationResult:
    """Validate credentials for the selected speech provider."""
    if settings.tts_provider == "elevenlabs":
        api_key = settings.elevenlabs_api_key
        if not api_key:
            return ValidationResult(
                service="Speech Provider",
                status=ServiceStatus.UNAVAILABLE,
                message="ELEVENLABS_API_KEY environment variable not set.",
                missing=["ELEVENLABS_API_KEY"],
            )
        if len(api_key) < 20:
            return ValidationResult(
                service="Speech Provider",
                status=ServiceStatus.UNAVAILABLE,
                message="ELEVENLABS_API_KEY appears to be invalid (too short).",
            )
        return ValidationResult(
            service="Speech Provider",
            status=ServiceStatus.AVAILABLE,
            message=f"ElevenLabs configured (voice {settings.elevenlabs_voice_id})",
        )

    try:
        import boto3

        credentials = boto3.session.Session(region_name=settings.aws_region).get_credentials()
    except Exception as e:
        return ValidationResult(
            service="Speech Provider",
            status=ServiceStatus.UNAVAILABLE,
            message=f"Failed to initialize AWS session: {e}",
        )

    if credentials is None:
        return ValidationResult(
            service="Speech Provider",
            status=ServiceStatus.UNAVAILABLE,
            message="AWS credentials not found. Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY.",
        )
    return ValidationResult(
        service="Speech Provider",
        status=ServiceStatus.AVAILABLE,
        message=f"Polly configured in {settings.aws_region} (voice {settings.polly_voice_id})",
    )


def validate_audio_tools(settings: Settings) -> ValidationResult:
    """ffmpeg and ffprobe must be on PATH."""
    missing = [tool for tool in (settings.ffmpeg_path, settings.ffprobe_path) if shutil.which(tool) is None]
    if missing:
        return ValidationResult(
            service="Audio Tools",
            status=ServiceStatus.UNAVAILABLE,
            message=f"Not found on PATH: {', '.join(missing)}",
            missing=missing,
        )
    return ValidationResult(
        service="Audio Tools",
        status=ServiceStatus.AVAILABLE,
        message="ffmpeg and ffprobe available",
    )


def validate_show_assets(settings: Settings) -> ValidationResult:
    """Intro and outro are optional but expected."""
    missing = [
        name for name, value in (
            ("PODCAST_INTRO_URL", settings.podcast_intro_url),
            ("PODCAST_OUTRO_URL", settings.podcast_outro_url),
        ) if not value
    ]
    if missing:
        return ValidationResult(
            service="Show Assets",
            status=ServiceStatus.DEGRADED,
            message=f"{', '.join(missing)} not set. Episodes will be published without them.",
            required=False,
            missing=missing,
        )
    return ValidationResult(
        service="Show Assets",
        status=ServiceStatus.AVAILABLE,
        message="Intro and outro configured",
    )


def run_startup_validation(
    settings: Settings,
    require_object_store: bool = True,
    exit_on_failure: bool = False,
    print_summary: bool = True,
) -> StartupValidation:
    """
    Run complete startup validation.

    Args:
        settings: Settings to check
        require_object_store: Whether R2 is required. It is also required whenever
            any R2 connection setting is present, so a partial setup never
            falls back to the in-memory store.
        exit_on_failure: Exit process if validation fails
        print_summary: Print validation summary
    """
    store_required = require_object_store or settings.has_r2_credentials()
    validation = StartupValidation(storage_mode="r2" if store_required else "memory")

    store_result = validate_object_store(settings)
    store_result.required = store_required
    validation.add(store_result)

    validation.add(validate_tts_provider(settings))
    validation.add(validate_audio_tools(settings))
    validation.add(validate_show_assets(settings))

    if print_summary:
        validation.print_summary()

    if exit_on_failure and not validation.is_valid:
        logger.error("Startup validation failed. Exiting.")
        sys.exit(1)

    return validation


def require_valid(settings: Settings, require_object_store: bool = True) -> StartupValidation:
    """Like run_startup_validation, but raises ConfigurationError instead of exiting."""
    validation = run_startup_validation(
        settings, require_object_store=require_object_store, print_summary=False
    )
    if not validation.is_valid:
        raise ConfigurationError("; ".join(validation.errors))
    return validation

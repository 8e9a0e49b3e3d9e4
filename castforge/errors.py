"""
Exception types for the castforge pipeline.

Every failure raised by a pipeline component derives from PipelineError.
The ``retryable`` flag tells callers whether a bounded retry makes sense.
"""

import re
from enum import Enum
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    retryable: bool = False

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class ConfigurationError(PipelineError):
    """Missing or invalid configuration. Never retried."""


class InvalidTransitionError(PipelineError):
    """Raised when a session is moved to a state it cannot reach."""


class JobQueueFullError(PipelineError):
    """Raised when the job runner backlog is at capacity."""


class SessionBusyError(PipelineError):
    """Raised when a session already has an active job."""


# ============== Storage ==============

class StorageError(PipelineError):
    """Object store operation failed."""

    def __init__(self, message: str, retryable: bool = False, bucket: str = "", key: str = ""):
        super().__init__(message, retryable=retryable)
        self.bucket = bucket
        self.key = key


class ObjectNotFoundError(StorageError):
    """The requested object does not exist."""

    def __init__(self, bucket: str, key: str):
        super().__init__(f"Object not found: {bucket}/{key}", retryable=False, bucket=bucket, key=key)


# ============== Synthesis ==============

class SynthesisErrorKind(str, Enum):
    """Classification of a speech provider failure."""
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    FATAL = "fatal"
    UNKNOWN = "unknown"


_RETRYABLE_KINDS = {SynthesisErrorKind.RATE_LIMITED, SynthesisErrorKind.TIMEOUT}

_RATE_LIMIT_PATTERN = re.compile(
    r"throttl|too\s*many\s*requests|slow\s*down|rate\s*exceeded|rate\s*limit",
    re.IGNORECASE,
)
_TIMEOUT_PATTERN = re.compile(r"timed?\s*out|timeout", re.IGNORECASE)


class SynthesisError(PipelineError):
    """A speech provider call failed."""

    def __init__(self, message: str, kind: SynthesisErrorKind = SynthesisErrorKind.UNKNOWN):
        super().__init__(message, retryable=kind in _RETRYABLE_KINDS)
        self.kind = kind

    def __repr__(self) -> str:
        return f"SynthesisError(kind={self.kind.value}, message={str(self)!r})"


def classify_error_message(message: str) -> SynthesisErrorKind:
    """
    Map a free-form provider error message onto a SynthesisErrorKind.

    Only used at the provider boundary, where SDKs report throttling as text.
    """
    if not message:
        return SynthesisErrorKind.UNKNOWN
    if _RATE_LIMIT_PATTERN.search(message):
        return SynthesisErrorKind.RATE_LIMITED
    if _TIMEOUT_PATTERN.search(message):
        return SynthesisErrorKind.TIMEOUT
    return SynthesisErrorKind.UNKNOWN


# ============== Audio ==============

class AudioToolError(PipelineError):
    """The external audio tool exited non-zero, timed out, or produced nothing."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "", timed_out: bool = False):
        super().__init__(message, retryable=timed_out)
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out


class MergeError(PipelineError):
    """Recursive merge could not produce a single artifact."""


class StageError(PipelineError):
    """A post-production stage failed."""

    def __init__(self, message: str, stage_id: str = ""):
        super().__init__(message)
        self.stage_id = stage_id


class AssemblyError(PipelineError):
    """Final episode assembly failed."""

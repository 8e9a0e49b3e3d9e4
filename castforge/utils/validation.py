"""
Input validation and path safety for session-scoped files and keys.
"""

import logging
import re
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


class PathTraversalError(Exception):
    """Raised when a path would escape its base directory."""
    pass


def validate_session_id(session_id: str) -> str:
    """
    Validate a session ID before it is used in file names or storage keys.

    Session IDs look like ``TT-1712345678901`` but any short id made of
    letters, digits, hyphens and underscores is accepted.

    Raises:
        ValueError: If the session ID is empty or has unsafe characters
    """
    if not session_id:
        raise ValueError("Session ID cannot be empty")

    if not SESSION_ID_PATTERN.match(session_id):
        logger.warning(f"Invalid session ID format: {session_id!r}")
        raise ValueError(f"Invalid session ID format: {session_id!r}")

    return session_id


def safe_path_join(base_dir: Union[str, Path], *parts: str) -> Path:
    """
    Safely join path components, preventing traversal outside base_dir.

    Raises:
        PathTraversalError: If the result would be outside base_dir
    """
    base = Path(base_dir).resolve()

    for part in parts:
        if ".." in part or part.startswith("/") or part.startswith("\\"):
            raise PathTraversalError(f"Invalid path component: {part}")

    result = base.joinpath(*parts).resolve()

    try:
        result.relative_to(base)
    except ValueError:
        logger.warning(f"Path traversal attempt: {result} not under {base}")
        raise PathTraversalError(f"Path traversal detected: {result}")

    return result

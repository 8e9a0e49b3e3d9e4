"""Scratch file helpers."""

import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def verify_file_ready(path: PathLike) -> bool:
    """An artifact is trusted only once it exists and is non-empty."""
    try:
        return Path(path).stat().st_size > 0
    except OSError:
        return False


def file_size(path: PathLike) -> int:
    try:
        return Path(path).stat().st_size
    except OSError:
        return 0


def safe_unlink(path: PathLike) -> bool:
    """Delete a file if present. Returns True when something was removed."""
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not delete {path}: {e}")
        return False

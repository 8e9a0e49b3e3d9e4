"""Configuration and startup checks"""
from .settings import BUCKET_ALIASES, Settings, get_settings

__all__ = ["BUCKET_ALIASES", "Settings", "get_settings"]

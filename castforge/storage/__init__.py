"""Durable object storage"""
from .object_store import InMemoryObjectStore, ObjectStore, R2ObjectStore, create_object_store
from .cleanup import cleanup_session, final_cleanup_session

__all__ = [
    "ObjectStore",
    "InMemoryObjectStore",
    "R2ObjectStore",
    "create_object_store",
    "cleanup_session",
    "final_cleanup_session",
]

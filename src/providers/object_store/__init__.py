"""Object store implementations."""

from src.providers.object_store.local_object_store import LocalObjectStore

__all__ = ["LocalObjectStore"]

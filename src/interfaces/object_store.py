"""Abstract base class for raw-file object storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: LocalObjectStore
# Located in: src/providers/object_store/
class IObjectStore(ABC):
    """Contract for storing and fetching uploaded file bytes."""

    @abstractmethod
    async def put_object(self, key: str, data: bytes) -> str:
        """Store *data* under *key* and return the storage key to persist."""

    @abstractmethod
    async def get_object(self, storage_key: str) -> bytes:
        """Return the bytes stored under *storage_key*.

        Raises
        ------
        src.utils.errors.NotFoundError
            If nothing is stored under the key.
        """

    @abstractmethod
    async def delete_object(self, storage_key: str) -> None:
        """Remove the object.  Missing keys are ignored."""

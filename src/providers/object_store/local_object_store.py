"""Filesystem-backed object store.

Stores uploaded file bytes under ``OBJECT_STORE_DIR``.  Keys are relative
paths (``<classroom>/<uuid>-<filename>``); anything that would escape the
root directory is rejected.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from src.interfaces.object_store import IObjectStore
from src.utils.errors import InvalidRequestError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)


class LocalObjectStore(IObjectStore):
    """Object store rooted at a local directory."""

    def __init__(self, root: str | Path = "data/objects") -> None:
        self._root = Path(root).resolve()

    async def put_object(self, key: str, data: bytes) -> str:
        path = self._resolve(key)
        await asyncio.to_thread(self._write, path, data)
        logger.info("object_stored", key=key, size_bytes=len(data))
        return key

    async def get_object(self, storage_key: str) -> bytes:
        path = self._resolve(storage_key)
        if not path.is_file():
            raise NotFoundError(message=f"No object stored under {storage_key}", provider_name="local")
        return await asyncio.to_thread(path.read_bytes)

    async def delete_object(self, storage_key: str) -> None:
        path = self._resolve(storage_key)
        await asyncio.to_thread(path.unlink, True)

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise InvalidRequestError(message=f"Invalid storage key: {key}", provider_name="local")
        return path

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

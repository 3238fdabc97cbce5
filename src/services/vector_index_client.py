"""Vector Index Client -- namespacing, retries, and timeouts around a vector index.

Callers address vectors by classroom id; this client maps that onto the
configured namespace prefix (``<prefix>-<classroom_id>``) so no service
ever builds a namespace string by hand.  Every call is retried with the
shared backoff policy and failures surface as :class:`VectorIndexError`.
"""

from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

import structlog

from src.interfaces.vector_store_provider import IVectorIndexProvider
from src.models.rag import VectorEntry, VectorMatch
from src.utils.errors import StudyRAGError, VectorIndexError
from src.utils.retry import call_with_retry

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

_UPSERT_BATCH = 500


class VectorIndexClient:
    """Classroom-scoped upsert/query/delete with bounded retries."""

    def __init__(
        self,
        provider: IVectorIndexProvider,
        *,
        namespace_prefix: str = "classroom",
        attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float = 30.0,
    ) -> None:
        self._provider = provider
        self._prefix = namespace_prefix
        self._attempts = attempts
        self._base_delay = base_delay
        self._timeout = timeout

    def namespace(self, classroom_id: str) -> str:
        return f"{self._prefix}-{classroom_id}"

    async def upsert(self, classroom_id: str, entries: list[VectorEntry]) -> None:
        """Upsert *entries* in batches; a failed batch raises and later batches are not sent."""
        ns = self.namespace(classroom_id)
        for offset in range(0, len(entries), _UPSERT_BATCH):
            batch = entries[offset : offset + _UPSERT_BATCH]
            await self._call("upsert", lambda batch=batch: self._provider.upsert(ns, batch))

    async def query(
        self,
        classroom_id: str,
        vector: list[float],
        top_k: int,
        document_ids: list[str] | None = None,
    ) -> list[VectorMatch]:
        ns = self.namespace(classroom_id)
        return await self._call(
            "query",
            lambda: self._provider.query(ns, vector, top_k, document_ids),
        )

    async def delete(self, classroom_id: str, ids: list[str]) -> None:
        if not ids:
            return
        ns = self.namespace(classroom_id)
        await self._call("delete", lambda: self._provider.delete(ns, ids))

    async def delete_document(self, classroom_id: str, document_id: str) -> None:
        ns = self.namespace(classroom_id)
        await self._call("delete_document", lambda: self._provider.delete_document(ns, document_id))

    async def list_ids(self, classroom_id: str, document_id: str) -> list[str]:
        ns = self.namespace(classroom_id)
        return await self._call("list_ids", lambda: self._provider.list_ids(ns, document_id))

    async def _call(self, operation: str, fn: Callable[[], Awaitable[_T]]) -> _T:
        try:
            return await call_with_retry(
                fn,
                attempts=self._attempts,
                base_delay=self._base_delay,
                timeout=self._timeout,
                label=f"vector_{operation}",
            )
        except VectorIndexError:
            raise
        except StudyRAGError as exc:
            logger.error("vector_index_failed", operation=operation, error=str(exc))
            raise VectorIndexError(
                message=f"Vector index {operation} failed: {exc.message}",
                provider_name=exc.provider_name or self._provider.get_provider_name(),
            ) from exc

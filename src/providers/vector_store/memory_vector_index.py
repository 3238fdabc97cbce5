"""In-memory vector index using numpy cosine similarity.

Same contract as :class:`ChromaDBVectorIndex`: one partition per namespace,
upsert keyed by id, queries optionally narrowed to a document list.  Vectors
are normalised on insert so a query is a single matrix-vector product.

Used for local development (``VECTOR_INDEX_BACKEND=memory``) and tests.
Nothing is persisted across restarts.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import structlog

from src.interfaces.vector_store_provider import IVectorIndexProvider
from src.models.rag import VectorEntry, VectorMatch
from src.utils.errors import VectorIndexError

logger = structlog.get_logger(logger_name=__name__)


class InMemoryVectorIndex(IVectorIndexProvider):
    """Namespace -> {id: (unit vector, metadata)} held in process memory."""

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, tuple[np.ndarray, dict[str, Any]]]] = {}

    async def upsert(self, namespace: str, entries: list[VectorEntry]) -> None:
        store = self._namespaces.setdefault(namespace, {})
        for entry in entries:
            vec = np.asarray(entry.vector, dtype=np.float32)
            if store:
                existing_dim = next(iter(store.values()))[0].shape[0]
                if vec.shape[0] != existing_dim:
                    raise VectorIndexError(
                        message=f"Dimension mismatch: {vec.shape[0]} != {existing_dim}",
                        provider_name=self.get_provider_name(),
                    )
            norm = float(np.linalg.norm(vec))
            store[entry.id] = (vec / norm if norm > 0 else vec, dict(entry.metadata))

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        document_ids: list[str] | None = None,
    ) -> list[VectorMatch]:
        store = self._namespaces.get(namespace, {})
        allowed = set(document_ids) if document_ids is not None else None
        candidates = [
            (entry_id, vec, meta)
            for entry_id, (vec, meta) in store.items()
            if allowed is None or meta.get("document_id") in allowed
        ]
        if not candidates or top_k <= 0:
            return []

        query_vec = np.asarray(vector, dtype=np.float32)
        norm = float(np.linalg.norm(query_vec))
        if norm > 0:
            query_vec = query_vec / norm

        matrix = np.stack([vec for _, vec, _ in candidates])
        scores = np.clip(matrix @ query_vec, 0.0, 1.0)
        order = np.argsort(-scores, kind="stable")[:top_k]

        return [
            VectorMatch(
                id=candidates[i][0],
                score=float(scores[i]),
                metadata=dict(candidates[i][2]),
            )
            for i in order
        ]

    async def delete(self, namespace: str, ids: list[str]) -> None:
        store = self._namespaces.get(namespace, {})
        for entry_id in ids:
            store.pop(entry_id, None)

    async def delete_document(self, namespace: str, document_id: str) -> None:
        store = self._namespaces.get(namespace, {})
        doomed = [i for i, (_, meta) in store.items() if meta.get("document_id") == document_id]
        for entry_id in doomed:
            del store[entry_id]

    async def list_ids(self, namespace: str, document_id: str) -> list[str]:
        store = self._namespaces.get(namespace, {})
        return [i for i, (_, meta) in store.items() if meta.get("document_id") == document_id]

    def count(self, namespace: str | None = None) -> int:
        if namespace is not None:
            return len(self._namespaces.get(namespace, {}))
        return sum(len(store) for store in self._namespaces.values())

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True

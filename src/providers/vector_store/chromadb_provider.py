"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndexProvider`.
Each namespace (one per classroom) is its own collection using cosine
distance, so a query physically cannot reach another classroom's vectors.
Within a collection every entry carries ``document_id`` metadata and queries
narrow to an explicit document list with a ``$in`` filter.

ChromaDB's client is synchronous; calls run in a worker thread so the
per-attempt timeouts applied by the Vector Index Client can fire.
"""

from __future__ import annotations

import asyncio
import os
import re
from typing import Any

# ChromaDB ships PostHog telemetry; a version mismatch between its bundled
# client and the installed posthog raises on every capture() call.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.vector_store_provider import IVectorIndexProvider
from src.models.rag import VectorEntry, VectorMatch
from src.utils.errors import VectorIndexError

logger = structlog.get_logger(logger_name=__name__)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_MAX_NAME_LENGTH = 63


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Stops ChromaDB from loading its default ONNX model.

    Every vector is computed by the Embedding Client and passed in
    explicitly, so ChromaDB's built-in embedding is never invoked.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("Vectors are pre-computed; ChromaDB embedding must not run.")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBVectorIndex(IVectorIndexProvider):
    """Vector index backed by ChromaDB with local persistence."""

    def __init__(self, persist_directory: str = "./data/chromadb") -> None:
        self._persist_directory = persist_directory
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collections: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # IVectorIndexProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, namespace: str, entries: list[VectorEntry]) -> None:
        if not entries:
            return

        def _upsert() -> None:
            collection = self._collection(namespace)
            collection.upsert(
                ids=[e.id for e in entries],
                embeddings=[e.vector for e in entries],
                metadatas=[self._clean_metadata(e.metadata) for e in entries],
            )

        await self._run("upsert", _upsert)
        logger.info("chromadb_upsert", namespace=namespace, count=len(entries))

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        document_ids: list[str] | None = None,
    ) -> list[VectorMatch]:
        if document_ids is not None and not document_ids:
            return []

        def _query() -> list[VectorMatch]:
            collection = self._collection(namespace)
            available = collection.count()
            if available == 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": min(top_k, available),
                "include": ["metadatas", "distances"],
            }
            if document_ids is not None:
                kwargs["where"] = {"document_id": {"$in": list(document_ids)}}

            results = collection.query(**kwargs)
            ids = results["ids"][0] if results["ids"] else []
            metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(ids)
            distances = results["distances"][0] if results["distances"] else [1.0] * len(ids)

            matches = [
                VectorMatch(
                    id=entry_id,
                    score=max(0.0, min(1.0, 1.0 - distance)),
                    metadata=dict(meta or {}),
                )
                for entry_id, meta, distance in zip(ids, metadatas, distances, strict=True)
            ]
            matches.sort(key=lambda m: m.score, reverse=True)
            return matches

        matches = await self._run("query", _query)
        logger.info(
            "chromadb_query",
            namespace=namespace,
            filtered=document_ids is not None,
            results_count=len(matches),
            top_score=matches[0].score if matches else 0.0,
        )
        return matches

    async def delete(self, namespace: str, ids: list[str]) -> None:
        if not ids:
            return
        await self._run("delete", lambda: self._collection(namespace).delete(ids=list(ids)))
        logger.info("chromadb_delete", namespace=namespace, count=len(ids))

    async def delete_document(self, namespace: str, document_id: str) -> None:
        await self._run(
            "delete_document",
            lambda: self._collection(namespace).delete(where={"document_id": document_id}),
        )
        logger.info("chromadb_delete_document", namespace=namespace, document_id=document_id)

    async def list_ids(self, namespace: str, document_id: str) -> list[str]:
        def _list() -> list[str]:
            page = self._collection(namespace).get(where={"document_id": document_id}, include=[])
            return list(page["ids"] or [])

        return await self._run("list_ids", _list)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:  # noqa: BLE001
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _collection(self, namespace: str) -> Any:
        name = self._collection_name(namespace)
        collection = self._collections.get(name)
        if collection is None:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
            self._collections[name] = collection
        return collection

    @staticmethod
    def _collection_name(namespace: str) -> str:
        name = _INVALID_NAME_CHARS.sub("-", namespace).strip("-._")
        if len(name) < 3:
            name = f"ns-{name}"
        return name[:_MAX_NAME_LENGTH]

    @staticmethod
    def _clean_metadata(metadata: dict[str, Any]) -> dict[str, str | int | float | bool]:
        """Drop ``None`` values; ChromaDB metadata must be str, int, float, or bool."""
        return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool))}

    async def _run(self, operation: str, fn: Any) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except VectorIndexError:
            raise
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB {operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

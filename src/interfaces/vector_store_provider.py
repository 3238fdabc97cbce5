"""Abstract base class for vector index providers.

Vectors are partitioned by **namespace** -- one namespace per classroom --
and every entry carries ``document_id`` metadata.  A query is always issued
against a single namespace and may be narrowed further to a set of document
ids, so a caller can never see passages from another classroom.

Upsert is keyed by entry id.  Re-indexing a document with the same chunk
ids overwrites the previous vectors instead of duplicating them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import VectorEntry, VectorMatch


# Concrete implementations:
#   ChromaDBVectorIndex   -- persistent ChromaDB, one collection per namespace
#   InMemoryVectorIndex   -- numpy cosine search (dev/tests)
# Located in: src/providers/vector_store/
class IVectorIndexProvider(ABC):
    """Contract for the nearest-neighbour index behind retrieval."""

    @abstractmethod
    async def upsert(self, namespace: str, entries: list[VectorEntry]) -> None:
        """Insert or overwrite *entries* in *namespace*.

        Raises
        ------
        src.utils.errors.ProviderUnavailableError
            Transient backend failure.
        src.utils.errors.VectorIndexError
            Non-transient failure (dimension mismatch, corrupt store).
        """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        document_ids: list[str] | None = None,
    ) -> list[VectorMatch]:
        """Return up to *top_k* nearest entries, best first.

        Parameters
        ----------
        namespace:
            The classroom namespace to search.
        vector:
            Query embedding.
        top_k:
            Maximum number of matches.
        document_ids:
            When given, only entries whose ``document_id`` metadata is in
            this list may be returned.  An empty list matches nothing.

        Returns
        -------
        list[VectorMatch]
            Matches sorted by descending cosine similarity (0..1).
        """

    @abstractmethod
    async def delete(self, namespace: str, ids: list[str]) -> None:
        """Delete entries by id.  Unknown ids are ignored."""

    @abstractmethod
    async def delete_document(self, namespace: str, document_id: str) -> None:
        """Delete every entry whose ``document_id`` metadata matches."""

    @abstractmethod
    async def list_ids(self, namespace: str, document_id: str) -> list[str]:
        """Return the ids currently stored for *document_id*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the backend is initialised and usable."""

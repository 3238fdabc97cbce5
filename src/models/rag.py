"""RAG pipeline data models: passages, vector entries, and retrieval results.

Flow for junior developers:

    1. CHUNKING: extracted text is split into :class:`Passage` objects --
       exact slices of the text with their character offsets.
    2. EMBEDDING + INDEXING: each passage becomes a :class:`VectorEntry`
       (id, vector, metadata) upserted into the classroom's namespace.
    3. RETRIEVAL: a query vector returns ranked :class:`VectorMatch` rows,
       which the Retrieval Assembler joins back to chunk rows as
       :class:`RetrievedChunk` and wraps in a :class:`RetrievalResult`.

RetrievalResult is ephemeral -- it is never persisted.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Passage(BaseModel):
    """A contiguous slice ``text[start:end]`` of the chunker's input."""

    model_config = ConfigDict(frozen=True)

    ordinal: int = Field(ge=0)
    text: str
    start: int = Field(ge=0)
    end: int = Field(ge=0)


class VectorEntry(BaseModel):
    """One vector to upsert, keyed by chunk id."""

    model_config = ConfigDict(frozen=True)

    id: str
    vector: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class VectorMatch(BaseModel):
    """One nearest-neighbour hit.  ``score`` is cosine similarity in 0..1."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievalScope(BaseModel):
    """Which documents a query may see.

    An empty ``document_ids`` means every READY document in the classroom.
    """

    model_config = ConfigDict(frozen=True)

    classroom_id: str
    document_ids: tuple[str, ...] = ()

    @property
    def is_classroom_wide(self) -> bool:
        return not self.document_ids


class RetrievedChunk(BaseModel):
    """A retrieved passage joined with its document for citation."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    filename: str
    ordinal: int = Field(ge=0)
    text: str
    score: float = Field(ge=0.0, le=1.0)
    page: int | None = None


class RetrievalResult(BaseModel):
    """Ranked passages for a single query plus the grounding decision."""

    model_config = ConfigDict(frozen=True)

    query: str
    chunks: list[RetrievedChunk] = Field(default_factory=list)
    has_relevant_context: bool = False
    searched_document_ids: list[str] = Field(
        default_factory=list,
        description="READY documents the query was allowed to search.",
    )

    @property
    def top_score(self) -> float:
        return self.chunks[0].score if self.chunks else 0.0

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def relevant_document_ids(self) -> list[str]:
        seen: list[str] = []
        for chunk in self.chunks:
            if chunk.document_id not in seen:
                seen.append(chunk.document_id)
        return seen


class IngestionReport(BaseModel):
    """Summary of one ingestion or rebuild run, returned to operators."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: str
    chunk_count: int = 0
    extractor: str | None = None
    weighted_tokens: int = 0
    elapsed_seconds: float = 0.0
    failure_reason: str | None = None

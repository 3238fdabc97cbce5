"""Retrieval Assembler -- turns a question into ranked, scoped passages.

Scope resolution happens before any external call:

* an explicit list of document ids is intersected with the classroom's
  READY documents;
* an empty list means every READY document in the classroom (documents
  still PENDING or PROCESSING are skipped silently).

If nothing is left the assembler returns an empty result without touching
the embedding service or the vector index.  Otherwise the query is embedded
once, the classroom namespace is queried with an explicit ``document_id``
filter, and every match is checked against the allowed set again before it
is joined back to its chunk row.  A match outside the scope is dropped and
logged; it is never returned.

The grounding decision compares scores against the configured relevance
threshold, so it can be retuned per embedding model without code changes.
"""

from __future__ import annotations

import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.models.document import DocumentStatus
from src.models.rag import RetrievalResult, RetrievalScope, RetrievedChunk
from src.services.embedding_client import EmbeddingClient
from src.services.vector_index_client import VectorIndexClient
from src.utils.errors import NotFoundError

logger = structlog.get_logger(logger_name=__name__)


class RetrievalAssembler:
    """Embeds a query and returns the top passages within a scope.

    Parameters
    ----------
    store:
        Metadata store for document status and chunk rows.
    embedder:
        Embedding client used for the query vector.
    vectors:
        Classroom-scoped vector index client.
    relevance_threshold:
        Minimum cosine score for a passage to count as relevant.
    min_relevant_passages:
        How many passages must clear the threshold for the result to be
        considered grounded.
    default_top_k:
        Passages returned when the caller does not ask for a number.
    """

    def __init__(
        self,
        store: IMetadataStore,
        embedder: EmbeddingClient,
        vectors: VectorIndexClient,
        *,
        relevance_threshold: float = 0.4,
        min_relevant_passages: int = 1,
        default_top_k: int = 5,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._vectors = vectors
        self._threshold = relevance_threshold
        self._min_relevant = max(1, min_relevant_passages)
        self._default_top_k = default_top_k

    @property
    def relevance_threshold(self) -> float:
        return self._threshold

    async def retrieve(
        self,
        query: str,
        scope: RetrievalScope,
        top_k: int | None = None,
    ) -> RetrievalResult:
        """Return up to *top_k* passages from READY documents in *scope*.

        Raises
        ------
        NotFoundError
            If the classroom does not exist.
        EmbeddingError
            If the query cannot be embedded.
        VectorIndexError
            If the index query fails.
        """
        k = top_k or self._default_top_k

        classroom = await self._store.get_classroom(scope.classroom_id)
        if classroom is None:
            raise NotFoundError(message=f"Classroom {scope.classroom_id} not found")

        ready = await self._store.list_documents(scope.classroom_id, status=DocumentStatus.READY)
        filenames = {doc.id: doc.filename for doc in ready}
        if scope.is_classroom_wide:
            allowed = list(filenames)
        else:
            allowed = [doc_id for doc_id in dict.fromkeys(scope.document_ids) if doc_id in filenames]

        if not allowed:
            logger.info(
                "retrieval_short_circuit",
                classroom_id=scope.classroom_id,
                requested=len(scope.document_ids),
            )
            return RetrievalResult(query=query)

        query_vector = await self._embedder.embed_query(query)
        matches = await self._vectors.query(scope.classroom_id, query_vector, k, document_ids=allowed)

        allowed_set = set(allowed)
        in_scope = []
        for match in matches:
            if match.metadata.get("document_id") in allowed_set:
                in_scope.append(match)
            else:
                logger.error(
                    "retrieval_out_of_scope_match",
                    classroom_id=scope.classroom_id,
                    vector_id=match.id,
                )

        rows = {chunk.id: chunk for chunk in await self._store.get_chunks([m.id for m in in_scope])}

        chunks: list[RetrievedChunk] = []
        for match in in_scope:
            row = rows.get(match.id)
            if row is None or row.document_id not in allowed_set:
                # Vector without a committed chunk row (e.g. mid-compensation).
                continue
            chunks.append(
                RetrievedChunk(
                    chunk_id=row.id,
                    document_id=row.document_id,
                    filename=filenames[row.document_id],
                    ordinal=row.ordinal,
                    text=row.text,
                    score=min(1.0, max(0.0, match.score)),
                    page=row.page,
                )
            )
        chunks.sort(key=lambda c: c.score, reverse=True)
        chunks = chunks[:k]

        relevant = sum(1 for c in chunks if c.score >= self._threshold)
        has_relevant = relevant >= self._min_relevant

        logger.info(
            "retrieval_complete",
            classroom_id=scope.classroom_id,
            searched_documents=len(allowed),
            passages=len(chunks),
            top_score=round(chunks[0].score, 4) if chunks else 0.0,
            has_relevant_context=has_relevant,
        )
        return RetrievalResult(
            query=query,
            chunks=chunks,
            has_relevant_context=has_relevant,
            searched_document_ids=allowed,
        )

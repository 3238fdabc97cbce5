"""Orchestrator for the document ingestion state machine.

Pipeline stages: **extract -> chunk -> embed -> index -> commit**.

The :class:`IngestionService` implements the **Orchestrator pattern**: it
coordinates the extraction selector, chunker, embedding client, vector
index client and metadata store without any of them knowing about each
other.  It owns the document's status transitions:

    PENDING --claim--> PROCESSING --commit--> READY
                                  \\--fail---> FAILED

The claim is a compare-and-swap on the metadata store, held under a
per-document lock, so exactly one run ever drives a document to a terminal
state.  READY is only reached through
:meth:`~src.interfaces.metadata_store.IMetadataStore.complete_ingestion`,
which writes the chunk rows and the status in one transaction.  Any failure
after the claim deletes whatever vectors the run may have written and then
records FAILED with the reason, so a document never ends with partial chunks
or partial vectors.

Chunk ids are derived from (document id, ordinal).  Re-indexing the same
document therefore overwrites its vectors instead of duplicating them.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING

import structlog

from src.models.document import Chunk, Document, DocumentStatus, ExtractedText
from src.models.rag import IngestionReport, VectorEntry
from src.services.ingestion.chunker import TextChunker
from src.utils.concurrency import KeyedLocks
from src.utils.errors import DocumentStateError, ExtractionError, NotFoundError, StudyRAGError

if TYPE_CHECKING:
    from src.interfaces.metadata_store import IMetadataStore
    from src.interfaces.object_store import IObjectStore
    from src.interfaces.tier_provider import ITierProvider
    from src.services.embedding_client import EmbeddingClient
    from src.services.extraction_selector import ExtractionSelector
    from src.services.vector_index_client import VectorIndexClient

logger = structlog.get_logger(logger_name=__name__)

_CHUNK_NAMESPACE = uuid.UUID("6f1c6f3e-8d7a-4c55-9a53-2b0f3f7d9e41")


def chunk_id_for(document_id: str, ordinal: int) -> str:
    """Deterministic chunk (and vector) id for a document's *ordinal*-th passage."""
    return str(uuid.uuid5(_CHUNK_NAMESPACE, f"{document_id}:{ordinal}"))


class IngestionService:
    """Drives one document from PENDING to READY or FAILED.

    Parameters
    ----------
    store:
        Metadata store holding documents, chunks and status.
    objects:
        Object store holding the raw upload bytes.
    tiers:
        Account tier lookup, used to pick the extractor route.
    selector:
        Primary/fallback extraction policy.
    chunker:
        Splits extracted text into overlapping passages.
    embedder:
        Batched embedding client.
    vectors:
        Classroom-scoped vector index client.
    locks:
        Per-document lock registry.  Shared with any other component that
        must not overlap an ingestion of the same document.
    """

    def __init__(
        self,
        store: IMetadataStore,
        objects: IObjectStore,
        tiers: ITierProvider,
        selector: ExtractionSelector,
        chunker: TextChunker,
        embedder: EmbeddingClient,
        vectors: VectorIndexClient,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._store = store
        self._objects = objects
        self._tiers = tiers
        self._selector = selector
        self._chunker = chunker
        self._embedder = embedder
        self._vectors = vectors
        self._locks = locks or KeyedLocks()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, document_id: str) -> IngestionReport:
        """Claim a PENDING document and run the full pipeline.

        Ingestion failures are recorded on the document (FAILED + reason)
        and reported, not raised.  If another run already claimed the
        document this call does nothing and reports the current status.

        Raises
        ------
        NotFoundError
            If the document or its classroom does not exist.
        """
        start = time.monotonic()

        async with self._locks.hold(document_id):
            document = await self._require_document(document_id)
            claimed = await self._store.transition_status(
                document_id, DocumentStatus.PENDING, DocumentStatus.PROCESSING
            )
            if not claimed:
                current = await self._require_document(document_id)
                logger.warning(
                    "ingestion_claim_lost",
                    document_id=document_id,
                    status=current.status.value,
                )
                return IngestionReport(
                    document_id=document_id,
                    status=current.status.value,
                    extractor=current.extractor_used,
                    failure_reason=current.failure_reason,
                )

            logger.info(
                "ingestion_claimed",
                document_id=document_id,
                classroom_id=document.classroom_id,
                mime_type=document.mime_type,
                size_bytes=document.size_bytes,
            )

            try:
                extracted, chunks, entries = await self._prepare(document)
                await self._vectors.upsert(document.classroom_id, entries)
                await self._store.complete_ingestion(document_id, chunks, extracted.extractor)
            except asyncio.CancelledError:
                await asyncio.shield(self._fail(document, "Ingestion cancelled"))
                raise
            except StudyRAGError as exc:
                reason = exc.message
                await self._fail(document, reason)
                return self._report(document_id, DocumentStatus.FAILED, start, failure_reason=reason)
            except Exception as exc:
                logger.exception("ingestion_unexpected_error", document_id=document_id)
                reason = f"Unexpected error: {type(exc).__name__}"
                await self._fail(document, reason)
                return self._report(document_id, DocumentStatus.FAILED, start, failure_reason=reason)

        report = self._report(
            document_id,
            DocumentStatus.READY,
            start,
            chunk_count=len(chunks),
            extractor=extracted.extractor,
            weighted_tokens=extracted.weighted_tokens,
        )
        logger.info(
            "ingestion_complete",
            document_id=document_id,
            chunks=report.chunk_count,
            extractor=report.extractor,
            elapsed_s=report.elapsed_seconds,
        )
        return report

    async def rebuild(self, document_id: str) -> IngestionReport:
        """Re-extract, re-chunk and re-index a READY document in place.

        Vectors are upserted first (same ids overwrite), then the chunk rows
        are swapped in one transaction, then vectors the new run no longer
        produces are deleted.  The document stays READY throughout.
        If the upsert or the swap fails, the index is put back to match the
        chunk rows that are still in place.

        Raises
        ------
        NotFoundError
            If the document does not exist.
        DocumentStateError
            If the document is not READY.
        """
        start = time.monotonic()

        async with self._locks.hold(document_id):
            document = await self._require_document(document_id)
            if document.status is not DocumentStatus.READY:
                raise DocumentStateError(
                    message=f"Only READY documents can be rebuilt (status is {document.status.value})",
                )

            extracted, chunks, entries = await self._prepare(document)
            current = await self._store.list_chunks(document_id)
            try:
                await self._vectors.upsert(document.classroom_id, entries)
                previous = await self._store.replace_chunks(document_id, chunks)
            except BaseException:
                await asyncio.shield(self._restore_vectors(document, current, entries))
                raise

            keep = {chunk.vector_id for chunk in chunks}
            indexed = await self._vectors.list_ids(document.classroom_id, document_id)
            stale = sorted(set(indexed) - keep)
            await self._vectors.delete(document.classroom_id, stale)

        logger.info(
            "rebuild_complete",
            document_id=document_id,
            previous_chunks=len(previous),
            chunks=len(chunks),
            stale_vectors_removed=len(stale),
        )
        return self._report(
            document_id,
            DocumentStatus.READY,
            start,
            chunk_count=len(chunks),
            extractor=extracted.extractor,
            weighted_tokens=extracted.weighted_tokens,
        )

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _prepare(
        self, document: Document
    ) -> tuple[ExtractedText, list[Chunk], list[VectorEntry]]:
        """Extract, chunk and embed; nothing is written anywhere yet."""
        classroom = await self._store.get_classroom(document.classroom_id)
        if classroom is None:
            raise NotFoundError(message=f"Classroom {document.classroom_id} not found")

        data = await self._objects.get_object(document.storage_key)
        tier = await self._tiers.get_tier(classroom.account_id)

        extracted = await self._selector.select_and_extract(
            document, data, tier, account_id=classroom.account_id
        )
        if not extracted.text.strip():
            raise ExtractionError(message="Extraction produced no text")

        passages = self._chunker.split(extracted.text)
        if not passages:
            raise ExtractionError(message="Extracted text produced no passages")

        vectors = await self._embedder.embed([p.text for p in passages])

        chunks: list[Chunk] = []
        entries: list[VectorEntry] = []
        for passage, vector in zip(passages, vectors):
            chunk_id = chunk_id_for(document.id, passage.ordinal)
            page = extracted.page_for_offset(passage.start)
            chunks.append(
                Chunk(
                    id=chunk_id,
                    document_id=document.id,
                    ordinal=passage.ordinal,
                    text=passage.text,
                    vector_id=chunk_id,
                    page=page,
                    start_offset=passage.start,
                    end_offset=passage.end,
                )
            )
            entries.append(
                VectorEntry(
                    id=chunk_id,
                    vector=vector,
                    metadata=self._vector_metadata(document, passage.ordinal, page),
                )
            )

        logger.debug(
            "ingestion_prepared",
            document_id=document.id,
            passages=len(passages),
            extractor=extracted.extractor,
        )
        return extracted, chunks, entries

    async def _restore_vectors(
        self, document: Document, current: list[Chunk], attempted: list[VectorEntry]
    ) -> None:
        """Undo a failed rebuild: drop new-run vectors, re-index the kept chunks."""
        kept = {chunk.vector_id for chunk in current}
        orphans = sorted({entry.id for entry in attempted} - kept)
        try:
            await self._vectors.delete(document.classroom_id, orphans)
            if current:
                vectors = await self._embedder.embed([chunk.text for chunk in current])
                await self._vectors.upsert(
                    document.classroom_id,
                    [
                        VectorEntry(
                            id=chunk.vector_id,
                            vector=vector,
                            metadata=self._vector_metadata(document, chunk.ordinal, chunk.page),
                        )
                        for chunk, vector in zip(current, vectors)
                    ],
                )
        except StudyRAGError as exc:
            logger.error(
                "rebuild_compensation_failed",
                document_id=document.id,
                error=str(exc),
            )
            return
        logger.warning(
            "rebuild_rolled_back",
            document_id=document.id,
            orphans_removed=len(orphans),
            chunks_restored=len(current),
        )

    async def _fail(self, document: Document, reason: str) -> None:
        """Compensate partial vector writes, then record FAILED."""
        try:
            await self._vectors.delete_document(document.classroom_id, document.id)
        except StudyRAGError as exc:
            logger.error(
                "ingestion_compensation_failed",
                document_id=document.id,
                error=str(exc),
            )

        applied = await self._store.transition_status(
            document.id,
            DocumentStatus.PROCESSING,
            DocumentStatus.FAILED,
            failure_reason=reason,
        )
        logger.warning(
            "ingestion_failed",
            document_id=document.id,
            reason=reason,
            recorded=applied,
        )

    @staticmethod
    def _vector_metadata(document: Document, ordinal: int, page: int | None) -> dict[str, str | int]:
        metadata: dict[str, str | int] = {
            "document_id": document.id,
            "classroom_id": document.classroom_id,
            "ordinal": ordinal,
        }
        if page is not None:
            metadata["page"] = page
        return metadata

    async def _require_document(self, document_id: str) -> Document:
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundError(message=f"Document {document_id} not found")
        return document

    @staticmethod
    def _report(
        document_id: str,
        status: DocumentStatus,
        start: float,
        **fields: object,
    ) -> IngestionReport:
        return IngestionReport(
            document_id=document_id,
            status=status.value,
            elapsed_seconds=round(time.monotonic() - start, 3),
            **fields,
        )

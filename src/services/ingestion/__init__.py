"""Document ingestion pipeline for classroom uploads.

Orchestrates the full pipeline: **extract -> chunk -> embed -> index -> commit**.

Pipeline stages overview:

1. **Extract** (ExtractionSelector) -- routes the upload to the tier's
   primary extractor, falling back once if configured.

2. **Chunk** (chunker.py / TextChunker) -- splits extracted text into
   ~800-character overlapping passages, preferring paragraph and sentence
   boundaries so no passage starts mid-word.

3. **Embed** (EmbeddingClient) -- batched, retried embedding calls.

4. **Index** (VectorIndexClient) -- upserts one vector per passage into
   the classroom's namespace, keyed by a deterministic chunk id.

5. **Commit** (IMetadataStore.complete_ingestion) -- chunk rows and the
   READY transition land in one transaction.

The IngestionService class drives the document state machine around these
stages and provides ``ingest`` (first run) and ``rebuild`` (in-place
re-chunking of a READY document).
"""

from src.services.ingestion.chunker import TextChunker, reconstruct
from src.services.ingestion.ingestion_service import IngestionService, chunk_id_for

__all__ = [
    "IngestionService",
    "TextChunker",
    "chunk_id_for",
    "reconstruct",
]

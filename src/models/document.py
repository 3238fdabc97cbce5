"""Document lifecycle models: classrooms, documents, chunks, and extracted text.

A :class:`Document` moves through a small finite state machine::

    PENDING ──► PROCESSING ──► READY
                     │
                     └───────► FAILED

Transitions never regress and the terminal state is written exactly once,
by the single ingestion attempt that claimed the document.  The only legal
edges are listed in :data:`ALLOWED_TRANSITIONS`; the metadata store enforces
them with a compare-and-swap update.

All models use frozen config -- a status change produces a new row version
from the store rather than mutating a shared object.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Ingestion state of an uploaded document."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.READY, DocumentStatus.FAILED}),
    DocumentStatus.READY: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


def is_legal_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class Classroom(BaseModel):
    """A named container of documents owned by one account."""

    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class Document(BaseModel):
    """An uploaded file and its ingestion state."""

    model_config = ConfigDict(frozen=True)

    id: str
    classroom_id: str
    filename: str = Field(description="Original filename as uploaded.")
    mime_type: str
    size_bytes: int = Field(ge=0)
    storage_key: str = Field(description="Opaque key returned by the object store.")
    status: DocumentStatus = DocumentStatus.PENDING
    extractor_used: str | None = Field(
        default=None,
        description="Name of the extractor that produced the indexed text.",
    )
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Chunk(BaseModel):
    """A persisted passage of a READY document.

    ``ordinal`` is dense and zero-based per document; ``vector_id`` is the
    id under which the passage vector lives in the vector index (equal to
    ``id`` in practice, kept separate so the index stays opaque).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    ordinal: int = Field(ge=0)
    text: str
    vector_id: str
    page: int | None = Field(default=None, ge=1, description="1-based page the passage starts on.")
    start_offset: int = Field(default=0, ge=0)
    end_offset: int = Field(default=0, ge=0)


class ExtractedText(BaseModel):
    """Output of an extractor.

    ``page_offsets`` holds the character offset at which each page starts,
    so chunks can be tagged with the page they begin on.  Extractors with no
    notion of pages return an empty list.  ``weighted_tokens`` is non-zero
    only for extractors that spend completion-service tokens (vision).
    """

    model_config = ConfigDict(frozen=True)

    text: str
    extractor: str
    page_offsets: list[int] = Field(default_factory=list)
    image_descriptions: int = Field(default=0, ge=0)
    weighted_tokens: int = Field(default=0, ge=0)
    model: str | None = None

    def page_for_offset(self, offset: int) -> int | None:
        if not self.page_offsets:
            return None
        page = 1
        for idx, start in enumerate(self.page_offsets):
            if start <= offset:
                page = idx + 1
            else:
                break
        return page

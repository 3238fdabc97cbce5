"""Abstract base class for the relational metadata store.

Holds classrooms, documents, chunks, generated artifacts, and daily usage
counters.  Two operations carry the pipeline's consistency guarantees:

* :meth:`transition_status` -- a compare-and-swap on ``documents.status``.
  It is the only way a document changes state, and it is how exactly one
  ingestion attempt claims a PENDING document.
* :meth:`complete_ingestion` -- writes every chunk row and flips
  PROCESSING -> READY in one transaction, so chunks exist if and only if
  the document is READY.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from src.models.artifacts import GeneratedArtifact
from src.models.document import Chunk, Classroom, Document, DocumentStatus
from src.models.usage import UsageCounter


# Concrete implementations: SQLiteMetadataStore
# Located in: src/providers/metadata/
class IMetadataStore(ABC):
    """Contract for persistent classroom/document/chunk/usage state."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    # -- Classrooms ---------------------------------------------------------

    @abstractmethod
    async def create_classroom(self, classroom: Classroom) -> Classroom:
        """Persist a new classroom."""

    @abstractmethod
    async def get_classroom(self, classroom_id: str) -> Classroom | None:
        """Return the classroom or ``None``."""

    @abstractmethod
    async def count_classrooms(self, account_id: str) -> int:
        """Return how many classrooms *account_id* owns."""

    # -- Documents ----------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Persist a new PENDING document."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document or ``None``."""

    @abstractmethod
    async def list_documents(
        self,
        classroom_id: str,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        """Return the classroom's documents, optionally filtered by status."""

    @abstractmethod
    async def transition_status(
        self,
        document_id: str,
        expected: DocumentStatus,
        target: DocumentStatus,
        *,
        extractor_used: str | None = None,
        failure_reason: str | None = None,
    ) -> bool:
        """Atomically move a document from *expected* to *target*.

        Returns
        -------
        bool
            ``True`` if this call performed the transition, ``False`` if the
            document was not in *expected* (someone else got there first).

        Raises
        ------
        src.utils.errors.DocumentStateError
            If *expected* -> *target* is not a legal edge.
        """

    @abstractmethod
    async def complete_ingestion(
        self,
        document_id: str,
        chunks: list[Chunk],
        extractor_used: str,
    ) -> None:
        """Insert *chunks* and move PROCESSING -> READY in one transaction.

        Raises
        ------
        src.utils.errors.DocumentStateError
            If the document is no longer PROCESSING; nothing is written.
        """

    @abstractmethod
    async def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> list[Chunk]:
        """Swap a READY document's chunk rows in one transaction.

        Returns the rows that were replaced.

        Raises
        ------
        src.utils.errors.DocumentStateError
            If the document is not READY.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> Document | None:
        """Delete the document and its chunks in one transaction.

        Returns the deleted document, or ``None`` if it did not exist.
        """

    @abstractmethod
    async def storage_bytes(self, account_id: str) -> int:
        """Return the total byte size of documents in the account's classrooms."""

    # -- Chunks -------------------------------------------------------------

    @abstractmethod
    async def list_chunks(self, document_id: str) -> list[Chunk]:
        """Return the document's chunks ordered by ordinal."""

    @abstractmethod
    async def get_chunks(self, chunk_ids: list[str]) -> list[Chunk]:
        """Return the chunks with the given ids (order unspecified)."""

    # -- Artifacts ----------------------------------------------------------

    @abstractmethod
    async def save_artifact(self, artifact: GeneratedArtifact) -> GeneratedArtifact:
        """Persist a generated artifact."""

    @abstractmethod
    async def get_artifact(self, artifact_id: str) -> GeneratedArtifact | None:
        """Return the artifact or ``None``."""

    @abstractmethod
    async def list_artifacts(self, classroom_id: str) -> list[GeneratedArtifact]:
        """Return the classroom's artifacts, newest first."""

    # -- Usage --------------------------------------------------------------

    @abstractmethod
    async def get_usage(self, account_id: str, day: date) -> UsageCounter:
        """Return the day's counter (zero if no row exists yet)."""

    @abstractmethod
    async def add_usage(self, account_id: str, day: date, weighted_tokens: int) -> int:
        """Atomically add *weighted_tokens* to the day's counter and return the new total."""

"""Classroom and document lifecycle entry points for the HTTP and CLI layers.

Uploads are validated against the account's tier (MIME support and storage
cap), stored in the object store, recorded as PENDING and handed to the
Ingestion Orchestrator as a tracked background task.  The upload call
returns as soon as the PENDING row exists.

Deletion removes the document and its chunk rows in one transaction, then
removes the document's vectors and raw bytes as compensating actions.  It
waits for any in-flight ingestion of the same document to finish first.
"""

from __future__ import annotations

import re
import uuid
from pathlib import PurePath

import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.interfaces.object_store import IObjectStore
from src.interfaces.tier_provider import ITierProvider
from src.models.document import Classroom, Document, DocumentStatus
from src.models.usage import TierTable, UsageSnapshot
from src.services.ingestion.ingestion_service import IngestionService
from src.services.quota_guard import QuotaGuard
from src.services.vector_index_client import VectorIndexClient
from src.utils.concurrency import BackgroundTasks, KeyedLocks
from src.utils.errors import InvalidRequestError, NotFoundError, StudyRAGError

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_filename(filename: str) -> str:
    name = PurePath(filename.replace("\\", "/")).name
    return _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._") or "upload"


class DocumentService:
    """Creates classrooms, accepts uploads, and deletes documents."""

    def __init__(
        self,
        store: IMetadataStore,
        objects: IObjectStore,
        tiers: ITierProvider,
        tier_table: TierTable,
        quota: QuotaGuard,
        ingestion: IngestionService,
        vectors: VectorIndexClient,
        *,
        tasks: BackgroundTasks | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._store = store
        self._objects = objects
        self._tiers = tiers
        self._tier_table = tier_table
        self._quota = quota
        self._ingestion = ingestion
        self._vectors = vectors
        self._tasks = tasks or BackgroundTasks()
        self._locks = locks or KeyedLocks()

    # ------------------------------------------------------------------
    # Classrooms
    # ------------------------------------------------------------------

    async def create_classroom(self, account_id: str, name: str) -> Classroom:
        name = name.strip()
        if not name:
            raise InvalidRequestError(message="Classroom name is required")
        await self._quota.check_classroom_slot(account_id)
        classroom = await self._store.create_classroom(
            Classroom(id=str(uuid.uuid4()), account_id=account_id, name=name)
        )
        logger.info("classroom_created", classroom_id=classroom.id, account_id=account_id)
        return classroom

    async def require_classroom(self, account_id: str, classroom_id: str) -> Classroom:
        """Return the classroom if it exists and belongs to *account_id*."""
        classroom = await self._store.get_classroom(classroom_id)
        if classroom is None or classroom.account_id != account_id:
            raise NotFoundError(message=f"Classroom {classroom_id} not found")
        return classroom

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload(
        self,
        account_id: str,
        classroom_id: str,
        filename: str,
        mime_type: str,
        data: bytes,
        *,
        schedule_ingestion: bool = True,
    ) -> Document:
        """Store an upload and create its PENDING document.

        Raises
        ------
        NotFoundError
            Unknown classroom or not owned by the account.
        InvalidRequestError
            Empty file or a MIME type the tier does not support.
        QuotaExceededError
            The upload would exceed the account's storage cap.
        """
        await self.require_classroom(account_id, classroom_id)
        if not data:
            raise InvalidRequestError(message="Uploaded file is empty")

        tier = await self._tiers.get_tier(account_id)
        if self._tier_table.route_for(tier, mime_type) is None:
            supported = ", ".join(self._tier_table.supported_mime_types(tier))
            raise InvalidRequestError(
                message=f"Unsupported file type {mime_type!r}; supported: {supported}",
            )

        await self._quota.check_storage(account_id, len(data))

        document_id = str(uuid.uuid4())
        key = f"{classroom_id}/{document_id}-{_safe_filename(filename)}"
        storage_key = await self._objects.put_object(key, data)

        document = await self._store.create_document(
            Document(
                id=document_id,
                classroom_id=classroom_id,
                filename=filename,
                mime_type=mime_type,
                size_bytes=len(data),
                storage_key=storage_key,
                status=DocumentStatus.PENDING,
            )
        )
        logger.info(
            "document_uploaded",
            document_id=document.id,
            classroom_id=classroom_id,
            mime_type=mime_type,
            size_bytes=document.size_bytes,
            tier=tier.value,
        )

        if schedule_ingestion:
            self._tasks.spawn(self._ingestion.ingest(document.id), name=f"ingest-{document.id}")
        return document

    async def get_document(self, account_id: str, classroom_id: str, document_id: str) -> Document:
        await self.require_classroom(account_id, classroom_id)
        document = await self._store.get_document(document_id)
        if document is None or document.classroom_id != classroom_id:
            raise NotFoundError(message=f"Document {document_id} not found")
        return document

    async def list_documents(self, account_id: str, classroom_id: str) -> list[Document]:
        await self.require_classroom(account_id, classroom_id)
        return await self._store.list_documents(classroom_id)

    async def delete_document(self, account_id: str, classroom_id: str, document_id: str) -> Document:
        """Delete a document, its chunk rows, its vectors and its raw bytes."""
        document = await self.get_document(account_id, classroom_id, document_id)

        async with self._locks.hold(document_id):
            deleted = await self._store.delete_document(document_id)
            if deleted is None:
                raise NotFoundError(message=f"Document {document_id} not found")

            try:
                await self._vectors.delete_document(classroom_id, document_id)
            except StudyRAGError as exc:
                logger.error(
                    "document_vector_cleanup_failed",
                    document_id=document_id,
                    error=str(exc),
                )
            await self._objects.delete_object(document.storage_key)

        logger.info("document_removed", document_id=document_id, classroom_id=classroom_id)
        return deleted

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def usage(self, account_id: str) -> UsageSnapshot:
        return await self._quota.snapshot(account_id)

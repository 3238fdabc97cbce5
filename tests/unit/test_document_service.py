"""Unit tests for the DocumentService -- classrooms, uploads and deletion."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.models.document import DocumentStatus
from src.models.usage import AccountTier, TierTable
from src.providers.account.sqlite_tier_provider import SQLiteTierProvider
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.providers.object_store.local_object_store import LocalObjectStore
from src.providers.vector_store.memory_vector_index import InMemoryVectorIndex
from src.services.document_service import DocumentService
from src.services.ingestion.ingestion_service import IngestionService
from src.services.quota_guard import QuotaGuard
from src.services.vector_index_client import VectorIndexClient
from src.utils.concurrency import BackgroundTasks
from src.utils.errors import InvalidRequestError, NotFoundError, QuotaExceededError

_ACCOUNT = "acct-1"
_NOTES = (
    b"Osmosis is the movement of water across a semi-permeable membrane from a "
    b"region of low solute concentration to a region of high solute concentration."
)


@pytest.fixture()
def background() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture()
def documents(
    store: SQLiteMetadataStore,
    objects: LocalObjectStore,
    tiers: SQLiteTierProvider,
    tier_table: TierTable,
    quota: QuotaGuard,
    ingestion: IngestionService,
    vectors: VectorIndexClient,
    background: BackgroundTasks,
) -> DocumentService:
    return DocumentService(
        store, objects, tiers, tier_table, quota, ingestion, vectors, tasks=background
    )


class TestClassrooms:
    @pytest.mark.asyncio()
    async def test_create_classroom(self, documents: DocumentService) -> None:
        classroom = await documents.create_classroom(_ACCOUNT, "  Organic Chemistry ")
        assert classroom.name == "Organic Chemistry"
        assert classroom.account_id == _ACCOUNT

    @pytest.mark.asyncio()
    async def test_blank_name_rejected(self, documents: DocumentService) -> None:
        with pytest.raises(InvalidRequestError):
            await documents.create_classroom(_ACCOUNT, "   ")

    @pytest.mark.asyncio()
    async def test_free_tier_classroom_cap(self, documents: DocumentService) -> None:
        for i in range(5):
            await documents.create_classroom(_ACCOUNT, f"Room {i}")
        with pytest.raises(QuotaExceededError):
            await documents.create_classroom(_ACCOUNT, "One too many")

    @pytest.mark.asyncio()
    async def test_other_accounts_classroom_is_not_found(self, documents: DocumentService) -> None:
        classroom = await documents.create_classroom("acct-2", "Private")
        with pytest.raises(NotFoundError):
            await documents.require_classroom(_ACCOUNT, classroom.id)


class TestUpload:
    @pytest.mark.asyncio()
    async def test_upload_creates_pending_then_ingests(
        self,
        documents: DocumentService,
        background: BackgroundTasks,
        store: SQLiteMetadataStore,
    ) -> None:
        classroom = await documents.create_classroom(_ACCOUNT, "Biology")

        document = await documents.upload(_ACCOUNT, classroom.id, "osmosis.txt", "text/plain", _NOTES)

        assert document.status is DocumentStatus.PENDING
        assert document.size_bytes == len(_NOTES)
        await background.drain(timeout=5)
        assert (await store.get_document(document.id)).status is DocumentStatus.READY

    @pytest.mark.asyncio()
    async def test_storage_key_is_sanitised(
        self, documents: DocumentService, objects: LocalObjectStore
    ) -> None:
        classroom = await documents.create_classroom(_ACCOUNT, "Biology")

        document = await documents.upload(
            _ACCOUNT,
            classroom.id,
            "../../etc/my notes.txt",
            "text/plain",
            _NOTES,
            schedule_ingestion=False,
        )

        assert document.storage_key.startswith(f"{classroom.id}/")
        assert document.storage_key.endswith("-my_notes.txt")
        assert await objects.get_object(document.storage_key) == _NOTES

    @pytest.mark.asyncio()
    async def test_empty_file_rejected(self, documents: DocumentService) -> None:
        classroom = await documents.create_classroom(_ACCOUNT, "Biology")
        with pytest.raises(InvalidRequestError, match="empty"):
            await documents.upload(_ACCOUNT, classroom.id, "a.txt", "text/plain", b"")

    @pytest.mark.asyncio()
    async def test_unsupported_type_rejected(self, documents: DocumentService) -> None:
        classroom = await documents.create_classroom(_ACCOUNT, "Biology")
        with pytest.raises(InvalidRequestError, match="Unsupported file type"):
            await documents.upload(_ACCOUNT, classroom.id, "a.png", "image/png", b"\x89PNG")

    @pytest.mark.asyncio()
    async def test_storage_cap_rejected(
        self,
        store: SQLiteMetadataStore,
        objects: LocalObjectStore,
        tier_table: TierTable,
        ingestion: IngestionService,
        vectors: VectorIndexClient,
        tmp_path: Path,
    ) -> None:
        tight = tier_table.model_copy(
            update={
                "limits": {
                    **tier_table.limits,
                    AccountTier.FREE: tier_table.limits[AccountTier.FREE].model_copy(
                        update={"max_storage_bytes": 100}
                    ),
                }
            }
        )
        tiers = SQLiteTierProvider(tmp_path / "studyrag.db", tight)
        await tiers.initialize()
        service = DocumentService(
            store, objects, tiers, tight, QuotaGuard(store, tiers, tight), ingestion, vectors
        )
        classroom = await service.create_classroom(_ACCOUNT, "Biology")

        with pytest.raises(QuotaExceededError):
            await service.upload(_ACCOUNT, classroom.id, "big.txt", "text/plain", b"x" * 101)
        assert await store.list_documents(classroom.id) == []


class TestDelete:
    @pytest.mark.asyncio()
    async def test_delete_removes_rows_vectors_and_bytes(
        self,
        documents: DocumentService,
        background: BackgroundTasks,
        store: SQLiteMetadataStore,
        objects: LocalObjectStore,
        vector_provider: InMemoryVectorIndex,
    ) -> None:
        classroom = await documents.create_classroom(_ACCOUNT, "Biology")
        document = await documents.upload(_ACCOUNT, classroom.id, "osmosis.txt", "text/plain", _NOTES)
        await background.drain(timeout=5)
        assert vector_provider.count() > 0

        await documents.delete_document(_ACCOUNT, classroom.id, document.id)

        assert await store.get_document(document.id) is None
        assert await store.list_chunks(document.id) == []
        assert vector_provider.count() == 0
        with pytest.raises(NotFoundError):
            await objects.get_object(document.storage_key)

    @pytest.mark.asyncio()
    async def test_delete_in_wrong_classroom_is_not_found(self, documents: DocumentService) -> None:
        first = await documents.create_classroom(_ACCOUNT, "Biology")
        second = await documents.create_classroom(_ACCOUNT, "Physics")
        document = await documents.upload(
            _ACCOUNT, first.id, "osmosis.txt", "text/plain", _NOTES, schedule_ingestion=False
        )

        with pytest.raises(NotFoundError):
            await documents.delete_document(_ACCOUNT, second.id, document.id)

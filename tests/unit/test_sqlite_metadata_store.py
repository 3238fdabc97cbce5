"""Unit tests for the SQLite metadata store."""

from __future__ import annotations

from datetime import date

import pytest

from src.models.artifacts import (
    FlashcardPayload,
    Flashcard,
    GeneratedArtifact,
    GenerationKind,
    GenerationMode,
    SourceRef,
)
from src.models.document import Chunk, Classroom, Document, DocumentStatus
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.utils.errors import DocumentStateError

_ACCOUNT = "acct-1"


async def _seed(store: SQLiteMetadataStore, doc_id: str = "doc-1", size: int = 100) -> Document:
    if await store.get_classroom("room-1") is None:
        await store.create_classroom(Classroom(id="room-1", account_id=_ACCOUNT, name="Chemistry"))
    return await store.create_document(
        Document(
            id=doc_id,
            classroom_id="room-1",
            filename=f"{doc_id}.txt",
            mime_type="text/plain",
            size_bytes=size,
            storage_key=f"room-1/{doc_id}.txt",
        )
    )


def _chunks(document_id: str, n: int) -> list[Chunk]:
    return [
        Chunk(
            id=f"{document_id}-c{i}",
            document_id=document_id,
            ordinal=i,
            text=f"passage {i}",
            vector_id=f"{document_id}-c{i}",
            start_offset=i * 10,
            end_offset=i * 10 + 9,
        )
        for i in range(n)
    ]


class TestClassroomsAndDocuments:
    @pytest.mark.asyncio()
    async def test_round_trip(self, store: SQLiteMetadataStore) -> None:
        document = await _seed(store)

        loaded = await store.get_document(document.id)

        assert loaded.filename == "doc-1.txt"
        assert loaded.status is DocumentStatus.PENDING
        assert (await store.get_classroom("room-1")).name == "Chemistry"
        assert await store.count_classrooms(_ACCOUNT) == 1

    @pytest.mark.asyncio()
    async def test_missing_rows_are_none(self, store: SQLiteMetadataStore) -> None:
        assert await store.get_classroom("nope") is None
        assert await store.get_document("nope") is None

    @pytest.mark.asyncio()
    async def test_list_filters_by_status(self, store: SQLiteMetadataStore) -> None:
        await _seed(store, "doc-1")
        await _seed(store, "doc-2")
        await store.transition_status("doc-2", DocumentStatus.PENDING, DocumentStatus.PROCESSING)

        pending = await store.list_documents("room-1", DocumentStatus.PENDING)

        assert [d.id for d in pending] == ["doc-1"]
        assert len(await store.list_documents("room-1")) == 2

    @pytest.mark.asyncio()
    async def test_storage_bytes_sums_documents(self, store: SQLiteMetadataStore) -> None:
        await _seed(store, "doc-1", size=300)
        await _seed(store, "doc-2", size=200)
        assert await store.storage_bytes(_ACCOUNT) == 500


class TestStatusTransitions:
    @pytest.mark.asyncio()
    async def test_compare_and_swap_applies_once(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)

        first = await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.PROCESSING)
        second = await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.PROCESSING)

        assert first is True
        assert second is False
        assert (await store.get_document("doc-1")).status is DocumentStatus.PROCESSING

    @pytest.mark.asyncio()
    async def test_illegal_transition_raises(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        with pytest.raises(DocumentStateError, match="Illegal transition"):
            await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.READY)

    @pytest.mark.asyncio()
    async def test_failure_reason_is_recorded(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.PROCESSING)
        await store.transition_status(
            "doc-1", DocumentStatus.PROCESSING, DocumentStatus.FAILED, failure_reason="corrupt file"
        )
        assert (await store.get_document("doc-1")).failure_reason == "corrupt file"


class TestChunks:
    @pytest.mark.asyncio()
    async def test_complete_ingestion_commits_chunks_and_status(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.PROCESSING)

        await store.complete_ingestion("doc-1", _chunks("doc-1", 3), "plain-text")

        document = await store.get_document("doc-1")
        assert document.status is DocumentStatus.READY
        assert document.extractor_used == "plain-text"
        assert [c.ordinal for c in await store.list_chunks("doc-1")] == [0, 1, 2]

    @pytest.mark.asyncio()
    async def test_complete_ingestion_requires_processing(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)

        with pytest.raises(DocumentStateError):
            await store.complete_ingestion("doc-1", _chunks("doc-1", 2), "plain-text")

        assert await store.list_chunks("doc-1") == []
        assert (await store.get_document("doc-1")).status is DocumentStatus.PENDING

    @pytest.mark.asyncio()
    async def test_replace_chunks_returns_previous(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.PROCESSING)
        await store.complete_ingestion("doc-1", _chunks("doc-1", 3), "plain-text")

        previous = await store.replace_chunks("doc-1", _chunks("doc-1", 1))

        assert len(previous) == 3
        assert len(await store.list_chunks("doc-1")) == 1

    @pytest.mark.asyncio()
    async def test_replace_chunks_requires_ready(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        with pytest.raises(DocumentStateError, match="not READY"):
            await store.replace_chunks("doc-1", _chunks("doc-1", 1))

    @pytest.mark.asyncio()
    async def test_get_chunks_by_id(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.PROCESSING)
        await store.complete_ingestion("doc-1", _chunks("doc-1", 3), "plain-text")

        found = await store.get_chunks(["doc-1-c2", "missing"])

        assert [c.id for c in found] == ["doc-1-c2"]
        assert await store.get_chunks([]) == []

    @pytest.mark.asyncio()
    async def test_delete_cascades_to_chunks(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        await store.transition_status("doc-1", DocumentStatus.PENDING, DocumentStatus.PROCESSING)
        await store.complete_ingestion("doc-1", _chunks("doc-1", 2), "plain-text")

        deleted = await store.delete_document("doc-1")

        assert deleted.id == "doc-1"
        assert await store.get_document("doc-1") is None
        assert await store.list_chunks("doc-1") == []
        assert await store.delete_document("doc-1") is None


class TestArtifactsAndUsage:
    @pytest.mark.asyncio()
    async def test_artifact_round_trip(self, store: SQLiteMetadataStore) -> None:
        await _seed(store)
        artifact = GeneratedArtifact(
            id="art-1",
            classroom_id="room-1",
            kind=GenerationKind.FLASHCARDS,
            title="Flashcards",
            mode=GenerationMode.DOCUMENT_GROUNDED,
            source_document_ids=["doc-1"],
            sources=[SourceRef(document_id="doc-1", filename="doc-1.txt", score=0.8, chunk_index=0)],
            has_relevant_context=True,
            payload=FlashcardPayload(cards=[Flashcard(front="Q?", back="A")]),
        )

        await store.save_artifact(artifact)

        assert await store.get_artifact("art-1") == artifact
        assert [a.id for a in await store.list_artifacts("room-1")] == ["art-1"]
        assert await store.get_artifact("nope") is None

    @pytest.mark.asyncio()
    async def test_usage_upsert_accumulates_per_day(self, store: SQLiteMetadataStore) -> None:
        day = date(2026, 5, 1)

        assert await store.add_usage(_ACCOUNT, day, 120) == 120
        assert await store.add_usage(_ACCOUNT, day, 30) == 150
        await store.add_usage(_ACCOUNT, date(2026, 5, 2), 10)

        usage = await store.get_usage(_ACCOUNT, day)
        assert usage.weighted_tokens == 150
        assert (await store.get_usage("other", day)).weighted_tokens == 0

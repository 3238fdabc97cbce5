"""Shared pytest fixtures for the StudyRAG test suite."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.config.loader import load_tier_table
from src.interfaces.llm_provider import ILLMProvider
from src.models.completion import CompletionResult
from src.models.document import Classroom, Document, DocumentStatus
from src.models.usage import TierTable
from src.providers.account.sqlite_tier_provider import SQLiteTierProvider
from src.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from src.providers.extractors.pdf_vision_extractor import PdfVisionExtractor
from src.providers.extractors.text_extractors import (
    DocxExtractor,
    PdfTextExtractor,
    PlainTextExtractor,
)
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.providers.object_store.local_object_store import LocalObjectStore
from src.providers.vector_store.memory_vector_index import InMemoryVectorIndex
from src.services.embedding_client import EmbeddingClient
from src.services.extraction_selector import ExtractionSelector
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.ingestion_service import IngestionService
from src.services.quota_guard import QuotaGuard
from src.services.retrieval_service import RetrievalAssembler
from src.services.vector_index_client import VectorIndexClient

ACCOUNT_ID = "acct-1"

PHOTOSYNTHESIS_TEXT = (
    "Photosynthesis converts light energy into chemical energy. Chlorophyll "
    "absorbs light inside chloroplasts, and photosynthesis releases oxygen "
    "as a byproduct of splitting water."
)

MITOSIS_TEXT = (
    "Mitosis divides one nucleus into two identical nuclei. During mitosis the "
    "chromosomes condense, align at the spindle equator, and separate into "
    "sister chromatids before cytokinesis."
)


def make_completion(
    text: str,
    *,
    model: str = "gpt-4o-mini",
    input_tokens: int = 100,
    output_tokens: int = 50,
) -> CompletionResult:
    """Build a CompletionResult as a provider would return it."""
    return CompletionResult(
        text=text,
        model=model,
        provider="mock-llm",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def tier_table(tmp_path: Path) -> TierTable:
    """Built-in tier defaults (no YAML overrides)."""
    return load_tier_table(str(tmp_path / "no-overrides.yaml"))


# ---------------------------------------------------------------------------
# Collaborators backed by tmp_path
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteMetadataStore:
    metadata = SQLiteMetadataStore(tmp_path / "studyrag.db")
    await metadata.initialize()
    return metadata


@pytest.fixture
async def tiers(tmp_path: Path, tier_table: TierTable) -> SQLiteTierProvider:
    provider = SQLiteTierProvider(tmp_path / "studyrag.db", tier_table)
    await provider.initialize()
    return provider


@pytest.fixture
def objects(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def embedding_provider() -> HashingEmbeddingProvider:
    """Hashing embedder whose ``embed`` is wrapped in an AsyncMock spy."""
    provider = HashingEmbeddingProvider()
    real_embed = provider.embed
    provider.embed = AsyncMock(side_effect=real_embed)
    return provider


@pytest.fixture
def vector_provider() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def embedder(embedding_provider: HashingEmbeddingProvider) -> EmbeddingClient:
    return EmbeddingClient(embedding_provider, batch_size=100, attempts=1, base_delay=0, timeout=5)


@pytest.fixture
def vectors(vector_provider: InMemoryVectorIndex) -> VectorIndexClient:
    return VectorIndexClient(vector_provider, attempts=1, base_delay=0, timeout=5)


@pytest.fixture
def quota(store: SQLiteMetadataStore, tiers: SQLiteTierProvider, tier_table: TierTable) -> QuotaGuard:
    return QuotaGuard(store, tiers, tier_table)


# ---------------------------------------------------------------------------
# Mock completion provider
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_llm() -> MagicMock:
    """Mock ILLMProvider.

    ``complete`` returns a plain answer by default.  Override with
    ``mock_llm.complete.return_value = make_completion(...)`` or a
    ``side_effect`` list for specific tests.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.get_model_name.return_value = "gpt-4o-mini"
    mock.get_vision_model_name.return_value = "gpt-4o-mini"
    mock.is_available.return_value = True
    mock.supports_vision.return_value = True
    mock.complete = AsyncMock(return_value=make_completion("Plants make sugar from light."))
    mock.vision_extract = AsyncMock(return_value=make_completion("Page text"))
    return mock


# ---------------------------------------------------------------------------
# Pipeline services
# ---------------------------------------------------------------------------


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker(chunk_size=200, overlap=40)


@pytest.fixture
def selector(tier_table: TierTable, mock_llm: MagicMock, quota: QuotaGuard) -> ExtractionSelector:
    extractors = {
        extractor.get_name(): extractor
        for extractor in (
            PlainTextExtractor(),
            DocxExtractor(),
            PdfTextExtractor(),
            PdfVisionExtractor(mock_llm, tier_table.weight_for, attempts=1, base_delay=0),
        )
    }
    return ExtractionSelector(tier_table, extractors, quota)


@pytest.fixture
def ingestion(
    store: SQLiteMetadataStore,
    objects: LocalObjectStore,
    tiers: SQLiteTierProvider,
    selector: ExtractionSelector,
    chunker: TextChunker,
    embedder: EmbeddingClient,
    vectors: VectorIndexClient,
) -> IngestionService:
    return IngestionService(store, objects, tiers, selector, chunker, embedder, vectors)


@pytest.fixture
def retrieval(
    store: SQLiteMetadataStore,
    embedder: EmbeddingClient,
    vectors: VectorIndexClient,
) -> RetrievalAssembler:
    return RetrievalAssembler(store, embedder, vectors, relevance_threshold=0.4, default_top_k=5)


# ---------------------------------------------------------------------------
# Seed data factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_classroom(store: SQLiteMetadataStore) -> Callable[..., Awaitable[Classroom]]:
    """Factory: ``await make_classroom(account_id=..., name=...)``."""

    async def _make(account_id: str = ACCOUNT_ID, name: str = "Biology 101") -> Classroom:
        return await store.create_classroom(
            Classroom(id=str(uuid.uuid4()), account_id=account_id, name=name)
        )

    return _make


@pytest.fixture
def make_document(
    store: SQLiteMetadataStore,
    objects: LocalObjectStore,
    ingestion: IngestionService,
) -> Callable[..., Awaitable[Document]]:
    """Factory: store a text upload as PENDING and, by default, ingest it to READY."""

    async def _make(
        classroom: Classroom,
        text: str,
        *,
        filename: str = "notes.txt",
        mime_type: str = "text/plain",
        ingest: bool = True,
    ) -> Document:
        document_id = str(uuid.uuid4())
        data = text.encode("utf-8")
        key = await objects.put_object(f"{classroom.id}/{document_id}-{filename}", data)
        document = await store.create_document(
            Document(
                id=document_id,
                classroom_id=classroom.id,
                filename=filename,
                mime_type=mime_type,
                size_bytes=len(data),
                storage_key=key,
                status=DocumentStatus.PENDING,
            )
        )
        if ingest:
            await ingestion.ingest(document.id)
            document = await store.get_document(document.id)
        return document

    return _make

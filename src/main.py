"""StudyRAG FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.  :func:`build_services` is shared with the CLI so both
entry points assemble exactly the same object graph.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.loader import load_tier_table
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.extractor import IExtractor
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorIndexProvider
from src.providers.account.sqlite_tier_provider import SQLiteTierProvider
from src.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.extractors.pdf_vision_extractor import PdfVisionExtractor
from src.providers.extractors.text_extractors import (
    DocxExtractor,
    PdfTextExtractor,
    PlainTextExtractor,
)
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.providers.object_store.local_object_store import LocalObjectStore
from src.providers.vector_store.memory_vector_index import InMemoryVectorIndex
from src.services.document_service import DocumentService
from src.services.embedding_client import EmbeddingClient
from src.services.extraction_selector import ExtractionSelector
from src.services.generation.generation_service import GenerationService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.ingestion_service import IngestionService
from src.services.quota_guard import QuotaGuard
from src.services.retrieval_service import RetrievalAssembler
from src.services.vector_index_client import VectorIndexClient
from src.utils.concurrency import BackgroundTasks, KeyedLocks
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# Seconds to let running ingestions finish on shutdown before cancelling them.
_SHUTDOWN_DRAIN_S = 30.0

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the completion provider.

    The configured ``COMPLETION_PROVIDER`` wins when its key is set; any
    other provider with a key is the next choice.  With no keys at all an
    unconfigured OpenAI provider is returned so the app still starts; its
    calls fail and surface as generation errors.
    """
    available = app_settings.get_available_llm_providers()
    name = available[0] if available else "openai"
    if name == "anthropic":
        return AnthropicLLMProvider(settings=app_settings)
    return OpenAILLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """OpenAI embeddings when a key is set, otherwise local feature hashing."""
    if app_settings.openai_api_key:
        provider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider
    _logger.warning("embedding_fallback_hashing", reason="OPENAI_API_KEY not set")
    return HashingEmbeddingProvider()


def _build_vector_provider(app_settings: Settings) -> IVectorIndexProvider:
    backend = app_settings.vector_index_backend.lower()
    if backend == "memory":
        return InMemoryVectorIndex()
    if backend == "chromadb":
        from src.providers.vector_store.chromadb_provider import ChromaDBVectorIndex

        return ChromaDBVectorIndex(persist_directory=app_settings.chromadb_persist_dir)
    raise ConfigurationError(message=f"Unknown VECTOR_INDEX_BACKEND: {backend!r}")


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_services(
    app_settings: Settings,
    *,
    llm: ILLMProvider | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    vector_provider: IVectorIndexProvider | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Keyword overrides replace the settings-driven provider choice (used by
    tests and local tooling).  Returns a flat dict of named components to be
    stored on ``app.state``.
    """
    tier_table = load_tier_table(app_settings.tiers_config_path)

    # -- Collaborators --
    store = SQLiteMetadataStore(app_settings.metadata_db_path)
    tiers = SQLiteTierProvider(app_settings.metadata_db_path, tier_table)
    objects = LocalObjectStore(app_settings.object_store_dir)

    llm = llm or _build_llm_provider(app_settings)
    embedding_provider = embedding_provider or _build_embedding_provider(app_settings)
    vector_provider = vector_provider or _build_vector_provider(app_settings)

    retry = {
        "attempts": app_settings.retry_max_attempts,
        "base_delay": app_settings.retry_base_delay_s,
        "timeout": app_settings.external_call_timeout_s,
    }

    # -- Shared concurrency state --
    locks = KeyedLocks()
    tasks = BackgroundTasks()

    # -- Core services --
    quota = QuotaGuard(store, tiers, tier_table)
    extractors: dict[str, IExtractor] = {
        extractor.get_name(): extractor
        for extractor in (
            PlainTextExtractor(),
            DocxExtractor(),
            PdfTextExtractor(),
            PdfVisionExtractor(
                llm,
                tier_table.weight_for,
                attempts=app_settings.retry_max_attempts,
                base_delay=app_settings.retry_base_delay_s,
                timeout=app_settings.external_call_timeout_s * 2,
            ),
        )
    }
    selector = ExtractionSelector(tier_table, extractors, quota)
    chunker = TextChunker(app_settings.chunk_size, app_settings.chunk_overlap)
    embedder = EmbeddingClient(
        embedding_provider, batch_size=app_settings.embedding_batch_size, **retry
    )
    vectors = VectorIndexClient(
        vector_provider, namespace_prefix=app_settings.vector_namespace_prefix, **retry
    )

    ingestion = IngestionService(
        store, objects, tiers, selector, chunker, embedder, vectors, locks=locks
    )
    retrieval = RetrievalAssembler(
        store,
        embedder,
        vectors,
        relevance_threshold=app_settings.relevance_threshold,
        min_relevant_passages=app_settings.relevance_min_passages,
        default_top_k=app_settings.retrieval_top_k,
    )
    generation = GenerationService(
        llm,
        retrieval,
        quota,
        store,
        tasks=tasks,
        max_context_chars=app_settings.max_context_chars,
        **retry,
    )
    documents = DocumentService(
        store,
        objects,
        tiers,
        tier_table,
        quota,
        ingestion,
        vectors,
        tasks=tasks,
        locks=locks,
    )

    provider_registry: dict[str, bool | str] = {
        "llm": llm.is_available(),
        "llm_provider": llm.get_provider_name(),
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "vector_index": vector_provider.is_available(),
        "vector_index_provider": vector_provider.get_provider_name(),
    }

    return {
        "settings": app_settings,
        "tier_table": tier_table,
        "metadata_store": store,
        "tier_provider": tiers,
        "object_store": objects,
        "llm": llm,
        "quota_guard": quota,
        "ingestion_service": ingestion,
        "retrieval_service": retrieval,
        "generation_service": generation,
        "document_service": documents,
        "background_tasks": tasks,
        "provider_registry": provider_registry,
    }


async def initialize_services(components: dict[str, Any]) -> None:
    """Create database tables and storage directories."""
    await components["metadata_store"].initialize()
    await components["tier_provider"].initialize()
    Path(components["settings"].object_store_dir).mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, drain tasks on shutdown."""
    app_settings: Settings = application.state.settings
    overrides: dict[str, Any] = getattr(application.state, "overrides", {})
    components = build_services(app_settings, **overrides)
    await initialize_services(components)

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=app_settings.app_env,
        **components["provider_registry"],
    )

    yield

    tasks: BackgroundTasks = components["background_tasks"]
    pending = len(tasks)
    await tasks.drain(timeout=_SHUTDOWN_DRAIN_S)
    _logger.info("app_shutdown", drained_tasks=pending)


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    **overrides: Any,
) -> FastAPI:
    """Build and configure the FastAPI application.

    *overrides* are passed to :func:`build_services` at startup
    (``llm``, ``embedding_provider``, ``vector_provider``).
    """
    app_settings = app_settings or Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    application = FastAPI(
        title="StudyRAG API",
        version=_VERSION,
        description=(
            "Upload course documents into classrooms, then chat with them or "
            "generate flashcards, quizzes and summaries grounded in their content."
        ),
        lifespan=_lifespan,
    )
    application.state.settings = app_settings
    application.state.overrides = overrides

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    _settings = app.state.settings
    uvicorn.run(
        "src.main:app",
        host=_settings.app_host,
        port=_settings.app_port,
        reload=(_settings.app_env == "development"),
    )

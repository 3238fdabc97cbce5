"""Embedding Client -- batching, retries, and timeouts around an embedding provider.

Passages from one document are sent in as few calls as the provider's
batch limit (and the configured ``EMBEDDING_BATCH_SIZE``) allow.  Batches
run sequentially, so a persistent failure in batch *k* stops the run
before batch *k + 1* is sent; the caller gets an :class:`EmbeddingError`
and never a partial result.
"""

from __future__ import annotations

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingError, StudyRAGError
from src.utils.retry import call_with_retry

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingClient:
    """Turns passages and queries into vectors, or fails with EmbeddingError."""

    def __init__(
        self,
        provider: IEmbeddingProvider,
        *,
        batch_size: int = 100,
        attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float = 30.0,
    ) -> None:
        self._provider = provider
        self._batch_size = max(1, min(batch_size, provider.max_batch_size()))
        self._attempts = attempts
        self._base_delay = base_delay
        self._timeout = timeout

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in order.

        Raises
        ------
        EmbeddingError
            If any batch fails after retries, or the provider returns the
            wrong number of vectors.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        total_batches = (len(texts) + self._batch_size - 1) // self._batch_size
        for batch_index, offset in enumerate(range(0, len(texts), self._batch_size), start=1):
            batch = texts[offset : offset + self._batch_size]
            batch_vectors = await self._embed_batch(batch, batch_index, total_batches)
            vectors.extend(batch_vectors)

        logger.info(
            "embedding_complete",
            provider=self.provider_name,
            texts=len(texts),
            batches=total_batches,
        )
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        vectors = await self._embed_batch([text], 1, 1)
        return vectors[0]

    async def _embed_batch(self, batch: list[str], batch_index: int, total: int) -> list[list[float]]:
        try:
            vectors = await call_with_retry(
                lambda: self._provider.embed(batch),
                attempts=self._attempts,
                base_delay=self._base_delay,
                timeout=self._timeout,
                label="embed",
            )
        except EmbeddingError:
            raise
        except StudyRAGError as exc:
            logger.error(
                "embedding_batch_failed",
                provider=self.provider_name,
                batch=batch_index,
                total_batches=total,
                error=str(exc),
            )
            raise EmbeddingError(
                message=f"Embedding batch {batch_index}/{total} failed: {exc.message}",
                provider_name=exc.provider_name or self.provider_name,
            ) from exc

        if len(vectors) != len(batch):
            raise EmbeddingError(
                message=f"Provider returned {len(vectors)} vectors for {len(batch)} inputs",
                provider_name=self.provider_name,
            )
        return vectors

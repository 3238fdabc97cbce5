"""Abstract base class for text-embedding service providers.

Defines the contract for turning passages and queries into fixed-dimension
vectors.  Implementations may wrap OpenAI ``text-embedding-3-small``, any
OpenAI-compatible endpoint, or a deterministic local embedder used in tests.
Retries and batching across calls live in
:class:`~src.services.embedding_client.EmbeddingClient`; a provider only
performs one remote call per :meth:`embed`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider   -- OpenAI-compatible embeddings API
#   HashingEmbeddingProvider  -- deterministic bag-of-words vectors (dev/tests)
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for one batch of texts.

        Parameters
        ----------
        texts:
            At most :meth:`max_batch_size` strings.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*, each of length
            :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.ProviderUnavailableError
            Timeout, connection failure, or 5xx from the service (transient).
        src.utils.errors.RateLimitError
            HTTP 429 from the service (transient).
        src.utils.errors.EmbeddingError
            Any non-transient failure (bad credentials, invalid input).
        """

    async def embed_single(self, text: str) -> list[float]:
        """Embed a single string (typically a search query)."""
        vectors = await self.embed([text])
        return vectors[0]

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors."""

    @abstractmethod
    def max_batch_size(self) -> int:
        """Return the provider's per-call input limit."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"openai-text-embedding-3-small"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""

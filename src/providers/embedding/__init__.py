"""Embedding provider implementations.

Two implementations of IEmbeddingProvider:
    1. OpenAIEmbeddingProvider  -- text-embedding-3-small (1536 dims) or any
       OpenAI-compatible endpoint.  Requires an API key.
    2. HashingEmbeddingProvider -- deterministic feature hashing with numpy.
       No model, no network; used for local development and tests.
"""

from src.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["HashingEmbeddingProvider", "OpenAIEmbeddingProvider"]

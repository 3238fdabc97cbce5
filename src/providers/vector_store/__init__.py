"""Vector index implementations.

Two implementations of IVectorIndexProvider:
    - ChromaDBVectorIndex  -- persistent, one cosine collection per classroom
      namespace, stored at CHROMADB_PERSIST_DIR.
    - InMemoryVectorIndex  -- numpy cosine search, for development and tests.

To swap in another vector database (Qdrant, Pinecone, pgvector), implement
IVectorIndexProvider and register it in main.py.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBVectorIndex
from src.providers.vector_store.memory_vector_index import InMemoryVectorIndex

__all__ = ["ChromaDBVectorIndex", "InMemoryVectorIndex"]

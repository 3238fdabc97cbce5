"""Abstract interfaces for every external collaborator.

Services depend only on these ABCs; concrete adapters live under
``src/providers/`` and are wired together in ``src/main.py``.
"""

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.extractor import IExtractor
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.metadata_store import IMetadataStore
from src.interfaces.object_store import IObjectStore
from src.interfaces.tier_provider import ITierProvider
from src.interfaces.vector_store_provider import IVectorIndexProvider

__all__ = [
    "IEmbeddingProvider",
    "IExtractor",
    "ILLMProvider",
    "IMetadataStore",
    "IObjectStore",
    "ITierProvider",
    "IVectorIndexProvider",
]

"""Deterministic local embedding provider using feature hashing.

Maps each content word to a signed bucket of a fixed-size vector (the
"hashing trick"), then L2-normalises.  There is no model and no network:
vectors depend only on the input text, so two runs over the same corpus
produce identical indexes.  Texts that share vocabulary score high under
cosine similarity; texts with disjoint vocabulary score near zero.

Used for local development without API keys and as the embedding backend
of the end-to-end tests.
"""

from __future__ import annotations

import hashlib
import re

import numpy as np
import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DIMENSION = 512
_BATCH_LIMIT = 256

_TOKEN_RE = re.compile(r"[a-z0-9]+")

_STOPWORDS = frozenset(
    """
    a an and are as at be by can do does for from has have how in into is it its
    of on or that the their them there these this to was were what when where
    which who why will with you your about explain describe tell me
    """.split()
)


class HashingEmbeddingProvider(IEmbeddingProvider):
    """Feature-hashing embedder with a fixed dimension."""

    def __init__(self, dimension: int = _DEFAULT_DIMENSION, batch_limit: int = _BATCH_LIMIT) -> None:
        self._dimension = dimension
        self._batch_limit = batch_limit

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._vectorize(text).tolist() for text in texts]

    def get_dimension(self) -> int:
        return self._dimension

    def max_batch_size(self) -> int:
        return self._batch_limit

    def get_provider_name(self) -> str:
        return "hashing"

    def is_available(self) -> bool:
        return True

    def _vectorize(self, text: str) -> np.ndarray:
        vec = np.zeros(self._dimension, dtype=np.float32)
        for token in _TOKEN_RE.findall(text.lower()):
            if len(token) < 3 or token in _STOPWORDS:
                continue
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[bucket] += sign
        norm = float(np.linalg.norm(vec))
        if norm > 0:
            vec /= norm
        return vec

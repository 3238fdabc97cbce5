"""Utility modules for StudyRAG.

- **errors** -- Domain-specific exception hierarchy rooted at StudyRAGError;
  each pipeline stage raises its own subclass so callers can handle failures
  granularly without broad ``except Exception`` blocks.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **retry** -- bounded exponential backoff with a per-attempt timeout for
  every external service call.
- **concurrency** -- per-document lock registry and background task tracking
  for ingestion.
- **tokens** -- token estimation and cost weighting for quota accounting.
"""

from src.utils.concurrency import BackgroundTasks, KeyedLocks
from src.utils.errors import (
    ConfigurationError,
    DocumentStateError,
    EmbeddingError,
    ExtractionError,
    GenerationError,
    InvalidRequestError,
    LLMError,
    NoRelevantContextError,
    NotFoundError,
    ProviderUnavailableError,
    QuotaExceededError,
    RateLimitError,
    StudyRAGError,
    VectorIndexError,
)
from src.utils.logging import configure_logging, get_logger
from src.utils.retry import call_with_retry
from src.utils.tokens import tokens_for_chars, weighted_tokens

__all__ = [
    "BackgroundTasks",
    "ConfigurationError",
    "DocumentStateError",
    "EmbeddingError",
    "ExtractionError",
    "GenerationError",
    "InvalidRequestError",
    "KeyedLocks",
    "LLMError",
    "NoRelevantContextError",
    "NotFoundError",
    "ProviderUnavailableError",
    "QuotaExceededError",
    "RateLimitError",
    "StudyRAGError",
    "VectorIndexError",
    "call_with_retry",
    "configure_logging",
    "get_logger",
    "tokens_for_chars",
    "weighted_tokens",
]

"""Custom exception hierarchy for StudyRAG.

All application exceptions inherit from :class:`StudyRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by pipeline domain:

    StudyRAGError  (base -- catch-all for any StudyRAG error)
    +-- ConfigurationError       (startup / missing config)
    +-- ProviderUnavailableError (external service down / timed out / 5xx)
    +-- RateLimitError           (provider rate-limit exceeded)
    +-- LLMError                 (raw completion call failure inside an adapter)
    +-- ExtractionError          (text extraction, after primary + fallback)
    +-- EmbeddingError           (embedding service, after retries)
    +-- VectorIndexError         (vector index, after retries)
    +-- QuotaExceededError       (tier limit would be breached)
    +-- NoRelevantContextError   (grounded generation with nothing to ground on)
    +-- GenerationError          (completion failure or unparseable output)
    +-- DocumentStateError       (illegal or lost status transition)
    +-- NotFoundError            (unknown classroom / document / account)
    +-- InvalidRequestError      (malformed request at the boundary)

Provider adapters raise ``ProviderUnavailableError`` / ``RateLimitError`` /
``LLMError``; the orchestrators convert anything that survives retries into
the domain errors below them so no raw provider exception leaks past a
service boundary.
"""


class StudyRAGError(Exception):
    """Base exception for all StudyRAG errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(StudyRAGError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Transient provider errors (retried by src.utils.retry)
# ---------------------------------------------------------------------------

class ProviderUnavailableError(StudyRAGError):
    """Raised when an external service is unreachable, times out, or returns 5xx.

    Treated as transient: the retry helper backs off and tries again.
    """

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(StudyRAGError):
    """Raised when an API rate limit is exceeded (HTTP 429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(StudyRAGError):
    """Raised when a completion or vision API call fails non-transiently."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class ExtractionError(StudyRAGError):
    """Raised when text extraction fails after primary and fallback extractors.

    ``weighted_tokens`` is the cost of calls that completed before the
    failure, so the caller can still charge it.
    """

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
        weighted_tokens: int = 0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.weighted_tokens = weighted_tokens


class EmbeddingError(StudyRAGError):
    """Raised when the embedding service fails persistently."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorIndexError(StudyRAGError):
    """Raised when a vector index upsert, query, or delete fails persistently."""

    def __init__(
        self,
        message: str = "Vector index operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentStateError(StudyRAGError):
    """Raised when a document status transition is illegal or was lost to a race."""

    def __init__(
        self,
        message: str = "Illegal document status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Generation / quota errors (user visible)
# ---------------------------------------------------------------------------

class QuotaExceededError(StudyRAGError):
    """Raised before any external call when a request would exceed a tier limit."""

    def __init__(
        self,
        message: str = "Quota exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NoRelevantContextError(StudyRAGError):
    """Raised when document-grounded generation found nothing above the relevance threshold."""

    def __init__(
        self,
        message: str = "No relevant content found in the selected documents",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationError(StudyRAGError):
    """Raised when the completion service fails or its output cannot be parsed."""

    def __init__(
        self,
        message: str = "Generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Boundary errors
# ---------------------------------------------------------------------------

class NotFoundError(StudyRAGError):
    """Raised when a classroom, document, or account does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidRequestError(StudyRAGError):
    """Raised when a request is malformed (e.g. topicless general-knowledge generation)."""

    def __init__(
        self,
        message: str = "Invalid request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)

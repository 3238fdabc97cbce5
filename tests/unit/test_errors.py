"""Unit tests for the exception hierarchy and its HTTP status mapping."""

from __future__ import annotations

import pytest

from src.api.middleware import status_for
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


class TestStudyRAGError:
    def test_str_prefixes_provider(self) -> None:
        exc = LLMError(message="Rate limit exceeded", provider_name="openai")
        assert str(exc) == "[openai] Rate limit exceeded"

    def test_str_without_provider(self) -> None:
        assert str(NotFoundError(message="Classroom x not found")) == "Classroom x not found"

    def test_subclasses_share_the_base(self) -> None:
        for cls in (ExtractionError, EmbeddingError, VectorIndexError, GenerationError):
            assert issubclass(cls, StudyRAGError)


class TestStatusFor:
    @pytest.mark.parametrize(
        ("exc", "status"),
        [
            (InvalidRequestError(), 400),
            (NotFoundError(), 404),
            (DocumentStateError(), 409),
            (NoRelevantContextError(), 422),
            (QuotaExceededError(), 429),
            (GenerationError(), 502),
            (EmbeddingError(), 502),
            (VectorIndexError(), 502),
            (ExtractionError(), 502),
            (LLMError(), 502),
            (RateLimitError(), 502),
            (ProviderUnavailableError(), 502),
            (ConfigurationError(), 500),
            (StudyRAGError(), 500),
        ],
    )
    def test_mapping(self, exc: StudyRAGError, status: int) -> None:
        assert status_for(exc) == status

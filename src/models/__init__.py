"""StudyRAG domain models -- re-exports all public model classes.

The models are organized across four submodules by domain concern:
    - document.py   -- Classrooms, documents (status state machine), chunks,
                       extracted text
    - rag.py        -- Passages, vector entries/matches, retrieval results
    - artifacts.py  -- Generation requests and generated study artifacts
    - usage.py      -- Account tiers, tier tables, usage counters
"""

from __future__ import annotations

from src.models.artifacts import (
    ChatPayload,
    ChatTurn,
    Flashcard,
    FlashcardPayload,
    GeneratedArtifact,
    GenerationKind,
    GenerationMode,
    GenerationRequest,
    QuizPayload,
    QuizQuestion,
    SourceRef,
    SummaryLength,
    SummaryPayload,
)
from src.models.completion import CompletionResult
from src.models.document import (
    ALLOWED_TRANSITIONS,
    Chunk,
    Classroom,
    Document,
    DocumentStatus,
    ExtractedText,
)
from src.models.rag import (
    IngestionReport,
    Passage,
    RetrievalResult,
    RetrievalScope,
    RetrievedChunk,
    VectorEntry,
    VectorMatch,
)
from src.models.usage import (
    AccountTier,
    ExtractorRoute,
    TierLimits,
    TierTable,
    UsageCounter,
    UsageSnapshot,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AccountTier",
    "ChatPayload",
    "ChatTurn",
    "Chunk",
    "Classroom",
    "CompletionResult",
    "Document",
    "DocumentStatus",
    "ExtractedText",
    "ExtractorRoute",
    "Flashcard",
    "FlashcardPayload",
    "GeneratedArtifact",
    "GenerationKind",
    "GenerationMode",
    "GenerationRequest",
    "IngestionReport",
    "Passage",
    "QuizPayload",
    "QuizQuestion",
    "RetrievalResult",
    "RetrievalScope",
    "RetrievedChunk",
    "SourceRef",
    "SummaryLength",
    "SummaryPayload",
    "TierLimits",
    "TierTable",
    "UsageCounter",
    "UsageSnapshot",
    "VectorEntry",
    "VectorMatch",
]

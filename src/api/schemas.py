"""Pydantic request/response schemas for the StudyRAG API.

Defines the public contract for every REST endpoint: classrooms, document
upload and status, chat, flashcard sets, quiz sets, summaries, and usage.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These models define the *shape* of every HTTP request and response
# body.  FastAPI uses them for validation, serialization, and the
# generated OpenAPI docs (visible at /docs).
#
# JSON field names are camelCase (``documentIds``, ``focusTopic``,
# ``hasRelevantContext``) through an alias generator; Python code keeps
# snake_case attribute names.  Request schemas end with "Request",
# response schemas end with "Response".
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.artifacts import (
    ChatPayload,
    FlashcardPayload,
    GeneratedArtifact,
    QuizPayload,
    SummaryLength,
    SummaryPayload,
)
from src.models.document import Classroom, Document
from src.models.usage import UsageSnapshot


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, bool | str]


# ---------------------------------------------------------------------------
# Classrooms and documents
# ---------------------------------------------------------------------------


class CreateClassroomRequest(_CamelModel):
    name: str = Field(..., min_length=1, max_length=200)


class ClassroomResponse(_CamelModel):
    id: str
    account_id: str
    name: str
    created_at: datetime

    @classmethod
    def from_model(cls, classroom: Classroom) -> "ClassroomResponse":
        return cls(**classroom.model_dump())


class DocumentResponse(_CamelModel):
    """A document and its ingestion status."""

    id: str
    classroom_id: str
    filename: str
    mime_type: str
    size_bytes: int
    status: str
    extractor_used: str | None = None
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, document: Document) -> "DocumentResponse":
        data = document.model_dump(exclude={"storage_key"})
        data["status"] = document.status.value
        return cls(**data)


class DocumentListResponse(_CamelModel):
    documents: list[DocumentResponse]


# ---------------------------------------------------------------------------
# Generation requests
# ---------------------------------------------------------------------------


class ChatTurnInput(_CamelModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=8000)


class ChatRequest(_CamelModel):
    """A chat question.  No ``documentIds`` means the whole classroom."""

    question: str = Field(..., min_length=1, max_length=4000)
    document_ids: list[str] = Field(default_factory=list)
    history: list[ChatTurnInput] = Field(default_factory=list, max_length=100)


class _StudySetRequest(_CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    focus_topic: str | None = Field(default=None, max_length=500)
    document_ids: list[str] = Field(default_factory=list)


class FlashcardSetRequest(_StudySetRequest):
    count: int = Field(default=10, ge=1, le=50)


class QuizSetRequest(_StudySetRequest):
    count: int = Field(default=10, ge=1, le=50)


class SummaryRequest(_StudySetRequest):
    length: SummaryLength = SummaryLength.MEDIUM


# ---------------------------------------------------------------------------
# Generation responses
# ---------------------------------------------------------------------------


class SourceResponse(_CamelModel):
    document_id: str
    filename: str
    score: float | None = None
    chunk_index: int | None = None


class ChatResponse(_CamelModel):
    id: str
    answer: str
    sources: list[SourceResponse]
    has_relevant_context: bool
    mode: str


class FlashcardResponse(_CamelModel):
    front: str
    back: str


class QuizQuestionResponse(_CamelModel):
    question: str
    correct_answer: str
    wrong_answers: list[str]


class ArtifactResponse(_CamelModel):
    """A generated flashcard set, quiz set, summary, or chat answer."""

    id: str
    classroom_id: str
    kind: str
    title: str
    focus_topic: str | None = None
    mode: str
    source_document_ids: list[str]
    sources: list[SourceResponse]
    has_relevant_context: bool
    cards: list[FlashcardResponse] | None = None
    questions: list[QuizQuestionResponse] | None = None
    summary: str | None = None
    length: str | None = None
    answer: str | None = None
    created_at: datetime

    @classmethod
    def from_model(cls, artifact: GeneratedArtifact) -> "ArtifactResponse":
        response = cls(
            id=artifact.id,
            classroom_id=artifact.classroom_id,
            kind=artifact.kind.value,
            title=artifact.title,
            focus_topic=artifact.focus_topic,
            mode=artifact.mode.value,
            source_document_ids=list(artifact.source_document_ids),
            sources=[SourceResponse(**s.model_dump()) for s in artifact.sources],
            has_relevant_context=artifact.has_relevant_context,
            created_at=artifact.created_at,
        )
        payload = artifact.payload
        if isinstance(payload, FlashcardPayload):
            response.cards = [FlashcardResponse(front=c.front, back=c.back) for c in payload.cards]
        elif isinstance(payload, QuizPayload):
            response.questions = [
                QuizQuestionResponse(
                    question=q.question,
                    correct_answer=q.correct_answer,
                    wrong_answers=list(q.distractors),
                )
                for q in payload.questions
            ]
        elif isinstance(payload, SummaryPayload):
            response.summary = payload.summary
            response.length = payload.length.value
        elif isinstance(payload, ChatPayload):
            response.answer = payload.answer
        return response


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


class UsageResponse(_CamelModel):
    account_id: str
    tier: str
    day: date
    weighted_tokens: int
    daily_token_cap: int
    remaining_tokens: int
    storage_bytes: int
    max_storage_bytes: int
    classroom_count: int
    max_classrooms: int

    @classmethod
    def from_model(cls, snapshot: UsageSnapshot) -> "UsageResponse":
        return cls(
            account_id=snapshot.account_id,
            tier=snapshot.tier.value,
            day=snapshot.day,
            weighted_tokens=snapshot.weighted_tokens,
            daily_token_cap=snapshot.daily_token_cap,
            remaining_tokens=snapshot.remaining_tokens,
            storage_bytes=snapshot.storage_bytes,
            max_storage_bytes=snapshot.max_storage_bytes,
            classroom_count=snapshot.classroom_count,
            max_classrooms=snapshot.max_classrooms,
        )

"""Generated study artifacts: chat answers, flashcard sets, quizzes, summaries.

Every artifact records its grounding mode.  A DOCUMENT_GROUNDED artifact
must list at least one source document; a GENERAL_KNOWLEDGE artifact lists
none.  The model validator below enforces both rules and checks that the
payload kind matches the artifact kind.  The focus-topic requirement for
general-knowledge study sets is a request rule, checked by the
generation service before any external call; a chat answer that fell back to general knowledge has
no topic.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.document import utcnow

QUIZ_DISTRACTORS = 3


class GenerationKind(str, Enum):
    CHAT_ANSWER = "CHAT_ANSWER"
    FLASHCARDS = "FLASHCARDS"
    QUIZ = "QUIZ"
    SUMMARY = "SUMMARY"


class GenerationMode(str, Enum):
    DOCUMENT_GROUNDED = "DOCUMENT_GROUNDED"
    GENERAL_KNOWLEDGE = "GENERAL_KNOWLEDGE"


class SummaryLength(str, Enum):
    """Target length bands, in words."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"

    @property
    def word_range(self) -> tuple[int, int]:
        return _SUMMARY_WORDS[self]


_SUMMARY_WORDS: dict[SummaryLength, tuple[int, int]] = {
    SummaryLength.SHORT: (150, 250),
    SummaryLength.MEDIUM: (400, 600),
    SummaryLength.LONG: (800, 1200),
}


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class Flashcard(BaseModel):
    model_config = ConfigDict(frozen=True)

    front: str = Field(min_length=1)
    back: str = Field(min_length=1)


class QuizQuestion(BaseModel):
    """Multiple choice: exactly one correct answer and three distractors."""

    model_config = ConfigDict(frozen=True)

    question: str = Field(min_length=1)
    correct_answer: str = Field(min_length=1)
    distractors: list[str] = Field(min_length=QUIZ_DISTRACTORS, max_length=QUIZ_DISTRACTORS)

    @model_validator(mode="after")
    def _distinct_options(self) -> "QuizQuestion":
        options = [self.correct_answer.strip().lower()] + [d.strip().lower() for d in self.distractors]
        if any(not o for o in options) or len(set(options)) != len(options):
            raise ValueError("quiz options must be non-empty and distinct")
        return self


class SourceRef(BaseModel):
    """A citation back to a document passage."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    score: float | None = None
    chunk_index: int | None = None


# ---------------------------------------------------------------------------
# Payloads -- one shape per GenerationKind, discriminated by ``kind``.
# ---------------------------------------------------------------------------

class ChatPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[GenerationKind.CHAT_ANSWER] = GenerationKind.CHAT_ANSWER
    question: str
    answer: str


class FlashcardPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[GenerationKind.FLASHCARDS] = GenerationKind.FLASHCARDS
    cards: list[Flashcard]


class QuizPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[GenerationKind.QUIZ] = GenerationKind.QUIZ
    questions: list[QuizQuestion]


class SummaryPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[GenerationKind.SUMMARY] = GenerationKind.SUMMARY
    length: SummaryLength
    summary: str


ArtifactPayload = Annotated[
    Union[ChatPayload, FlashcardPayload, QuizPayload, SummaryPayload],
    Field(discriminator="kind"),
]


class GenerationRequest(BaseModel):
    """Everything the Generation Orchestrator needs for one request.

    ``count`` applies to flashcards and quizzes, ``length`` to summaries,
    ``question``/``history`` to chat.  ``document_ids`` empty plus
    ``classroom_wide`` False means general-knowledge mode.
    """

    model_config = ConfigDict(frozen=True)

    account_id: str
    classroom_id: str
    title: str = ""
    focus_topic: str | None = None
    document_ids: list[str] = Field(default_factory=list)
    classroom_wide: bool = False
    count: int = Field(default=10, ge=1, le=50)
    length: SummaryLength = SummaryLength.MEDIUM
    question: str | None = None
    history: list[ChatTurn] = Field(default_factory=list)

    @property
    def wants_retrieval(self) -> bool:
        return bool(self.document_ids) or self.classroom_wide

    @property
    def topic(self) -> str | None:
        if self.focus_topic is None:
            return None
        return self.focus_topic.strip() or None


class GeneratedArtifact(BaseModel):
    """A persisted result of a successful generation."""

    model_config = ConfigDict(frozen=True)

    id: str
    classroom_id: str
    kind: GenerationKind
    title: str
    focus_topic: str | None = None
    mode: GenerationMode
    source_document_ids: list[str] = Field(default_factory=list)
    sources: list[SourceRef] = Field(default_factory=list)
    has_relevant_context: bool = False
    payload: ArtifactPayload
    model: str | None = None
    weighted_tokens: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _grounding_is_consistent(self) -> "GeneratedArtifact":
        if self.mode == GenerationMode.DOCUMENT_GROUNDED and not self.source_document_ids:
            raise ValueError("document-grounded artifacts need at least one source document")
        if self.mode == GenerationMode.GENERAL_KNOWLEDGE and self.source_document_ids:
            raise ValueError("general-knowledge artifacts cannot cite source documents")
        if self.payload.kind != self.kind:
            raise ValueError("payload kind does not match artifact kind")
        return self

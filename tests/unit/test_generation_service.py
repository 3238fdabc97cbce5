"""Unit tests for the GenerationService -- grounding modes, quota and persistence."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.artifacts import (
    ChatTurn,
    GenerationKind,
    GenerationMode,
    GenerationRequest,
    SummaryLength,
)
from src.models.completion import CompletionResult
from src.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.services.generation.generation_service import GenerationService
from src.services.quota_guard import QuotaGuard
from src.services.retrieval_service import RetrievalAssembler
from src.utils.errors import (
    GenerationError,
    InvalidRequestError,
    LLMError,
    NoRelevantContextError,
    NotFoundError,
    ProviderUnavailableError,
    QuotaExceededError,
)

_ACCOUNT = "acct-1"

PHOTOSYNTHESIS = (
    "Photosynthesis converts light energy into chemical energy. Chlorophyll "
    "absorbs light inside chloroplasts, and photosynthesis releases oxygen "
    "as a byproduct of splitting water."
)
MITOSIS = (
    "Mitosis divides one nucleus into two identical nuclei. During mitosis the "
    "chromosomes condense, align at the spindle equator, and separate into "
    "sister chromatids before cytokinesis."
)
PHOTOSYNTHESIS_TOPIC = "photosynthesis light energy chloroplasts"


# ── Helpers ──────────────────────────────────────────────


def _completion(text: str, *, input_tokens: int = 100, output_tokens: int = 50) -> CompletionResult:
    return CompletionResult(
        text=text,
        model="gpt-4o-mini",
        provider="mock-llm",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


def _cards_json(n: int) -> str:
    return json.dumps([{"front": f"Question {i}?", "back": f"Answer {i}"} for i in range(n)])


def _quiz_json(n: int) -> str:
    return json.dumps(
        [
            {
                "question": f"Which organelle hosts step {i}?",
                "correctAnswer": "Chloroplast",
                "wrongAnswers": ["Nucleus", "Ribosome", "Golgi body"],
            }
            for i in range(n)
        ]
    )


def _request(classroom_id: str, **overrides) -> GenerationRequest:
    fields = {"account_id": _ACCOUNT, "classroom_id": classroom_id}
    fields.update(overrides)
    return GenerationRequest(**fields)


@pytest.fixture()
def service(
    mock_llm: MagicMock,
    retrieval: RetrievalAssembler,
    quota: QuotaGuard,
    store: SQLiteMetadataStore,
) -> GenerationService:
    return GenerationService(
        mock_llm, retrieval, quota, store, attempts=2, base_delay=0, timeout=5
    )


# ── Study artifacts ──────────────────────────────────────


class TestFlashcards:
    @pytest.mark.asyncio()
    async def test_grounded_flashcards_cite_their_document(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        store: SQLiteMetadataStore,
        make_classroom,
        make_document,
    ) -> None:
        classroom = await make_classroom()
        document = await make_document(classroom, PHOTOSYNTHESIS, filename="bio.txt")
        mock_llm.complete.return_value = _completion(_cards_json(10))

        artifact = await service.generate(
            GenerationKind.FLASHCARDS,
            _request(
                classroom.id,
                document_ids=[document.id],
                focus_topic=PHOTOSYNTHESIS_TOPIC,
                count=10,
            ),
        )

        assert artifact.mode is GenerationMode.DOCUMENT_GROUNDED
        assert artifact.has_relevant_context is True
        assert artifact.source_document_ids == [document.id]
        assert artifact.sources[0].filename == "bio.txt"
        assert len(artifact.payload.cards) == 10
        assert await store.get_artifact(artifact.id) == artifact

        user_prompt = mock_llm.complete.await_args.kwargs["user_prompt"]
        assert "Study Material:" in user_prompt
        assert "chloroplasts" in user_prompt

    @pytest.mark.asyncio()
    async def test_general_knowledge_needs_no_retrieval(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        embedding_provider: HashingEmbeddingProvider,
        make_classroom,
    ) -> None:
        classroom = await make_classroom()
        mock_llm.complete.return_value = _completion(_cards_json(5))

        artifact = await service.generate(
            GenerationKind.FLASHCARDS,
            _request(classroom.id, focus_topic="The French Revolution", count=5),
        )

        assert artifact.mode is GenerationMode.GENERAL_KNOWLEDGE
        assert artifact.source_document_ids == []
        assert artifact.title == "Flashcards: The French Revolution"
        embedding_provider.embed.assert_not_awaited()
        assert "Topic:\nThe French Revolution" in mock_llm.complete.await_args.kwargs["user_prompt"]

    @pytest.mark.asyncio()
    async def test_malformed_output_saves_nothing(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        store: SQLiteMetadataStore,
        make_classroom,
    ) -> None:
        classroom = await make_classroom()
        mock_llm.complete.return_value = _completion("Sure! Here are your cards: front/back...")

        with pytest.raises(GenerationError):
            await service.generate(
                GenerationKind.FLASHCARDS,
                _request(classroom.id, focus_topic="Cell biology"),
            )

        assert await store.list_artifacts(classroom.id) == []

    @pytest.mark.asyncio()
    async def test_usage_is_recorded_even_when_parsing_fails(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        quota: QuotaGuard,
        make_classroom,
    ) -> None:
        classroom = await make_classroom()
        mock_llm.complete.return_value = _completion("not json")

        with pytest.raises(GenerationError):
            await service.generate(
                GenerationKind.FLASHCARDS,
                _request(classroom.id, focus_topic="Cell biology"),
            )

        assert (await quota.snapshot(_ACCOUNT)).weighted_tokens == 30


class TestQuizAndSummary:
    @pytest.mark.asyncio()
    async def test_quiz_questions_are_parsed(
        self, service: GenerationService, mock_llm: MagicMock, make_classroom
    ) -> None:
        classroom = await make_classroom()
        mock_llm.complete.return_value = _completion(f"```json\n{_quiz_json(3)}\n```")

        artifact = await service.generate(
            GenerationKind.QUIZ,
            _request(classroom.id, focus_topic="Plant cells", count=3),
        )

        assert artifact.kind is GenerationKind.QUIZ
        assert len(artifact.payload.questions) == 3
        assert artifact.payload.questions[0].distractors == ["Nucleus", "Ribosome", "Golgi body"]

    @pytest.mark.asyncio()
    async def test_summary_over_selected_documents(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        make_classroom,
        make_document,
    ) -> None:
        classroom = await make_classroom()
        document = await make_document(classroom, PHOTOSYNTHESIS)
        mock_llm.complete.return_value = _completion("Plants turn light into sugar.")

        artifact = await service.generate(
            GenerationKind.SUMMARY,
            _request(
                classroom.id,
                document_ids=[document.id],
                focus_topic=PHOTOSYNTHESIS_TOPIC,
                length=SummaryLength.SHORT,
            ),
        )

        assert artifact.payload.summary == "Plants turn light into sugar."
        assert artifact.payload.length is SummaryLength.SHORT
        assert "150-250 words" in mock_llm.complete.await_args.kwargs["user_prompt"]

    @pytest.mark.asyncio()
    async def test_summary_without_documents_or_topic_is_rejected_up_front(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        embedding_provider: HashingEmbeddingProvider,
        make_classroom,
    ) -> None:
        classroom = await make_classroom()

        with pytest.raises(InvalidRequestError, match="focusTopic"):
            await service.generate(
                GenerationKind.SUMMARY, _request(classroom.id, focus_topic="   ")
            )

        mock_llm.complete.assert_not_awaited()
        embedding_provider.embed.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_irrelevant_documents_fail_study_artifacts(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        make_classroom,
        make_document,
    ) -> None:
        classroom = await make_classroom()
        document = await make_document(classroom, MITOSIS)

        with pytest.raises(NoRelevantContextError):
            await service.generate(
                GenerationKind.QUIZ,
                _request(
                    classroom.id,
                    document_ids=[document.id],
                    focus_topic="volcanic magma eruptions",
                ),
            )

        mock_llm.complete.assert_not_awaited()


# ── Chat ─────────────────────────────────────────────────


class TestChat:
    @pytest.mark.asyncio()
    async def test_relevant_question_is_grounded(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        make_classroom,
        make_document,
    ) -> None:
        classroom = await make_classroom()
        document = await make_document(classroom, PHOTOSYNTHESIS)

        artifact = await service.generate(
            GenerationKind.CHAT_ANSWER,
            _request(
                classroom.id,
                question="How does photosynthesis convert light energy in chloroplasts?",
            ),
        )

        assert artifact.mode is GenerationMode.DOCUMENT_GROUNDED
        assert artifact.has_relevant_context is True
        assert artifact.source_document_ids == [document.id]
        assert artifact.payload.answer == "Plants make sugar from light."
        assert "[1]" in mock_llm.complete.await_args.kwargs["user_prompt"]

    @pytest.mark.asyncio()
    async def test_unrelated_question_degrades_to_general_knowledge(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        make_classroom,
        make_document,
    ) -> None:
        classroom = await make_classroom()
        await make_document(classroom, PHOTOSYNTHESIS)

        artifact = await service.generate(
            GenerationKind.CHAT_ANSWER,
            _request(classroom.id, question="Volcanic magma eruptions along tectonic plates?"),
        )

        assert artifact.mode is GenerationMode.GENERAL_KNOWLEDGE
        assert artifact.has_relevant_context is False
        assert artifact.sources == []
        mock_llm.complete.assert_awaited_once()
        assert "nothing closely related" in mock_llm.complete.await_args.kwargs["user_prompt"]

    @pytest.mark.asyncio()
    async def test_history_is_included(
        self, service: GenerationService, mock_llm: MagicMock, make_classroom
    ) -> None:
        classroom = await make_classroom()

        await service.generate(
            GenerationKind.CHAT_ANSWER,
            _request(
                classroom.id,
                question="And in animals?",
                history=[
                    ChatTurn(role="user", content="What is respiration?"),
                    ChatTurn(role="assistant", content="Releasing energy from glucose."),
                ],
            ),
        )

        user_prompt = mock_llm.complete.await_args.kwargs["user_prompt"]
        assert "User: What is respiration?" in user_prompt
        assert "Assistant: Releasing energy from glucose." in user_prompt

    @pytest.mark.asyncio()
    async def test_blank_question_is_rejected(
        self, service: GenerationService, make_classroom
    ) -> None:
        classroom = await make_classroom()
        with pytest.raises(InvalidRequestError):
            await service.generate(GenerationKind.CHAT_ANSWER, _request(classroom.id, question=" "))


# ── Quota, ownership and failures ────────────────────────


class TestGuards:
    @pytest.mark.asyncio()
    async def test_quota_at_cap_makes_no_external_calls(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        store: SQLiteMetadataStore,
        embedding_provider: HashingEmbeddingProvider,
        make_classroom,
        make_document,
    ) -> None:
        classroom = await make_classroom()
        document = await make_document(classroom, PHOTOSYNTHESIS)
        embedding_provider.embed.reset_mock()
        await store.add_usage(_ACCOUNT, datetime.now(timezone.utc).date(), 50_000)

        with pytest.raises(QuotaExceededError):
            await service.generate(
                GenerationKind.FLASHCARDS,
                _request(classroom.id, document_ids=[document.id], focus_topic=PHOTOSYNTHESIS_TOPIC),
            )

        mock_llm.complete.assert_not_awaited()
        embedding_provider.embed.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_usage_recorded_after_completion(
        self, service: GenerationService, mock_llm: MagicMock, quota: QuotaGuard, make_classroom
    ) -> None:
        classroom = await make_classroom()
        mock_llm.complete.return_value = _completion(
            "Answer.", input_tokens=400, output_tokens=100
        )

        artifact = await service.generate(
            GenerationKind.CHAT_ANSWER, _request(classroom.id, question="What is a cell?")
        )

        assert artifact.weighted_tokens == 100
        assert (await quota.snapshot(_ACCOUNT)).weighted_tokens == 100

    @pytest.mark.asyncio()
    async def test_classroom_of_another_account_is_not_found(
        self, service: GenerationService, mock_llm: MagicMock, make_classroom
    ) -> None:
        classroom = await make_classroom(account_id="acct-2")

        with pytest.raises(NotFoundError):
            await service.generate(
                GenerationKind.FLASHCARDS, _request(classroom.id, focus_topic="Cells")
            )

        mock_llm.complete.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_transient_failure_is_retried(
        self, service: GenerationService, mock_llm: MagicMock, make_classroom
    ) -> None:
        classroom = await make_classroom()
        mock_llm.complete = AsyncMock(
            side_effect=[
                ProviderUnavailableError(message="502 from upstream"),
                _completion("Recovered answer."),
            ]
        )

        artifact = await service.generate(
            GenerationKind.CHAT_ANSWER, _request(classroom.id, question="What is a cell?")
        )

        assert artifact.payload.answer == "Recovered answer."
        assert mock_llm.complete.await_count == 2

    @pytest.mark.asyncio()
    async def test_llm_error_becomes_generation_error(
        self,
        service: GenerationService,
        mock_llm: MagicMock,
        store: SQLiteMetadataStore,
        make_classroom,
    ) -> None:
        classroom = await make_classroom()
        mock_llm.complete = AsyncMock(side_effect=LLMError(message="content filter", provider_name="mock-llm"))

        with pytest.raises(GenerationError, match="content filter"):
            await service.generate(
                GenerationKind.CHAT_ANSWER, _request(classroom.id, question="What is a cell?")
            )

        mock_llm.complete.assert_awaited_once()
        assert await store.list_artifacts(classroom.id) == []

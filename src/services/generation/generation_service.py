"""Generation Orchestrator -- chat answers, flashcards, quizzes and summaries.

Request flow, in order:

1. **Validate** -- general-knowledge requests (no documents selected) must
   carry a focus topic; chat needs a question.  Checked before anything
   external is touched.
2. **Quota** -- an upper-bound token estimate is checked against today's
   counter.  A rejected request makes no embedding or completion call.
3. **Retrieve** -- document-grounded requests go through the Retrieval
   Assembler.  Chat with no explicit documents searches the whole classroom.
   Weak context degrades a chat answer to general knowledge but fails a
   study artifact with :class:`NoRelevantContextError`.
4. **Complete** -- one completion call with bounded retries.  The call and
   its usage accounting run in a tracked task shielded from the caller, so
   a disconnecting client cannot drop accounting for a dispatched call.
5. **Parse** -- the kind-specific parser builds the payload or raises
   :class:`GenerationError`.  Only a fully parsed artifact is persisted.
"""

from __future__ import annotations

import asyncio
import math
import uuid

import structlog

from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.metadata_store import IMetadataStore
from src.models.artifacts import (
    ChatPayload,
    FlashcardPayload,
    GeneratedArtifact,
    GenerationKind,
    GenerationMode,
    GenerationRequest,
    QuizPayload,
    SourceRef,
    SummaryPayload,
)
from src.models.completion import CompletionResult
from src.models.rag import RetrievalResult, RetrievalScope, RetrievedChunk
from src.services.generation import parsers, prompts
from src.services.quota_guard import QuotaGuard
from src.services.retrieval_service import RetrievalAssembler
from src.utils.concurrency import BackgroundTasks
from src.utils.errors import (
    GenerationError,
    InvalidRequestError,
    NoRelevantContextError,
    NotFoundError,
    StudyRAGError,
)
from src.utils.retry import call_with_retry
from src.utils.tokens import tokens_for_chars

logger = structlog.get_logger(logger_name=__name__)

# Passages fetched for study artifacts; chat uses the assembler's default.
_MATERIAL_TOP_K = 20

# Prompt scaffolding (instructions, formatting) on top of the variable parts.
_PROMPT_OVERHEAD_CHARS = 2000

_DEFAULT_TITLES: dict[GenerationKind, str] = {
    GenerationKind.CHAT_ANSWER: "Chat answer",
    GenerationKind.FLASHCARDS: "Flashcards",
    GenerationKind.QUIZ: "Quiz",
    GenerationKind.SUMMARY: "Summary",
}


class GenerationService:
    """Builds study artifacts from retrieved passages or a focus topic.

    Parameters
    ----------
    llm:
        Completion provider.
    retrieval:
        Retrieval Assembler used for document-grounded requests.
    quota:
        Quota Guard for the pre-call check and post-call accounting.
    store:
        Metadata store; artifacts are saved here on success.
    tasks:
        Task registry that owns shielded completion calls.
    max_context_chars:
        Upper bound on the passage text placed in a prompt.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        retrieval: RetrievalAssembler,
        quota: QuotaGuard,
        store: IMetadataStore,
        *,
        tasks: BackgroundTasks | None = None,
        max_context_chars: int = 15000,
        attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float = 30.0,
    ) -> None:
        self._llm = llm
        self._retrieval = retrieval
        self._quota = quota
        self._store = store
        self._tasks = tasks or BackgroundTasks()
        self._max_context_chars = max_context_chars
        self._attempts = attempts
        self._base_delay = base_delay
        self._timeout = timeout

    async def generate(self, kind: GenerationKind, request: GenerationRequest) -> GeneratedArtifact:
        """Generate, persist and return one artifact.

        Raises
        ------
        InvalidRequestError
            Missing focus topic in general-knowledge mode, or missing chat question.
        NotFoundError
            Unknown classroom, or one the account does not own.
        QuotaExceededError
            The estimated cost does not fit in today's budget.
        NoRelevantContextError
            A document-grounded study artifact found nothing above threshold.
        EmbeddingError, VectorIndexError
            Retrieval failed.
        GenerationError
            The completion call failed or returned unusable output.
        """
        self._validate(kind, request)

        classroom = await self._store.get_classroom(request.classroom_id)
        if classroom is None or classroom.account_id != request.account_id:
            raise NotFoundError(message=f"Classroom {request.classroom_id} not found")

        max_tokens = self._max_output_tokens(kind, request)
        grounded_request = kind is GenerationKind.CHAT_ANSWER or request.wants_retrieval
        estimate = self._quota.weigh(
            self._estimate_input_tokens(request, grounded_request) + max_tokens,
            self._llm.get_model_name(),
        )
        await self._quota.check_and_reserve(request.account_id, estimate)

        retrieval: RetrievalResult | None = None
        relevant: list[RetrievedChunk] = []
        if grounded_request:
            retrieval = await self._retrieve(kind, request)
            if retrieval.has_relevant_context:
                relevant = [
                    c for c in retrieval.chunks if c.score >= self._retrieval.relevance_threshold
                ]
            elif kind is not GenerationKind.CHAT_ANSWER:
                logger.info(
                    "generation_no_relevant_context",
                    kind=kind.value,
                    classroom_id=request.classroom_id,
                    top_score=round(retrieval.top_score, 4),
                    searched_documents=len(retrieval.searched_document_ids),
                )
                raise NoRelevantContextError(
                    message=(
                        "The selected documents do not contain material relevant to this "
                        "request. Choose other documents or add a focus topic without documents."
                    ),
                )

        material = prompts.format_passages(relevant, self._max_context_chars) if relevant else None
        system_prompt, user_prompt = self._build_prompt(kind, request, material, retrieval)

        result, weighted = await self._complete(
            request.account_id, system_prompt, user_prompt, max_tokens
        )

        payload = self._parse(kind, request, result.text)
        artifact = self._build_artifact(kind, request, payload, relevant, result, weighted)
        saved = await self._store.save_artifact(artifact)

        logger.info(
            "generation_complete",
            kind=kind.value,
            classroom_id=request.classroom_id,
            mode=saved.mode.value,
            sources=len(saved.source_document_ids),
            model=result.model,
            weighted_tokens=weighted,
        )
        return saved

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(kind: GenerationKind, request: GenerationRequest) -> None:
        if kind is GenerationKind.CHAT_ANSWER:
            if not (request.question and request.question.strip()):
                raise InvalidRequestError(message="A question is required")
            return
        if not request.wants_retrieval and request.topic is None:
            raise InvalidRequestError(
                message="focusTopic is required when no documents are selected",
            )

    async def _retrieve(self, kind: GenerationKind, request: GenerationRequest) -> RetrievalResult:
        scope = RetrievalScope(
            classroom_id=request.classroom_id,
            document_ids=tuple(request.document_ids),
        )
        if kind is GenerationKind.CHAT_ANSWER:
            return await self._retrieval.retrieve(request.question or "", scope)
        query = request.topic or request.title or "key concepts, definitions and main ideas"
        return await self._retrieval.retrieve(query, scope, _MATERIAL_TOP_K)

    @staticmethod
    def _build_prompt(
        kind: GenerationKind,
        request: GenerationRequest,
        material: str | None,
        retrieval: RetrievalResult | None,
    ) -> tuple[str, str]:
        if kind is GenerationKind.CHAT_ANSWER:
            searched = retrieval is not None and bool(retrieval.searched_document_ids)
            return prompts.chat_prompt(request.question or "", material, request.history, searched)
        if kind is GenerationKind.FLASHCARDS:
            return prompts.flashcard_prompt(material, request.topic, request.count)
        if kind is GenerationKind.QUIZ:
            return prompts.quiz_prompt(material, request.topic, request.count)
        return prompts.summary_prompt(material, request.topic, request.length)

    async def _complete(
        self,
        account_id: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
    ) -> tuple[CompletionResult, int]:
        task = self._tasks.spawn(
            self._complete_and_record(account_id, system_prompt, user_prompt, max_tokens),
            name=f"completion-{account_id}",
        )
        try:
            return await asyncio.shield(task)
        except GenerationError:
            raise
        except StudyRAGError as exc:
            logger.error("generation_completion_failed", error=str(exc))
            raise GenerationError(
                message=f"Completion failed: {exc.message}",
                provider_name=exc.provider_name or self._llm.get_provider_name(),
            ) from exc

    async def _complete_and_record(
        self,
        account_id: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
    ) -> tuple[CompletionResult, int]:
        result = await call_with_retry(
            lambda: self._llm.complete(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_tokens=max_tokens,
            ),
            attempts=self._attempts,
            base_delay=self._base_delay,
            timeout=self._timeout,
            label="completion",
        )
        weighted = await self._quota.record_usage(account_id, result)
        return result, weighted

    @staticmethod
    def _parse(kind: GenerationKind, request: GenerationRequest, raw: str):
        if kind is GenerationKind.FLASHCARDS:
            return FlashcardPayload(cards=parsers.parse_flashcards(raw, request.count))
        if kind is GenerationKind.QUIZ:
            return QuizPayload(questions=parsers.parse_quiz(raw, request.count))
        if kind is GenerationKind.SUMMARY:
            return SummaryPayload(length=request.length, summary=parsers.parse_text(raw, "summary"))
        return ChatPayload(question=request.question or "", answer=parsers.parse_text(raw, "answer"))

    @staticmethod
    def _build_artifact(
        kind: GenerationKind,
        request: GenerationRequest,
        payload,
        relevant: list[RetrievedChunk],
        result: CompletionResult,
        weighted: int,
    ) -> GeneratedArtifact:
        sources = _dedupe_sources(relevant)
        mode = GenerationMode.DOCUMENT_GROUNDED if sources else GenerationMode.GENERAL_KNOWLEDGE

        title = request.title.strip()
        if not title:
            if kind is GenerationKind.CHAT_ANSWER:
                title = (request.question or "").strip()[:80]
            elif request.topic:
                title = f"{_DEFAULT_TITLES[kind]}: {request.topic}"
            else:
                title = _DEFAULT_TITLES[kind]

        return GeneratedArtifact(
            id=str(uuid.uuid4()),
            classroom_id=request.classroom_id,
            kind=kind,
            title=title,
            focus_topic=request.topic,
            mode=mode,
            source_document_ids=[s.document_id for s in sources],
            sources=sources,
            has_relevant_context=bool(sources),
            payload=payload,
            model=result.model,
            weighted_tokens=weighted,
        )

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def _estimate_input_tokens(self, request: GenerationRequest, grounded: bool) -> int:
        chars = _PROMPT_OVERHEAD_CHARS
        chars += len(request.question or "") + len(request.topic or "") + len(request.title)
        chars += sum(len(turn.content) for turn in request.history[-prompts.MAX_HISTORY_TURNS:])
        if grounded:
            chars += self._max_context_chars
        return tokens_for_chars(chars)

    @staticmethod
    def _max_output_tokens(kind: GenerationKind, request: GenerationRequest) -> int:
        if kind is GenerationKind.FLASHCARDS:
            return min(8000, 150 * request.count + 200)
        if kind is GenerationKind.QUIZ:
            return min(8000, 250 * request.count + 200)
        if kind is GenerationKind.SUMMARY:
            _, high_words = request.length.word_range
            return math.ceil(high_words * 1.6) + 200
        return 1500


def _dedupe_sources(chunks: list[RetrievedChunk]) -> list[SourceRef]:
    """One citation per document, keeping its best-scoring passage."""
    best: dict[str, RetrievedChunk] = {}
    for chunk in chunks:
        current = best.get(chunk.document_id)
        if current is None or chunk.score > current.score:
            best[chunk.document_id] = chunk
    ordered = sorted(best.values(), key=lambda c: c.score, reverse=True)
    return [
        SourceRef(
            document_id=c.document_id,
            filename=c.filename,
            score=round(c.score, 4),
            chunk_index=c.ordinal,
        )
        for c in ordered
    ]

"""FastAPI routes for the StudyRAG service.

Thin HTTP layer over the core services.  Service dependencies are resolved
from ``app.state`` via FastAPI's ``Depends`` using the ``Annotated`` pattern;
application errors are turned into JSON responses by
:class:`~src.api.middleware.ErrorHandlingMiddleware`.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                        Method  Description
# ─────────────────────────────────────────────────────────────────────
# /classrooms                                     POST    Create classroom
# /classrooms/{cid}/documents                     POST    Upload → PENDING → ingestion
# /classrooms/{cid}/documents                     GET     List documents + status
# /classrooms/{cid}/documents/{did}               GET     Document status
# /classrooms/{cid}/documents/{did}               DELETE  Delete document, chunks, vectors
# /classrooms/{cid}/chat                          POST    RAG chat answer
# /classrooms/{cid}/flashcard-sets                POST    Generate flashcards
# /classrooms/{cid}/quiz-sets                     POST    Generate quiz
# /classrooms/{cid}/summaries                     POST    Generate summary
# /account/usage                                  GET     Today's usage vs tier limits
# /health                                         GET     Health + provider status
#
# Every route except /health identifies the caller by the X-Account-Id
# header.  Authentication itself happens in front of this service.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import mimetypes
from typing import Annotated

from fastapi import APIRouter, Depends, File, Header, Request, UploadFile

from src.api.schemas import (
    ArtifactResponse,
    ChatRequest,
    ChatResponse,
    ClassroomResponse,
    CreateClassroomRequest,
    DocumentListResponse,
    DocumentResponse,
    ErrorResponse,
    FlashcardSetRequest,
    HealthResponse,
    QuizSetRequest,
    SourceResponse,
    SummaryRequest,
    UsageResponse,
)
from src.models.artifacts import ChatPayload, ChatTurn, GenerationKind, GenerationRequest
from src.services.document_service import DocumentService
from src.services.generation.generation_service import GenerationService
from src.utils.errors import InvalidRequestError

router = APIRouter()

_GENERIC_MIME = "application/octet-stream"

# Upload size ceiling per request; the per-account storage cap is enforced
# separately by the Quota Guard.
_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


# ---------------------------------------------------------------------------
# Dependency injection helpers -- resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_document_service(request: Request) -> DocumentService:
    return request.app.state.document_service


def _get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


DocumentServiceDep = Annotated[DocumentService, Depends(_get_document_service)]
GenerationServiceDep = Annotated[GenerationService, Depends(_get_generation_service)]
AccountIdDep = Annotated[str, Header(alias="X-Account-Id", min_length=1, max_length=128)]

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def _resolve_mime(upload: UploadFile) -> str:
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type and content_type != _GENERIC_MIME:
        return content_type
    guessed, _ = mimetypes.guess_type(upload.filename or "")
    return guessed or _GENERIC_MIME


# ---------------------------------------------------------------------------
# Classrooms and documents
# ---------------------------------------------------------------------------


@router.post(
    "/classrooms",
    response_model=ClassroomResponse,
    status_code=201,
    responses=_ERRORS,
    summary="Create a classroom",
)
async def create_classroom(
    body: CreateClassroomRequest,
    account_id: AccountIdDep,
    documents: DocumentServiceDep,
) -> ClassroomResponse:
    """Create a classroom, subject to the tier's classroom cap."""
    classroom = await documents.create_classroom(account_id, body.name)
    return ClassroomResponse.from_model(classroom)


@router.post(
    "/classrooms/{classroom_id}/documents",
    response_model=DocumentResponse,
    status_code=201,
    responses=_ERRORS,
    summary="Upload a document and start ingestion",
)
async def upload_document(
    classroom_id: str,
    account_id: AccountIdDep,
    documents: DocumentServiceDep,
    file: Annotated[UploadFile, File(...)],
) -> DocumentResponse:
    """Store the file and return the PENDING document; ingestion runs in the background."""
    data = await file.read(_MAX_UPLOAD_BYTES + 1)
    if len(data) > _MAX_UPLOAD_BYTES:
        raise InvalidRequestError(
            message=f"Files are limited to {_MAX_UPLOAD_BYTES // (1024 * 1024)} MB",
        )

    document = await documents.upload(
        account_id,
        classroom_id,
        filename=file.filename or "upload",
        mime_type=_resolve_mime(file),
        data=data,
    )
    return DocumentResponse.from_model(document)


@router.get(
    "/classrooms/{classroom_id}/documents",
    response_model=DocumentListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List documents in a classroom",
)
async def list_documents(
    classroom_id: str,
    account_id: AccountIdDep,
    documents: DocumentServiceDep,
) -> DocumentListResponse:
    items = await documents.list_documents(account_id, classroom_id)
    return DocumentListResponse(documents=[DocumentResponse.from_model(d) for d in items])


@router.get(
    "/classrooms/{classroom_id}/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a document and its ingestion status",
)
async def get_document(
    classroom_id: str,
    document_id: str,
    account_id: AccountIdDep,
    documents: DocumentServiceDep,
) -> DocumentResponse:
    document = await documents.get_document(account_id, classroom_id, document_id)
    return DocumentResponse.from_model(document)


@router.delete(
    "/classrooms/{classroom_id}/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document with its chunks and vectors",
)
async def delete_document(
    classroom_id: str,
    document_id: str,
    account_id: AccountIdDep,
    documents: DocumentServiceDep,
) -> DocumentResponse:
    document = await documents.delete_document(account_id, classroom_id, document_id)
    return DocumentResponse.from_model(document)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


@router.post(
    "/classrooms/{classroom_id}/chat",
    response_model=ChatResponse,
    responses=_ERRORS,
    summary="Ask a question about the classroom's documents",
)
async def chat(
    classroom_id: str,
    body: ChatRequest,
    account_id: AccountIdDep,
    generation: GenerationServiceDep,
) -> ChatResponse:
    """Answer from retrieved passages, or from general knowledge when none are relevant."""
    request = GenerationRequest(
        account_id=account_id,
        classroom_id=classroom_id,
        question=body.question,
        document_ids=body.document_ids,
        classroom_wide=not body.document_ids,
        history=[ChatTurn(role=t.role, content=t.content) for t in body.history],
    )
    artifact = await generation.generate(GenerationKind.CHAT_ANSWER, request)
    payload = artifact.payload
    answer = payload.answer if isinstance(payload, ChatPayload) else ""
    return ChatResponse(
        id=artifact.id,
        answer=answer,
        sources=[SourceResponse(**s.model_dump()) for s in artifact.sources],
        has_relevant_context=artifact.has_relevant_context,
        mode=artifact.mode.value,
    )


async def _generate_study_set(
    kind: GenerationKind,
    classroom_id: str,
    account_id: str,
    generation: GenerationService,
    **fields: object,
) -> ArtifactResponse:
    request = GenerationRequest(account_id=account_id, classroom_id=classroom_id, **fields)
    artifact = await generation.generate(kind, request)
    return ArtifactResponse.from_model(artifact)


@router.post(
    "/classrooms/{classroom_id}/flashcard-sets",
    response_model=ArtifactResponse,
    status_code=201,
    responses={**_ERRORS, 422: {"model": ErrorResponse}},
    summary="Generate a flashcard set",
)
async def create_flashcard_set(
    classroom_id: str,
    body: FlashcardSetRequest,
    account_id: AccountIdDep,
    generation: GenerationServiceDep,
) -> ArtifactResponse:
    """Generate flashcards from documents, or from ``focusTopic`` when no documents are given."""
    return await _generate_study_set(
        GenerationKind.FLASHCARDS,
        classroom_id,
        account_id,
        generation,
        title=body.title,
        focus_topic=body.focus_topic,
        document_ids=body.document_ids,
        count=body.count,
    )


@router.post(
    "/classrooms/{classroom_id}/quiz-sets",
    response_model=ArtifactResponse,
    status_code=201,
    responses={**_ERRORS, 422: {"model": ErrorResponse}},
    summary="Generate a multiple-choice quiz",
)
async def create_quiz_set(
    classroom_id: str,
    body: QuizSetRequest,
    account_id: AccountIdDep,
    generation: GenerationServiceDep,
) -> ArtifactResponse:
    return await _generate_study_set(
        GenerationKind.QUIZ,
        classroom_id,
        account_id,
        generation,
        title=body.title,
        focus_topic=body.focus_topic,
        document_ids=body.document_ids,
        count=body.count,
    )


@router.post(
    "/classrooms/{classroom_id}/summaries",
    response_model=ArtifactResponse,
    status_code=201,
    responses={**_ERRORS, 422: {"model": ErrorResponse}},
    summary="Generate a summary",
)
async def create_summary(
    classroom_id: str,
    body: SummaryRequest,
    account_id: AccountIdDep,
    generation: GenerationServiceDep,
) -> ArtifactResponse:
    return await _generate_study_set(
        GenerationKind.SUMMARY,
        classroom_id,
        account_id,
        generation,
        title=body.title,
        focus_topic=body.focus_topic,
        document_ids=body.document_ids,
        length=body.length,
    )


# ---------------------------------------------------------------------------
# Account and health
# ---------------------------------------------------------------------------


@router.get(
    "/account/usage",
    response_model=UsageResponse,
    summary="Today's usage against the account's tier limits",
)
async def get_usage(account_id: AccountIdDep, documents: DocumentServiceDep) -> UsageResponse:
    snapshot = await documents.usage(account_id)
    return UsageResponse.from_model(snapshot)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, bool | str] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    status = "healthy" if providers.get("llm", False) else "degraded"
    return HealthResponse(status=status, version="0.1.0", providers=providers)

"""StudyRAG API layer -- routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    status_for,
)
from src.api.routes import router
from src.api.schemas import (
    ArtifactResponse,
    ChatRequest,
    ChatResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    UsageResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "status_for",
    "ArtifactResponse",
    "ChatRequest",
    "ChatResponse",
    "DocumentResponse",
    "ErrorResponse",
    "HealthResponse",
    "UsageResponse",
]

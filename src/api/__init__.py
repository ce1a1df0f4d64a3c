"""Sales-brain API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    ChatQueryRequest,
    ChatQueryResponse,
    DocumentResponse,
    ErrorResponse,
    EvidenceResponse,
    HealthResponse,
)

__all__ = [
    "ChatQueryRequest",
    "ChatQueryResponse",
    "DocumentResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "EvidenceResponse",
    "HealthResponse",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
]

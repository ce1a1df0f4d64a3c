"""FastAPI routes for the sales-brain RAG service.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.  Routes stay thin: ingestion
semantics live in :class:`IngestionPipeline`, answering in
:class:`RetrievalEngine`.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                        Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents/upload        POST    Store upload as PENDING, ingest in background
# /api/v1/documents               GET     List the caller's documents (?status, ?deal_id)
# /api/v1/documents/{id}          GET     One document's status, counts and error
# /api/v1/chat/query              POST    Answer a question from the caller's documents
# /api/v1/health                  GET     Health check + provider status
#
# Caller identity arrives in the X-User-Id header, set by the auth layer
# in front of this service.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, Header, HTTPException, Query, Request, UploadFile

from src.api.schemas import (
    ChatQueryRequest,
    ChatQueryResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
)
from src.config.settings import Settings
from src.models.document import ProcessingStatus
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.pipeline import IngestionPipeline
from src.services.retrieval_service import RetrievalEngine
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_DEFAULT_ALLOWED_CONTENT_TYPES = frozenset(
    {"application/pdf", "text/plain", "text/markdown", "text/csv"}
)
# Browsers and curl send these when they cannot tell; the extension decides.
_GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream"})

# Read uploads in 64 KB increments so oversized files are rejected early.
_UPLOAD_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline


def _get_retrieval_engine(request: Request) -> RetrievalEngine:
    return request.app.state.retrieval_engine


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_current_user(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Return the caller's identity from ``X-User-Id`` or reject with 401."""
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


PipelineDep = Annotated[IngestionPipeline, Depends(_get_pipeline)]
RetrievalDep = Annotated[RetrievalEngine, Depends(_get_retrieval_engine)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]
CurrentUser = Annotated[str, Depends(_get_current_user)]


def _allowed_content_types(request: Request) -> frozenset[str]:
    config: dict[str, Any] = getattr(request.app.state, "config", {}) or {}
    configured = config.get("upload", {}).get("allowed_content_types")
    if configured:
        return frozenset(str(ct).lower() for ct in configured)
    return _DEFAULT_ALLOWED_CONTENT_TYPES


def _is_accepted_upload(content_type: str, filename: str | None, allowed: frozenset[str]) -> bool:
    if content_type in allowed:
        return ContentExtractor.supports(content_type, filename)
    if content_type in _GENERIC_CONTENT_TYPES:
        return ContentExtractor.supports(None, filename)
    return False


# ---------------------------------------------------------------------------
# Document endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/documents/upload",
    response_model=DocumentResponse,
    status_code=202,
    responses={401: {}, 413: {}, 415: {}},
    summary="Upload a sales document for background ingestion",
)
async def upload_document(
    request: Request,
    file: UploadFile,
    user_id: CurrentUser,
    pipeline: PipelineDep,
    settings: SettingsDep,
    deal_id: Annotated[str | None, Form()] = None,
) -> DocumentResponse:
    """Persist the document as PENDING, schedule ingestion, return 202."""
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    allowed = _allowed_content_types(request)
    if not _is_accepted_upload(content_type, file.filename, allowed):
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported file type: {content_type or 'unknown'}. "
            f"Allowed: {', '.join(sorted(allowed))}",
        )

    max_bytes = settings.max_upload_bytes
    parts: list[bytes] = []
    total_size = 0
    while True:
        part = await file.read(_UPLOAD_CHUNK_SIZE)
        if not part:
            break
        total_size += len(part)
        if total_size > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum: {max_bytes} bytes.",
            )
        parts.append(part)
    file_bytes = b"".join(parts)

    document = await pipeline.create_document(
        file_name=file.filename or "upload",
        content_type=content_type or None,
        file_bytes_size=len(file_bytes),
        user_id=user_id,
        deal_id=deal_id or None,
    )
    pipeline.submit(document.id, file_bytes, user_id)
    return DocumentResponse.from_document(document)


@router.get(
    "/documents",
    response_model=list[DocumentResponse],
    summary="List the caller's documents",
)
async def list_documents(
    user_id: CurrentUser,
    pipeline: PipelineDep,
    status: Annotated[ProcessingStatus | None, Query()] = None,
    deal_id: Annotated[str | None, Query()] = None,
) -> list[DocumentResponse]:
    documents = await pipeline.list_documents(user_id, status=status, deal_id=deal_id)
    return [DocumentResponse.from_document(d) for d in documents]


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get one document's processing status",
)
async def get_document(
    document_id: int,
    user_id: CurrentUser,
    pipeline: PipelineDep,
) -> DocumentResponse:
    document = await pipeline.get_document(document_id, user_id)
    return DocumentResponse.from_document(document)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post(
    "/chat/query",
    response_model=ChatQueryResponse,
    responses={502: {"model": ErrorResponse}},
    summary="Ask a question about the caller's documents",
)
async def chat_query(
    body: ChatQueryRequest,
    user_id: CurrentUser,
    engine: RetrievalDep,
) -> ChatQueryResponse:
    result = await engine.query(
        body.query,
        user_id,
        top_k=body.top_k,
        deal_id=body.deal_id,
    )
    return ChatQueryResponse.from_result(result)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Report whether the vector index and document store are reachable."""
    state = request.app.state
    providers: dict[str, Any] = dict(getattr(state, "provider_registry", {}) or {})

    vector_index = getattr(state, "vector_index", None)
    repository = getattr(state, "document_repository", None)
    providers["vector_index"] = bool(vector_index is not None and vector_index.is_available())
    providers["document_store"] = bool(repository is not None and repository.is_available())

    status = "healthy" if providers["vector_index"] and providers["document_store"] else "degraded"
    config: dict[str, Any] = getattr(state, "config", {}) or {}
    return HealthResponse(
        status=status,
        version=str(config.get("app", {}).get("version", "0.1.0")),
        providers=providers,
    )

"""Pydantic request/response schemas for the sales-brain API.

Defines the public contract for the REST endpoints: document upload and
status, chat queries, errors, and health.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# FastAPI validates incoming JSON against the *Request* models (invalid
# bodies get a 422 with details) and serialises outgoing objects through
# the *Response* models (response_model=...).  Internal domain models in
# src/models/ are never returned directly; each response model has a
# ``from_*`` constructor that projects the domain object.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.models.document import Document, DocumentCategory, ProcessingStatus
from src.models.rag import EvidenceItem, QueryResult

MAX_QUERY_LENGTH = 2000


class DocumentResponse(BaseModel):
    """Status view of one uploaded document."""

    id: int
    file_name: str = Field(description="Filename as uploaded.")
    document_type: DocumentCategory
    processing_status: ProcessingStatus
    total_pages: int | None = None
    total_chunks: int | None = None
    file_size: int
    deal_id: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(
            id=document.id,
            file_name=document.original_file_name,
            document_type=document.document_type,
            processing_status=document.processing_status,
            total_pages=document.total_pages,
            total_chunks=document.total_chunks,
            file_size=document.file_size,
            deal_id=document.deal_id,
            error_message=document.error_message,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class ChatQueryRequest(BaseModel):
    """A question about the caller's documents."""

    query: str = Field(..., max_length=MAX_QUERY_LENGTH)
    deal_id: str | None = None
    top_k: int | None = Field(default=None, ge=1)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be blank")
        return value


class EvidenceResponse(BaseModel):
    """One cited passage."""

    source: str
    excerpt: str
    page: int
    relevance_score: float

    @classmethod
    def from_item(cls, item: EvidenceItem) -> EvidenceResponse:
        return cls(
            source=item.source,
            excerpt=item.excerpt,
            page=item.page,
            relevance_score=item.relevance_score,
        )


class ChatQueryResponse(BaseModel):
    """Grounded answer with its evidence and a coarse confidence."""

    query: str
    answer: str
    evidence: list[EvidenceResponse] = Field(default_factory=list)
    confidence: str

    @classmethod
    def from_result(cls, result: QueryResult) -> ChatQueryResponse:
        return cls(
            query=result.query,
            answer=result.answer,
            evidence=[EvidenceResponse.from_item(e) for e in result.evidence],
            confidence=result.confidence.value,
        )


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorBody(BaseModel):
    """Machine-readable error details."""

    code: str
    message: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response body: ``{"error": {code, message, timestamp}}``."""

    error: ErrorBody

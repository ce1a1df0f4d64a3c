"""Document and chunk models for the sales-document knowledge base.

Defines Pydantic v2 models for uploaded documents, their processing status,
their inferred category, and the persisted chunk rows produced by
segmentation.  All models use frozen config: every mutation produces a new
instance via ``model_copy(update={...})`` and the service layer persists it.

Timestamps are stamped explicitly by the service layer (``created_at`` at
construction, ``updated_at`` on every transition / field update) rather
than by hidden persistence callbacks.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field

from src.utils.errors import InvalidStatusTransitionError


def utcnow() -> datetime:
    """Return the current timezone-aware UTC time."""
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# ProcessingStatus: the per-document ingestion state machine.
# ---------------------------------------------------------------------------
class ProcessingStatus(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Lifecycle of a document through the ingestion pipeline.

        PENDING → PROCESSING → COMPLETED
                      └──────→ FAILED

    ``PENDING → FAILED`` is also allowed for documents whose task never
    started (e.g. the process restarted).  COMPLETED and FAILED are
    terminal: a re-upload creates a new Document.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)

    def can_transition_to(self, target: ProcessingStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING, ProcessingStatus.FAILED}),
    ProcessingStatus.PROCESSING: frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.FAILED: frozenset(),
}


# ---------------------------------------------------------------------------
# DocumentCategory: inferred from the uploaded filename.
# ---------------------------------------------------------------------------
class DocumentCategory(str, Enum):  # noqa: UP042
    """Closed set of sales-document categories."""

    MEETING_MINUTES = "MEETING_MINUTES"
    PROPOSAL = "PROPOSAL"
    QUOTATION = "QUOTATION"
    EMAIL_LOG = "EMAIL_LOG"
    CONTRACT = "CONTRACT"
    TECHNICAL_SPEC = "TECHNICAL_SPEC"
    OTHER = "OTHER"

    @classmethod
    def infer(cls, filename: str | None) -> DocumentCategory:
        """Infer the category from filename keywords; first match wins.

        The keyword table is checked in a fixed priority order, so
        ``"meeting_proposal.pdf"`` is MEETING_MINUTES, not PROPOSAL.
        """
        if not filename:
            return cls.OTHER
        lowered = filename.lower()
        for category, keywords in _CATEGORY_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return category
        return cls.OTHER


# Checked top to bottom; first match wins.
_CATEGORY_KEYWORDS: tuple[tuple[DocumentCategory, tuple[str, ...]], ...] = (
    (DocumentCategory.MEETING_MINUTES, ("meeting", "minutes")),
    (DocumentCategory.PROPOSAL, ("proposal",)),
    (DocumentCategory.QUOTATION, ("quote", "quotation")),
    (DocumentCategory.EMAIL_LOG, ("email", "mail")),
    (DocumentCategory.CONTRACT, ("contract",)),
    (DocumentCategory.TECHNICAL_SPEC, ("spec", "technical")),
)


def generate_stored_filename(original_name: str | None) -> str:
    """Return a collision-free storage name: a UUID4 plus the original extension.

    A leading dot (``.env``) is not treated as an extension.
    """
    suffix = PurePath(original_name).suffix if original_name else ""
    return f"{uuid.uuid4()}{suffix}"


# ---------------------------------------------------------------------------
# Document: one uploaded file and its ingestion progress.
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """An uploaded sales document.

    ``id`` is ``None`` until the repository assigns one on first insert.
    ``total_pages`` stays ``None`` for non-paginated formats; ``total_chunks``
    stays ``None`` until chunk rows are persisted.
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = Field(default=None, description="Repository-assigned identifier.")
    file_name: str = Field(description="System-generated stored filename (UUID + extension).")
    original_file_name: str = Field(description="Filename as uploaded by the user.")
    content_type: str = Field(default="application/octet-stream", description="Declared MIME type.")
    file_size: int = Field(default=0, ge=0, description="Size of the upload in bytes.")
    document_type: DocumentCategory = Field(default=DocumentCategory.OTHER)
    total_pages: int | None = Field(default=None, ge=0)
    total_chunks: int | None = Field(default=None, ge=0)
    processing_status: ProcessingStatus = Field(default=ProcessingStatus.PENDING)
    error_message: str | None = None
    user_id: str = Field(min_length=1, description="Owning user identity.")
    deal_id: str | None = Field(default=None, description="Optional linked business deal.")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def transition(
        self,
        status: ProcessingStatus,
        *,
        error_message: str | None = None,
        now: datetime | None = None,
    ) -> Document:
        """Return a copy moved to *status*, stamping ``updated_at``.

        Raises
        ------
        InvalidStatusTransitionError
            If the state machine does not allow the move.
        """
        if not self.processing_status.can_transition_to(status):
            raise InvalidStatusTransitionError(
                current=self.processing_status.value,
                requested=status.value,
            )
        update: dict[str, object] = {
            "processing_status": status,
            "updated_at": now or utcnow(),
        }
        if error_message is not None:
            update["error_message"] = error_message
        return self.model_copy(update=update)

    def with_counts(
        self,
        *,
        total_pages: int | None = None,
        total_chunks: int | None = None,
        now: datetime | None = None,
    ) -> Document:
        """Return a copy with page/chunk counts set, stamping ``updated_at``.

        Counts never decrease: a smaller value than the one already stored
        raises ``ValueError``.  ``None`` leaves a count untouched.
        """
        update: dict[str, object] = {"updated_at": now or utcnow()}
        for name, value in (("total_pages", total_pages), ("total_chunks", total_chunks)):
            if value is None:
                continue
            current = getattr(self, name)
            if current is not None and value < current:
                raise ValueError(f"{name} cannot decrease ({current} -> {value})")
            update[name] = value
        return self.model_copy(update=update)


# ---------------------------------------------------------------------------
# Chunk: one persisted, retrievable slice of a document.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A persisted chunk row.  Its ``id`` doubles as the vector-index id."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document_id: int
    user_id: str = Field(min_length=1)
    chunk_index: int = Field(ge=0)
    content: str = Field(min_length=1)
    page_number: int | None = None
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)
    token_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)

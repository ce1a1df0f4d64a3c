"""Abstract base class for document and chunk persistence.

Defines the contract for storing :class:`~src.models.document.Document`
rows (status, counts, ownership) and their
:class:`~src.models.document.Chunk` rows.  The ingestion pipeline is the
only writer; the HTTP layer and CLI read through it for status checks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from src.models.document import Chunk, Document, ProcessingStatus


# Concrete implementations: SQLiteDocumentRepository
# Located in: src/providers/document_store/
class IDocumentRepository(ABC):
    """Contract for document/chunk persistence.

    All operations are async to support network-backed stores.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / indices if they do not exist yet."""

    @abstractmethod
    async def save_document(
        self,
        document: Document,
        expected_status: ProcessingStatus | None = None,
    ) -> Document:
        """Insert (``id is None``) or update a document.

        When *expected_status* is given, the update only applies if the
        stored row still has that status (compare-and-set).

        Returns
        -------
        Document
            The stored document, with ``id`` assigned on insert.

        Raises
        ------
        InvalidStatusTransitionError
            If the stored status no longer equals *expected_status*.
        """

    @abstractmethod
    async def get_document(self, document_id: int) -> Document | None:
        """Return the document with *document_id*, regardless of owner."""

    @abstractmethod
    async def get_document_for_user(self, document_id: int, user_id: str) -> Document | None:
        """Return the document only if it belongs to *user_id*."""

    @abstractmethod
    async def list_documents(
        self,
        user_id: str,
        status: ProcessingStatus | None = None,
        deal_id: str | None = None,
    ) -> list[Document]:
        """Return the user's documents, newest first, optionally filtered."""

    @abstractmethod
    async def list_by_status(self, statuses: list[ProcessingStatus]) -> list[Document]:
        """Return every document (any owner) in one of *statuses*."""

    @abstractmethod
    async def list_stale(self, older_than: datetime) -> list[Document]:
        """Return PROCESSING documents whose ``updated_at`` is before *older_than*."""

    @abstractmethod
    async def save_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        """Persist *chunks* in a single all-or-nothing transaction."""

    @abstractmethod
    async def list_chunks(self, document_id: int) -> list[Chunk]:
        """Return a document's chunks ordered by ``chunk_index``."""

    @abstractmethod
    async def count_chunks(self, document_id: int) -> int:
        """Return the number of chunk rows stored for a document."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is usable."""

"""Asynchronous document ingestion: extract -> segment -> persist -> index.

The :class:`IngestionPipeline` owns the per-document state machine::

    PENDING --> PROCESSING --> COMPLETED
                    \\-------> FAILED

``create_document`` runs inside the upload request and returns the PENDING
row immediately.  ``submit`` then schedules ``process_document`` on its own
asyncio task through a :class:`~src.utils.concurrency.BoundedTaskRunner`,
so the uploader never waits for extraction or embedding.  The Document row
is the only source of truth: every status or field change is written to
the repository the moment it happens, and a failure in any stage is
recorded on the row instead of being raised to the submitter.

All collaborators are injected, so tests swap in fakes without touching
this module.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import structlog

from src.interfaces.document_repository import IDocumentRepository
from src.models.document import (
    Chunk,
    Document,
    DocumentCategory,
    ProcessingStatus,
    generate_stored_filename,
    utcnow,
)
from src.models.rag import ExtractedContent, Segment
from src.services.ingestion.chunk_indexer import ChunkIndexer
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.segmenter import TextSegmenter
from src.utils.concurrency import BoundedTaskRunner
from src.utils.errors import (
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    SalesBrainError,
    SegmentationError,
)

logger = structlog.get_logger(logger_name=__name__)

INTERRUPTED_MESSAGE = "Processing interrupted before completion"


class IngestionPipeline:
    """Creates documents and drives them through background ingestion.

    Parameters
    ----------
    repository:
        Persistence for Document and Chunk rows.
    extractor:
        Turns upload bytes into text.
    segmenter:
        Splits text into overlapping segments.
    indexer:
        Stores chunk rows in the vector index, with retries.
    runner:
        Bounded pool of background tasks.  Defaults to four slots.
    processing_timeout_minutes:
        Age after which a PROCESSING document is reported as stale.
    """

    def __init__(
        self,
        repository: IDocumentRepository,
        extractor: ContentExtractor,
        segmenter: TextSegmenter,
        indexer: ChunkIndexer,
        runner: BoundedTaskRunner | None = None,
        processing_timeout_minutes: int = 30,
    ) -> None:
        self._repository = repository
        self._extractor = extractor
        self._segmenter = segmenter
        self._indexer = indexer
        self._runner = runner or BoundedTaskRunner(max_concurrent=4, name="ingestion")
        self._processing_timeout = timedelta(minutes=processing_timeout_minutes)

    # ------------------------------------------------------------------
    # Upload-time operations (run inside the request)
    # ------------------------------------------------------------------

    async def create_document(
        self,
        file_name: str,
        content_type: str | None,
        file_bytes_size: int,
        user_id: str,
        deal_id: str | None = None,
    ) -> Document:
        """Persist a new PENDING document and return it with its id."""
        now = utcnow()
        document = Document(
            file_name=generate_stored_filename(file_name),
            original_file_name=file_name,
            content_type=content_type or "application/octet-stream",
            file_size=file_bytes_size,
            document_type=DocumentCategory.infer(file_name),
            processing_status=ProcessingStatus.PENDING,
            user_id=user_id,
            deal_id=deal_id,
            created_at=now,
            updated_at=now,
        )
        saved = await self._repository.save_document(document)
        logger.info(
            "document_created",
            document_id=saved.id,
            user_id=user_id,
            deal_id=deal_id,
            document_type=saved.document_type.value,
            file_size=file_bytes_size,
        )
        return saved

    def submit(self, document_id: int, file_bytes: bytes, user_id: str) -> asyncio.Task[Document | None]:
        """Schedule background processing and return the task immediately."""
        logger.info("ingestion_submitted", document_id=document_id, bytes=len(file_bytes))
        return self._runner.spawn(
            self._process_in_background(document_id, file_bytes, user_id),
            name=f"ingest-document-{document_id}",
        )

    async def drain(self) -> None:
        """Wait for all submitted documents to settle."""
        await self._runner.drain()

    # ------------------------------------------------------------------
    # Background processing
    # ------------------------------------------------------------------

    async def process_document(self, document_id: int, file_bytes: bytes, user_id: str) -> Document:
        """Run every ingestion stage for one document and return the final row.

        Failures after the PROCESSING transition are recorded on the row
        (status FAILED plus ``error_message``) and the FAILED document is
        returned; they are never raised.  Every write after the first is
        conditional on the row still being PROCESSING; if another process
        has already settled the document, processing stops and the stored
        row is returned unchanged.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist for *user_id*.
        InvalidStatusTransitionError
            If the document is not PENDING.
        """
        document = await self._repository.get_document_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        document = await self._repository.save_document(
            document.transition(ProcessingStatus.PROCESSING),
            expected_status=ProcessingStatus.PENDING,
        )
        logger.info("ingestion_started", document_id=document_id, user_id=user_id)

        persisted_ids: list[str] = []
        try:
            content = await self._extract(document, file_bytes)
            if content.page_count is not None:
                document = await self._save_processing(
                    document.with_counts(total_pages=content.page_count)
                )

            segments = self._segment(document, content.text)
            chunks = self._build_chunks(document, segments)
            await self._repository.save_chunks(chunks)
            persisted_ids = [c.id for c in chunks]
            document = await self._save_processing(
                document.with_counts(total_chunks=len(chunks))
            )

            await self._indexer.store_chunks(chunks, document)

            document = await self._save_processing(
                document.transition(ProcessingStatus.COMPLETED)
            )
        except InvalidStatusTransitionError as exc:
            return await self._abandon(document, exc, persisted_ids)
        except Exception as exc:
            return await self._fail(document, exc, persisted_ids)

        logger.info(
            "ingestion_completed",
            document_id=document_id,
            total_pages=document.total_pages,
            total_chunks=document.total_chunks,
        )
        return document

    async def _process_in_background(
        self, document_id: int, file_bytes: bytes, user_id: str
    ) -> Document | None:
        try:
            return await self.process_document(document_id, file_bytes, user_id)
        except SalesBrainError as exc:
            logger.error("ingestion_not_started", document_id=document_id, error=str(exc))
            return None

    async def _extract(self, document: Document, file_bytes: bytes) -> ExtractedContent:
        # PDF parsing is CPU-bound; keep it off the event loop.
        return await asyncio.to_thread(
            self._extractor.extract,
            file_bytes,
            document.original_file_name,
            document.content_type,
        )

    def _segment(self, document: Document, text: str) -> list[Segment]:
        try:
            return self._segmenter.segment(text, label=document.original_file_name)
        except SalesBrainError:
            raise
        except Exception as exc:
            raise SegmentationError(message=f"Text segmentation failed: {exc}") from exc

    @staticmethod
    def _build_chunks(document: Document, segments: list[Segment]) -> list[Chunk]:
        now = utcnow()
        return [
            Chunk(
                document_id=document.id,
                user_id=document.user_id,
                chunk_index=segment.index,
                content=segment.content,
                page_number=None,
                start_offset=segment.start_offset,
                end_offset=segment.end_offset,
                token_count=segment.token_estimate,
                created_at=now,
            )
            for segment in segments
        ]

    async def _save_processing(self, document: Document) -> Document:
        return await self._repository.save_document(
            document, expected_status=ProcessingStatus.PROCESSING
        )

    async def _abandon(
        self,
        document: Document,
        exc: InvalidStatusTransitionError,
        persisted_ids: list[str],
    ) -> Document:
        """Stop work on a document another process has already settled."""
        logger.warning(
            "ingestion_superseded",
            document_id=document.id,
            stored_status=exc.current,
        )
        if persisted_ids:
            await self._indexer.delete_chunks(persisted_ids)
        stored = await self._repository.get_document(document.id)
        return stored if stored is not None else document

    async def _fail(self, document: Document, exc: Exception, persisted_ids: list[str]) -> Document:
        try:
            failed = await self._save_processing(
                document.transition(ProcessingStatus.FAILED, error_message=str(exc))
            )
        except InvalidStatusTransitionError as conflict:
            return await self._abandon(document, conflict, persisted_ids)
        logger.error(
            "ingestion_failed",
            document_id=document.id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        if persisted_ids:
            await self._indexer.delete_chunks(persisted_ids)
        return failed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, document_id: int, user_id: str) -> Document:
        """Return the caller's document; foreign and missing ids look the same."""
        document = await self._repository.get_document_for_user(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def list_documents(
        self,
        user_id: str,
        status: ProcessingStatus | None = None,
        deal_id: str | None = None,
    ) -> list[Document]:
        return await self._repository.list_documents(user_id, status=status, deal_id=deal_id)

    async def count_chunks(self, document_id: int) -> int:
        return await self._repository.count_chunks(document_id)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def recover_interrupted(self) -> list[Document]:
        """Fail every document left PENDING or PROCESSING by a previous process.

        Background tasks live in memory only, so at startup no such
        document can still be making progress.
        """
        orphaned = await self._repository.list_by_status(
            [ProcessingStatus.PENDING, ProcessingStatus.PROCESSING]
        )
        recovered: list[Document] = []
        for document in orphaned:
            try:
                failed = await self._repository.save_document(
                    document.transition(ProcessingStatus.FAILED, error_message=INTERRUPTED_MESSAGE),
                    expected_status=document.processing_status,
                )
            except InvalidStatusTransitionError:
                # Settled by its own worker between the listing and this write.
                continue
            recovered.append(failed)
            logger.warning(
                "ingestion_interrupted",
                document_id=document.id,
                previous_status=document.processing_status.value,
            )
        if recovered:
            logger.info("interrupted_documents_recovered", count=len(recovered))
        return recovered

    async def find_stale_documents(self) -> list[Document]:
        """Return PROCESSING documents not updated within the timeout."""
        cutoff = utcnow() - self._processing_timeout
        stale = await self._repository.list_stale(cutoff)
        for document in stale:
            logger.warning(
                "ingestion_stale",
                document_id=document.id,
                updated_at=document.updated_at.isoformat(),
            )
        return stale

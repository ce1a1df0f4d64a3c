"""Hand persisted chunks to the vector index, retrying transient failures.

Each :class:`~src.models.document.Chunk` becomes one
:class:`~src.models.rag.IndexRecord` whose id equals the chunk id and whose
metadata carries the owning user, so retrieval can scope every query.
Storage is retried with exponential backoff (tenacity); once attempts are
exhausted an :class:`IndexingError` is raised and the pipeline marks the
document FAILED.
"""

from __future__ import annotations

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from src.interfaces.vector_index import IVectorIndex
from src.models.document import Chunk, Document
from src.models.rag import (
    META_CHUNK_INDEX,
    META_DEAL_ID,
    META_DOCUMENT_ID,
    META_FILE_NAME,
    META_PAGE_NUMBER,
    META_USER_ID,
    IndexRecord,
    MetadataValue,
)
from src.utils.errors import IndexingError, RAGError

logger = structlog.get_logger(logger_name=__name__)


def build_metadata(chunk: Chunk, document: Document) -> dict[str, MetadataValue]:
    """Return the index metadata for *chunk*.

    ``pageNumber`` is 0 when the page is unknown; ``dealId`` is only present
    for documents linked to a deal.
    """
    metadata: dict[str, MetadataValue] = {
        META_USER_ID: str(document.user_id),
        META_DOCUMENT_ID: str(document.id),
        META_FILE_NAME: document.original_file_name,
        META_CHUNK_INDEX: chunk.chunk_index,
        META_PAGE_NUMBER: chunk.page_number if chunk.page_number is not None else 0,
    }
    if document.deal_id:
        metadata[META_DEAL_ID] = str(document.deal_id)
    return metadata


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "chunk_indexing_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc) if exc else None,
    )


class ChunkIndexer:
    """Stores chunks in an :class:`IVectorIndex` with bounded retries.

    Parameters
    ----------
    vector_index:
        Destination index; embeds the text itself.
    retry_attempts:
        Total attempts, including the first one.
    initial_delay:
        Seconds to wait before the second attempt; doubles every retry.
    max_delay:
        Upper bound on a single wait, in seconds.
    """

    def __init__(
        self,
        vector_index: IVectorIndex,
        retry_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 10.0,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError(f"retry_attempts must be >= 1, got {retry_attempts}")
        self._vector_index = vector_index
        self._retry_attempts = retry_attempts
        self._initial_delay = initial_delay
        self._max_delay = max_delay

    async def store_chunks(self, chunks: list[Chunk], document: Document) -> int:
        """Index *chunks* for *document*; return how many were stored.

        Raises
        ------
        IndexingError
            If every attempt failed.  The message carries the last cause.
        """
        if not chunks:
            return 0

        records = [
            IndexRecord(id=c.id, text=c.content, metadata=build_metadata(c, document))
            for c in chunks
        ]

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=self._initial_delay, max=self._max_delay),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    stored = await self._vector_index.add(records)
                    if stored != len(records):
                        raise RAGError(
                            message=f"Index acknowledged {stored} of {len(records)} chunks",
                            provider_name=self._vector_index.get_provider_name(),
                        )
        except Exception as exc:
            logger.error(
                "chunk_indexing_failed",
                document_id=document.id,
                chunks=len(records),
                attempts=self._retry_attempts,
                error=str(exc),
            )
            raise IndexingError(
                message=f"Failed to generate and store embeddings: {exc}",
                provider_name=self._vector_index.get_provider_name(),
            ) from exc

        logger.info("chunks_indexed", document_id=document.id, count=len(records))
        return len(records)

    async def delete_chunks(self, chunk_ids: list[str]) -> None:
        """Remove *chunk_ids* from the index.  Failures are logged, never raised."""
        if not chunk_ids:
            return
        try:
            await self._vector_index.delete(chunk_ids)
            logger.info("chunks_unindexed", count=len(chunk_ids))
        except Exception as exc:
            logger.error("chunk_unindex_failed", count=len(chunk_ids), error=str(exc))

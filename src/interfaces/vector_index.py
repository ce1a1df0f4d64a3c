"""Abstract base class for the vector index collaborator.

The vector index stores ``(id, text, metadata)`` records and answers
similarity queries.  It owns embedding generation internally: callers hand
it plain text, never vectors.  The adapter pattern keeps the ingestion
pipeline and retrieval engine independent of the concrete backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import IndexRecord, ScopeFilter, SearchHit


# Concrete implementations: ChromaDBVectorIndex
# Located in: src/providers/vector_store/
class IVectorIndex(ABC):
    """Contract for the similarity-search store used by the RAG core.

    Implementations must accept concurrent ``add`` calls from independent
    ingestion tasks.
    """

    @abstractmethod
    async def add(self, records: list[IndexRecord]) -> int:
        """Embed and store *records* (upsert by id).

        Parameters
        ----------
        records:
            Chunks to store.  Metadata values must be scalars
            (``str``, ``int``, ``float``, ``bool``).

        Returns
        -------
        int
            Number of records acknowledged by the backend.  The call either
            stores every record or raises.

        Raises
        ------
        src.utils.errors.RAGError
            If embedding or storage fails.
        """

    @abstractmethod
    async def delete(self, ids: list[str]) -> int:
        """Remove records by id.  Unknown ids are ignored.

        Returns
        -------
        int
            Number of ids submitted for deletion.
        """

    @abstractmethod
    async def similarity_search(
        self,
        query: str,
        top_k: int,
        similarity_threshold: float,
        scope: ScopeFilter,
    ) -> list[SearchHit]:
        """Return up to *top_k* hits at or above *similarity_threshold*.

        Parameters
        ----------
        query:
            Natural-language query text; embedded by the index.
        top_k:
            Maximum number of hits.
        similarity_threshold:
            Minimum similarity (``1 - distance``) in ``[0, 1]``.
        scope:
            Equality filter applied server-side.  An empty scope is a
            programming defect: implementations must return ``[]`` rather
            than searching unscoped.

        Returns
        -------
        list[SearchHit]
            Hits ordered best first, each carrying its distance.

        Raises
        ------
        src.utils.errors.RAGError
            If the query cannot be embedded or executed.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the backing store is reachable."""

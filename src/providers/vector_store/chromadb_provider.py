"""ChromaDB vector index adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorIndex`.
Uses cosine distance, so ``similarity = 1 - distance``.  Embeddings are
computed by the injected :class:`IEmbeddingProvider` and passed to ChromaDB
explicitly; ChromaDB's own embedding function is never used.

ChromaDB's client is synchronous, so every collection call is pushed to a
worker thread with ``asyncio.to_thread`` to keep the event loop free while
background ingestion tasks and queries run side by side.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  A version mismatch
# between ChromaDB's bundled PostHog client and the installed one produces
# noisy "capture() takes 1 positional argument" errors otherwise.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_index import IVectorIndex
from src.models.rag import IndexRecord, ScopeFilter, SearchHit
from src.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

_UPSERT_BATCH_SIZE = 500


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that prevents ChromaDB from loading its default model.

    All vectors are pre-computed by our embedding provider, so ChromaDB's
    built-in all-MiniLM ONNX model (~80 MB) is never needed.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "Embeddings are pre-computed; ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBVectorIndex(IVectorIndex):
    """Vector index backed by a local ChromaDB collection.

    Parameters
    ----------
    embedding_provider:
        Embeds record text on :meth:`add` and query text on
        :meth:`similarity_search`.
    persist_directory:
        On-disk location of the ChromaDB database.
    collection_name:
        Name of the collection holding every user's chunks.  Isolation is
        enforced per query through the ``userId`` metadata filter.
    client:
        Optional pre-built ChromaDB client (tests pass an ephemeral one).
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "sales_documents",
        client: Any | None = None,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # Collections created by older ChromaDB versions persist a different
        # embedding function; reopening them with ours raises ValueError.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

        self._validate_embedding_dimensions()

    # ------------------------------------------------------------------
    # Startup validation
    # ------------------------------------------------------------------

    def _validate_embedding_dimensions(self) -> None:
        """Fail fast when stored vectors and the provider disagree on size."""
        try:
            if self._collection.count() == 0:
                return
            sample = self._collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is None or len(embeddings) == 0:
                return

            stored_dim = len(embeddings[0])
            expected_dim = self._embedding_provider.get_dimension()
            if stored_dim != expected_dim:
                logger.error(
                    "embedding_dimension_mismatch",
                    stored_dim=stored_dim,
                    expected_dim=expected_dim,
                    provider=self._embedding_provider.get_provider_name(),
                )
                raise RAGError(
                    message=(
                        f"Embedding dimension mismatch: index has {stored_dim}-dim vectors "
                        f"but provider '{self._embedding_provider.get_provider_name()}' "
                        f"produces {expected_dim}-dim vectors."
                    ),
                    provider_name=self.get_provider_name(),
                )
            logger.info("embedding_dimension_validated", dimension=stored_dim)
        except RAGError:
            raise
        except Exception as exc:
            logger.warning("embedding_dimension_check_skipped", error=str(exc))

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def add(self, records: list[IndexRecord]) -> int:
        """Embed and upsert *records* in batches of 500.

        Batching bounds the memory ChromaDB allocates per upsert; a failure
        in any batch raises, so the caller never mistakes a partial write
        for success.
        """
        if not records:
            return 0

        try:
            embeddings = await self._embedding_provider.embed([r.text for r in records])
            if len(embeddings) != len(records):
                raise RAGError(
                    message=(
                        f"Embedding count mismatch: {len(embeddings)} vectors "
                        f"for {len(records)} records"
                    ),
                    provider_name=self._embedding_provider.get_provider_name(),
                )

            for start in range(0, len(records), _UPSERT_BATCH_SIZE):
                batch = records[start : start + _UPSERT_BATCH_SIZE]
                await asyncio.to_thread(
                    self._collection.upsert,
                    ids=[r.id for r in batch],
                    embeddings=embeddings[start : start + _UPSERT_BATCH_SIZE],
                    documents=[r.text for r in batch],
                    metadatas=[dict(r.metadata) for r in batch],
                )

            logger.info(
                "chromadb_add",
                count=len(records),
                batches=(len(records) + _UPSERT_BATCH_SIZE - 1) // _UPSERT_BATCH_SIZE,
            )
            return len(records)
        except RAGError:
            raise
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB add failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def delete(self, ids: list[str]) -> int:
        """Delete records by id."""
        if not ids:
            return 0
        try:
            await asyncio.to_thread(self._collection.delete, ids=list(ids))
            logger.info("chromadb_delete", count=len(ids))
            return len(ids)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def similarity_search(
        self,
        query: str,
        top_k: int,
        similarity_threshold: float,
        scope: ScopeFilter,
    ) -> list[SearchHit]:
        """Scoped cosine search returning hits with ``1 - distance >= threshold``."""
        if scope.is_empty:
            logger.error("scope_filter_missing", query_length=len(query))
            return []
        if top_k <= 0:
            return []

        try:
            total = await asyncio.to_thread(self._collection.count)
            if total == 0:
                return []

            query_embedding = await self._embedding_provider.embed_single(query)
            results = await asyncio.to_thread(
                self._collection.query,
                query_embeddings=[query_embedding],
                n_results=min(top_k, total),
                where=self._translate_scope(scope),
                include=["documents", "metadatas", "distances"],
            )
        except RAGError:
            raise
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results.get("ids") or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [None] * len(ids)

        hits: list[SearchHit] = []
        for hit_id, text, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            if distance is not None and (1.0 - distance) < similarity_threshold:
                continue
            hits.append(
                SearchHit(
                    id=hit_id,
                    text=text or "",
                    metadata=dict(meta or {}),
                    distance=distance,
                )
            )

        logger.info(
            "chromadb_query",
            query_length=len(query),
            raw_results=len(ids),
            results_count=len(hits),
            threshold=similarity_threshold,
        )
        return hits

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _translate_scope(scope: ScopeFilter) -> dict[str, Any]:
        """Translate a scope filter into a ChromaDB ``where`` clause.

        One condition maps to ``{"key": value}``; several are wrapped in
        ``{"$and": [...]}`` as ChromaDB requires.
        """
        clauses = [{key: value} for key, value in sorted(scope.conditions.items())]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

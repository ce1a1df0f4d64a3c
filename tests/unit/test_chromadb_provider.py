"""Unit tests for the ChromaDB vector index.

Uses a real on-disk ChromaDB collection under ``tmp_path`` with the
deterministic hash embedder from conftest, so an exact-text query has
similarity 1.0 and unrelated texts fall below the threshold.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import IndexRecord, ScopeFilter
from src.providers.vector_store.chromadb_provider import ChromaDBVectorIndex
from src.utils.errors import RAGError


def _record(record_id: str, text: str, user: str = "user-1", **extra) -> IndexRecord:
    return IndexRecord(
        id=record_id,
        text=text,
        metadata={
            "userId": user,
            "documentId": "1",
            "fileName": "acme.pdf",
            "chunkIndex": 0,
            "pageNumber": 0,
            **extra,
        },
    )


@pytest.fixture()
def index(mock_embedding_provider, tmp_path) -> ChromaDBVectorIndex:
    return ChromaDBVectorIndex(
        embedding_provider=mock_embedding_provider,
        persist_directory=str(tmp_path / "chroma"),
        collection_name="test_collection",
    )


class TestChromaDBVectorIndex:
    def test_get_provider_name(self, index: ChromaDBVectorIndex) -> None:
        assert index.get_provider_name() == "chromadb"

    def test_is_available(self, index: ChromaDBVectorIndex) -> None:
        assert index.is_available() is True

    @pytest.mark.asyncio
    async def test_add_and_exact_match(self, index: ChromaDBVectorIndex) -> None:
        stored = await index.add(
            [
                _record("c1", "Acme signed a 12-month pilot at 40k."),
                _record("c2", "Globex asked for on-prem deployment."),
            ]
        )
        assert stored == 2

        hits = await index.similarity_search(
            "Acme signed a 12-month pilot at 40k.",
            top_k=5,
            similarity_threshold=0.75,
            scope=ScopeFilter.for_user("user-1"),
        )

        assert [h.id for h in hits] == ["c1"]
        assert hits[0].text == "Acme signed a 12-month pilot at 40k."
        assert hits[0].metadata["fileName"] == "acme.pdf"
        assert hits[0].distance == pytest.approx(0.0, abs=1e-4)

    @pytest.mark.asyncio
    async def test_add_empty(self, index: ChromaDBVectorIndex) -> None:
        assert await index.add([]) == 0

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, index: ChromaDBVectorIndex) -> None:
        await index.add([_record("c1", "first")])
        await index.add([_record("c1", "first")])
        assert index._collection.count() == 1

    @pytest.mark.asyncio
    async def test_scope_isolates_users(self, index: ChromaDBVectorIndex) -> None:
        text = "Renewal discount capped at 15 percent."
        await index.add([_record("mine", text, user="user-1"), _record("theirs", text, user="user-2")])

        hits = await index.similarity_search(text, 5, 0.75, ScopeFilter.for_user("user-2"))

        assert [h.id for h in hits] == ["theirs"]

    @pytest.mark.asyncio
    async def test_scope_with_deal(self, index: ChromaDBVectorIndex) -> None:
        text = "Security review scheduled for next week."
        await index.add(
            [
                _record("d1", text, dealId="deal-1"),
                _record("d2", text, dealId="deal-2"),
                _record("none", text),
            ]
        )

        hits = await index.similarity_search(text, 5, 0.75, ScopeFilter.for_user("user-1", deal_id="deal-2"))

        assert [h.id for h in hits] == ["d2"]

    @pytest.mark.asyncio
    async def test_empty_scope_returns_nothing(self, index: ChromaDBVectorIndex) -> None:
        await index.add([_record("c1", "anything")])
        assert await index.similarity_search("anything", 5, 0.0, ScopeFilter()) == []

    @pytest.mark.asyncio
    async def test_empty_collection_returns_nothing(self, index: ChromaDBVectorIndex) -> None:
        assert await index.similarity_search("q", 5, 0.0, ScopeFilter.for_user("user-1")) == []

    @pytest.mark.asyncio
    async def test_non_positive_top_k(self, index: ChromaDBVectorIndex) -> None:
        await index.add([_record("c1", "anything")])
        assert await index.similarity_search("anything", 0, 0.0, ScopeFilter.for_user("user-1")) == []

    @pytest.mark.asyncio
    async def test_delete(self, index: ChromaDBVectorIndex) -> None:
        await index.add([_record("c1", "alpha"), _record("c2", "beta")])

        assert await index.delete(["c1"]) == 1
        assert await index.delete([]) == 0

        hits = await index.similarity_search("alpha", 5, 0.75, ScopeFilter.for_user("user-1"))
        assert hits == []
        assert index._collection.count() == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_raises_rag_error(self, tmp_path) -> None:
        provider = MagicMock(spec=IEmbeddingProvider)
        provider.embed.side_effect = RuntimeError("embedding service down")
        provider.get_provider_name.return_value = "broken"
        index = ChromaDBVectorIndex(provider, persist_directory=str(tmp_path / "chroma"))

        with pytest.raises(RAGError, match="embedding service down"):
            await index.add([_record("c1", "text")])


class TestDimensionValidation:
    @pytest.mark.asyncio
    async def test_mismatch_fails_fast(self, mock_embedding_provider, tmp_path) -> None:
        persist = str(tmp_path / "chroma")
        first = ChromaDBVectorIndex(mock_embedding_provider, persist_directory=persist, collection_name="dims")
        await first.add([_record("c1", "stored at 128 dims")])

        other = MagicMock(spec=IEmbeddingProvider)
        other.get_dimension.return_value = 64
        other.get_provider_name.return_value = "small-model"

        with pytest.raises(RAGError, match="dimension mismatch"):
            ChromaDBVectorIndex(other, persist_directory=persist, collection_name="dims", client=first._client)


class TestTranslateScope:
    def test_single_condition(self) -> None:
        assert ChromaDBVectorIndex._translate_scope(ScopeFilter.for_user("u1")) == {"userId": "u1"}

    def test_multiple_conditions_use_and(self) -> None:
        where = ChromaDBVectorIndex._translate_scope(ScopeFilter.for_user("u1", deal_id="d9"))
        assert where == {"$and": [{"dealId": "d9"}, {"userId": "u1"}]}

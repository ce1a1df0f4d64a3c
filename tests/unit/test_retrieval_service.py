"""Unit tests for RetrievalEngine: scoped search, evidence and confidence."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.models.rag import Confidence, IndexRecord, SearchHit
from src.services.retrieval_service import RetrievalEngine
from src.utils.errors import LLMError, RAGError, RetrievalError

_QUESTION = "What pricing did we quote Acme?"


async def _seed(vector_index, n: int, text: str = _QUESTION, user: str = "user-1", **extra) -> None:
    """Store *n* records whose text equals *text*, so a query for it scores 1.0."""
    records = [
        IndexRecord(
            id=f"{user}-{extra.get('dealId', 'none')}-{i}",
            text=text,
            metadata={
                "userId": user,
                "documentId": str(i + 1),
                "fileName": f"doc_{i}.pdf",
                "chunkIndex": 0,
                "pageNumber": 0,
                **extra,
            },
        )
        for i in range(n)
    ]
    await vector_index.add(records)


# ======================================================================
# No results
# ======================================================================


class TestNoResults:
    @pytest.mark.asyncio
    async def test_canned_answer_without_llm(self, retrieval_engine: RetrievalEngine, mock_llm_provider) -> None:
        result = await retrieval_engine.query(_QUESTION, user_id="user-1")

        assert result.answer == RetrievalEngine._NO_RESULTS_ANSWER
        assert result.evidence == []
        assert result.confidence is Confidence.LOW
        assert result.query == _QUESTION
        mock_llm_provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_below_threshold_counts_as_no_results(self, retrieval_engine, vector_index, mock_llm_provider) -> None:
        await _seed(vector_index, 2, text="Completely unrelated onboarding checklist")

        result = await retrieval_engine.query(_QUESTION, user_id="user-1")

        assert result.evidence == []
        mock_llm_provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_user_searches_nothing(self, retrieval_engine, vector_index) -> None:
        await _seed(vector_index, 3)

        result = await retrieval_engine.query(_QUESTION, user_id="  ")

        assert result.evidence == []
        assert vector_index.searches[-1].is_empty


# ======================================================================
# Confidence & evidence
# ======================================================================


class TestAnswers:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("hits", "expected"),
        [(1, Confidence.LOW), (2, Confidence.MEDIUM), (3, Confidence.HIGH), (5, Confidence.HIGH)],
    )
    async def test_confidence_follows_hit_count(self, retrieval_engine, vector_index, hits, expected) -> None:
        await _seed(vector_index, hits)

        result = await retrieval_engine.query(_QUESTION, user_id="user-1")

        assert len(result.evidence) == hits
        assert result.confidence is expected
        assert result.answer == "Acme agreed to a 12-month pilot [Document 1]."

    @pytest.mark.asyncio
    async def test_top_k_caps_evidence(self, retrieval_engine, vector_index) -> None:
        await _seed(vector_index, 5)

        result = await retrieval_engine.query(_QUESTION, user_id="user-1", top_k=2)

        assert len(result.evidence) == 2
        assert result.confidence is Confidence.MEDIUM

    @pytest.mark.asyncio
    async def test_prompt_carries_numbered_context(self, retrieval_engine, vector_index, mock_llm_provider) -> None:
        await _seed(vector_index, 2)

        await retrieval_engine.query(_QUESTION, user_id="user-1")

        kwargs = mock_llm_provider.complete.await_args.kwargs
        assert kwargs["user_prompt"] == _QUESTION
        assert kwargs["system_prompt"].startswith("You are an AI Sales Assistant")
        assert "Context Documents:\n[Document 1: doc_" in kwargs["system_prompt"]
        assert "[Document 2: doc_" in kwargs["system_prompt"]
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 1500

    @pytest.mark.asyncio
    async def test_evidence_fields(self, retrieval_engine, vector_index) -> None:
        long_text = "Pricing " + "x" * 392
        await vector_index.add(
            [
                IndexRecord(
                    id="c1",
                    text=long_text,
                    metadata={"userId": "user-1", "fileName": "acme_quote.pdf", "pageNumber": 4},
                )
            ]
        )

        result = await retrieval_engine.query(long_text, user_id="user-1")

        item = result.evidence[0]
        assert item.source == "acme_quote.pdf"
        assert item.page == 4
        assert item.relevance_score == 1.0
        assert len(item.excerpt) == 300
        assert item.excerpt.endswith("...")
        assert item.excerpt[:297] == long_text[:297]

    @pytest.mark.asyncio
    async def test_exactly_300_chars_is_not_truncated(self, retrieval_engine, vector_index) -> None:
        text = "y" * 300
        await vector_index.add([IndexRecord(id="c1", text=text, metadata={"userId": "user-1"})])

        result = await retrieval_engine.query(text, user_id="user-1")

        assert result.evidence[0].excerpt == text
        assert result.evidence[0].source == "Unknown"
        assert result.evidence[0].page == 0


# ======================================================================
# Scope
# ======================================================================


class TestScope:
    @pytest.mark.asyncio
    async def test_other_users_chunks_are_invisible(self, retrieval_engine, vector_index) -> None:
        await _seed(vector_index, 3, user="user-2")

        result = await retrieval_engine.query(_QUESTION, user_id="user-1")

        assert result.evidence == []
        assert vector_index.searches[-1].conditions == {"userId": "user-1"}

    @pytest.mark.asyncio
    async def test_deal_narrows_scope(self, retrieval_engine, vector_index) -> None:
        await _seed(vector_index, 2, dealId="deal-1")
        await _seed(vector_index, 1, dealId="deal-2")

        result = await retrieval_engine.query(_QUESTION, user_id="user-1", deal_id="deal-1")

        assert vector_index.searches[-1].conditions == {"userId": "user-1", "dealId": "deal-1"}
        assert len(result.evidence) == 2

    @pytest.mark.asyncio
    async def test_cross_user_hits_from_index_are_dropped(self, mock_llm_provider, rag_config) -> None:
        index = AsyncMock()
        index.similarity_search = AsyncMock(
            return_value=[
                SearchHit(id="a", text="ours", metadata={"userId": "user-1", "fileName": "a.pdf"}, distance=0.1),
                SearchHit(id="b", text="theirs", metadata={"userId": "user-2", "fileName": "b.pdf"}, distance=0.05),
                SearchHit(id="c", text="unowned", metadata={}, distance=0.05),
            ]
        )
        engine = RetrievalEngine(index, mock_llm_provider, config=rag_config)

        result = await engine.query(_QUESTION, user_id="user-1")

        assert [e.source for e in result.evidence] == ["a.pdf"]
        assert result.evidence[0].relevance_score == 0.9
        assert result.confidence is Confidence.LOW


# ======================================================================
# Failures
# ======================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_index_failure_raises_retrieval_error(self, mock_llm_provider, rag_config) -> None:
        index = AsyncMock()
        index.similarity_search = AsyncMock(side_effect=RAGError(message="disk gone", provider_name="chromadb"))
        engine = RetrievalEngine(index, mock_llm_provider, config=rag_config)

        with pytest.raises(RetrievalError) as exc_info:
            await engine.query(_QUESTION, user_id="user-1")

        assert "disk gone" in str(exc_info.value)
        assert exc_info.value.provider_name == "chromadb"

    @pytest.mark.asyncio
    async def test_llm_failure_raises_retrieval_error(self, retrieval_engine, vector_index, mock_llm_provider) -> None:
        await _seed(vector_index, 1)
        mock_llm_provider.complete.side_effect = LLMError(message="quota", provider_name="openai")

        with pytest.raises(RetrievalError) as exc_info:
            await retrieval_engine.query(_QUESTION, user_id="user-1")

        assert "quota" in str(exc_info.value)


@pytest.mark.parametrize(
    ("distance", "expected"),
    [(None, 0.0), (0.0, 1.0), (0.123, 0.88), (0.875, 0.13), (0.375, 0.63), (1.4, 0.0), (-0.2, 1.0)],
)
def test_relevance_score_rounding(distance, expected) -> None:
    hit = SearchHit(id="x", text="t", metadata={}, distance=distance)
    assert RetrievalEngine._to_evidence(hit).relevance_score == expected

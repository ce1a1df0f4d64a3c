"""User-scoped retrieval-augmented question answering over sales documents.

Flow for one question:

  1. SEARCH   -- ask the vector index for the top-k chunks at or above the
                 similarity threshold, filtered to the caller's own chunks
                 (and to one deal when requested).
  2. GUARD    -- drop any hit whose ``userId`` metadata is not the caller's.
                 The index already filters; this re-check is logged when it
                 ever fires.
  3. SHORTCUT -- no hits means a fixed "nothing found" answer with Low
                 confidence; the LLM is not called.
  4. CONTEXT  -- number the hits ``[Document k: file]`` and append them to
                 the sales-assistant system prompt.
  5. ANSWER   -- the LLM's text is returned verbatim, with one evidence item
                 per hit and a confidence derived from the hit count.

Index or LLM failures surface as :class:`RetrievalError`; there is no
retry and no degraded answer on this path.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import structlog

from src.config.settings import RagConfig
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_index import IVectorIndex
from src.models.rag import (
    META_FILE_NAME,
    META_PAGE_NUMBER,
    META_USER_ID,
    Confidence,
    EvidenceItem,
    QueryResult,
    ScopeFilter,
    SearchHit,
)
from src.utils.errors import LLMError, RAGError, RetrievalError
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_EXCERPT_LIMIT = 300
_EXCERPT_KEEP = 297
_UNKNOWN_SOURCE = "Unknown"


def _round_half_up(value: float) -> float:
    """Round to two decimals with halves going up (0.125 -> 0.13)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class RetrievalEngine:
    """Answers questions from the caller's indexed documents.

    Parameters
    ----------
    vector_index:
        Scoped similarity search over chunk text.
    llm:
        Phrases the answer from the retrieved context.
    config:
        Supplies ``default_top_k`` and ``similarity_threshold``.
    temperature:
        Sampling temperature for the answer.
    max_tokens:
        Upper bound on answer length.
    """

    _SYSTEM_PROMPT = (
        "You are an AI Sales Assistant for the AI Sales Brain platform. Your role is to "
        "answer questions about sales deals based on the provided document context.\n\n"
        "Guidelines:\n"
        "1. Answer ONLY based on the provided context documents\n"
        "2. If the context doesn't contain relevant information, say so clearly\n"
        "3. Always cite your sources by mentioning the document name\n"
        "4. Be concise but thorough\n"
        "5. Focus on actionable sales insights\n\n"
        "Context Documents:\n"
    )

    _NO_RESULTS_ANSWER = (
        "I couldn't find any relevant information in your uploaded documents to answer "
        "this question. Please make sure you have uploaded relevant PDF documents."
    )

    def __init__(
        self,
        vector_index: IVectorIndex,
        llm: ILLMProvider,
        config: RagConfig | None = None,
        temperature: float = 0.2,
        max_tokens: int = 1500,
    ) -> None:
        self._vector_index = vector_index
        self._llm = llm
        self._config = config or RagConfig()
        self._temperature = temperature
        self._max_tokens = max_tokens

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query(
        self,
        question: str,
        user_id: str,
        top_k: int | None = None,
        deal_id: str | None = None,
        similarity_threshold: float | None = None,
    ) -> QueryResult:
        """Answer *question* from *user_id*'s documents.

        Parameters
        ----------
        question:
            Natural-language question, passed to the LLM unchanged.
        user_id:
            The requester; only chunks carrying this ``userId`` are used.
        top_k:
            Maximum number of passages; defaults to ``config.default_top_k``.
        deal_id:
            Optional deal to narrow the search to.
        similarity_threshold:
            Minimum similarity; defaults to ``config.similarity_threshold``.

        Raises
        ------
        RetrievalError
            If the vector index or the LLM fails.
        """
        k = top_k if top_k is not None else self._config.default_top_k
        threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else self._config.similarity_threshold
        )
        scope = ScopeFilter.for_user(user_id, deal_id=deal_id)

        try:
            hits = await self._vector_index.similarity_search(
                question, top_k=k, similarity_threshold=threshold, scope=scope
            )
        except RAGError as exc:
            logger.error("rag_search_failed", user_id=user_id, error=str(exc))
            raise RetrievalError(
                message=f"Document search failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        hits = self._enforce_scope(hits, user_id)

        if not hits:
            logger.info("rag_query", user_id=user_id, top_k=k, hits=0)
            return QueryResult(
                query=question,
                answer=self._NO_RESULTS_ANSWER,
                evidence=[],
                confidence=Confidence.LOW,
            )

        system_prompt = self._SYSTEM_PROMPT + self._build_context(hits)
        try:
            answer = await self._llm.complete(
                system_prompt=system_prompt,
                user_prompt=question,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except LLMError as exc:
            logger.error("rag_answer_failed", user_id=user_id, error=str(exc))
            raise RetrievalError(
                message=f"Answer generation failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        evidence = [self._to_evidence(hit) for hit in hits]
        confidence = Confidence.from_hit_count(len(evidence))
        logger.info(
            "rag_query",
            user_id=user_id,
            deal_id=deal_id,
            top_k=k,
            hits=len(hits),
            confidence=confidence.value,
            llm=self._llm.get_provider_name(),
        )
        return QueryResult(query=question, answer=answer, evidence=evidence, confidence=confidence)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _enforce_scope(hits: list[SearchHit], user_id: str) -> list[SearchHit]:
        kept: list[SearchHit] = []
        for hit in hits:
            owner = hit.metadata.get(META_USER_ID)
            if owner is None or str(owner) != str(user_id):
                logger.warning(
                    "rag_cross_user_hit_dropped",
                    chunk_id=hit.id,
                    requester=user_id,
                    owner=owner,
                )
                continue
            kept.append(hit)
        return kept

    @staticmethod
    def _build_context(hits: list[SearchHit]) -> str:
        parts = []
        for k, hit in enumerate(hits, start=1):
            source = hit.metadata.get(META_FILE_NAME) or _UNKNOWN_SOURCE
            parts.append(f"[Document {k}: {source}]\n{hit.text}\n\n")
        return "".join(parts)

    @staticmethod
    def _to_evidence(hit: SearchHit) -> EvidenceItem:
        text = hit.text
        excerpt = text[:_EXCERPT_KEEP] + "..." if len(text) > _EXCERPT_LIMIT else text

        try:
            page = max(int(hit.metadata.get(META_PAGE_NUMBER)), 0)
        except (TypeError, ValueError):
            page = 0

        if hit.distance is None:
            score = 0.0
        else:
            score = min(max(_round_half_up(1.0 - hit.distance), 0.0), 1.0)

        return EvidenceItem(
            source=str(hit.metadata.get(META_FILE_NAME) or _UNKNOWN_SOURCE),
            excerpt=excerpt,
            page=page,
            relevance_score=score,
        )

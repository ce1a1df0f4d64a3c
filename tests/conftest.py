"""Shared pytest fixtures for the sales-brain test suite."""

from __future__ import annotations

import hashlib
import struct
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fitz
import pytest
import pytest_asyncio

from src.config.settings import RagConfig
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_index import IVectorIndex
from src.models.rag import IndexRecord, ScopeFilter, SearchHit
from src.providers.document_store.sqlite_document_store import SQLiteDocumentRepository
from src.services.ingestion.chunk_indexer import ChunkIndexer
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.pipeline import IngestionPipeline
from src.services.ingestion.segmenter import TextSegmenter
from src.services.retrieval_service import RetrievalEngine
from src.utils.concurrency import BoundedTaskRunner

_EMBEDDING_DIM = 128


# ---------------------------------------------------------------------------
# Deterministic embeddings & in-memory vector index
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic unit vector by hashing *text*.

    Same text always produces the same vector, so a query equal to a stored
    chunk's text has similarity 1.0 with it.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Unsigned ints avoid NaN/inf bit patterns that raw floats can produce.
    values = [v / 2**32 - 0.5 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [_hash_to_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return _hash_to_vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class MockVectorIndex(IVectorIndex):
    """In-memory vector index that honours scope filters and thresholds.

    Similarity is the dot product of hash vectors, so only an exact text
    match scores 1.0.  ``fail_adds`` makes the next N ``add`` calls raise.
    """

    def __init__(self) -> None:
        self.records: dict[str, IndexRecord] = {}
        self._vectors: dict[str, list[float]] = {}
        self._embedding = MockEmbeddingProvider()
        self.fail_adds = 0
        self.add_calls = 0
        self.deleted: list[str] = []
        self.searches: list[ScopeFilter] = []

    async def add(self, records: list[IndexRecord]) -> int:
        self.add_calls += 1
        if self.fail_adds > 0:
            self.fail_adds -= 1
            raise RuntimeError("index temporarily unavailable")
        vectors = await self._embedding.embed([r.text for r in records])
        for record, vector in zip(records, vectors, strict=True):
            self.records[record.id] = record
            self._vectors[record.id] = vector
        return len(records)

    async def delete(self, ids: list[str]) -> int:
        for record_id in ids:
            self.records.pop(record_id, None)
            self._vectors.pop(record_id, None)
        self.deleted.extend(ids)
        return len(ids)

    async def similarity_search(
        self,
        query: str,
        top_k: int,
        similarity_threshold: float,
        scope: ScopeFilter,
    ) -> list[SearchHit]:
        self.searches.append(scope)
        if scope.is_empty:
            return []
        query_vec = await self._embedding.embed_single(query)
        scored: list[tuple[float, IndexRecord]] = []
        for record_id, record in self.records.items():
            if not scope.matches(record.metadata):
                continue
            similarity = sum(a * b for a, b in zip(query_vec, self._vectors[record_id], strict=True))
            if similarity >= similarity_threshold:
                scored.append((similarity, record))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            SearchHit(id=r.id, text=r.text, metadata=dict(r.metadata), distance=1.0 - s)
            for s, r in scored[:top_k]
        ]

    def get_provider_name(self) -> str:
        return "mock-index"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def rag_config() -> RagConfig:
    return RagConfig(chunk_size_chars=100, overlap_chars=20, default_top_k=5, similarity_threshold=0.75)


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def vector_index() -> MockVectorIndex:
    return MockVectorIndex()


@pytest.fixture
def mock_llm_provider() -> MagicMock:
    """LLM provider mock that answers every prompt with a fixed string."""
    llm = MagicMock(spec=ILLMProvider)
    llm.complete = AsyncMock(return_value="Acme agreed to a 12-month pilot [Document 1].")
    llm.get_provider_name.return_value = "mock-llm"
    llm.is_available.return_value = True
    return llm


@pytest_asyncio.fixture
async def repository(tmp_path: Path) -> SQLiteDocumentRepository:
    repo = SQLiteDocumentRepository(db_path=tmp_path / "documents.db")
    await repo.initialize()
    return repo


@pytest.fixture
def pipeline(
    repository: SQLiteDocumentRepository,
    vector_index: MockVectorIndex,
    rag_config: RagConfig,
) -> IngestionPipeline:
    return IngestionPipeline(
        repository=repository,
        extractor=ContentExtractor(),
        segmenter=TextSegmenter(rag_config),
        indexer=ChunkIndexer(vector_index, retry_attempts=3, initial_delay=0, max_delay=0),
        runner=BoundedTaskRunner(max_concurrent=2, name="test-ingestion"),
        processing_timeout_minutes=30,
    )


@pytest.fixture
def retrieval_engine(
    vector_index: MockVectorIndex,
    mock_llm_provider: MagicMock,
    rag_config: RagConfig,
) -> RetrievalEngine:
    return RetrievalEngine(vector_index=vector_index, llm=mock_llm_provider, config=rag_config)


def make_pdf_bytes(pages: list[str]) -> bytes:
    """Build an in-memory PDF with one text line per page."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    return make_pdf_bytes(["Proposal for Acme Corp", "Pricing: 40k per year"])


@pytest.fixture
def sample_metadata() -> dict[str, Any]:
    return {
        "userId": "user-1",
        "documentId": "1",
        "fileName": "acme_proposal.pdf",
        "chunkIndex": 0,
        "pageNumber": 0,
    }


@pytest.fixture
def pdf_factory():
    """Return the in-memory PDF builder for tests that need custom pages."""
    return make_pdf_bytes

"""RAG data models: segmentation output, index records, search hits, answers.

These are the value objects that flow between the ingestion stages and the
query path:

    ContentExtractor  →  ExtractedContent
    TextSegmenter     →  Segment            (pure, no ids yet)
    ChunkIndexer      →  IndexRecord        (id + text + metadata for the index)
    IVectorIndex      →  SearchHit          (id + text + metadata + distance)
    RetrievalEngine   →  EvidenceItem / QueryResult

All models are frozen.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Metadata keys written to the vector index for every chunk.
META_USER_ID = "userId"
META_DOCUMENT_ID = "documentId"
META_FILE_NAME = "fileName"
META_CHUNK_INDEX = "chunkIndex"
META_PAGE_NUMBER = "pageNumber"
META_DEAL_ID = "dealId"

MetadataValue = str | int | float | bool


class ExtractedContent(BaseModel):
    """Plain text pulled out of an upload, plus the page count when paginated."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    page_count: int | None = Field(default=None, ge=0)


class Segment(BaseModel):
    """One window produced by the text segmenter.

    Offsets index into the *cleaned* text; ``content`` is the trimmed slice
    ``cleaned[start_offset:end_offset]``.
    """

    model_config = ConfigDict(frozen=True)

    content: str
    index: int = Field(ge=0)
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)
    token_estimate: int = Field(ge=0)


class IndexRecord(BaseModel):
    """A chunk as handed to the vector index for embedding and storage."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class SearchHit(BaseModel):
    """One similarity-search result, in the order the index ranked it.

    ``distance`` is the index's cosine distance (``1 - similarity``) or
    ``None`` when the backend does not report one.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    distance: float | None = None


class ScopeFilter(BaseModel):
    """Equality conditions every returned hit must satisfy.

    Built with :meth:`for_user`.  An empty filter is never "match all":
    index adapters treat it as a defect and return no hits.
    """

    model_config = ConfigDict(frozen=True)

    conditions: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def for_user(cls, user_id: str | None, deal_id: str | None = None) -> ScopeFilter:
        """Scope to one user's chunks, optionally narrowed to a deal.

        A blank *user_id* yields an empty filter so that the search fails
        closed rather than running unscoped.
        """
        if user_id is None or not str(user_id).strip():
            return cls()
        conditions = {META_USER_ID: str(user_id)}
        if deal_id:
            conditions[META_DEAL_ID] = str(deal_id)
        return cls(conditions=conditions)

    @property
    def is_empty(self) -> bool:
        return not self.conditions

    @property
    def user_id(self) -> str | None:
        return self.conditions.get(META_USER_ID)

    def matches(self, metadata: dict[str, Any]) -> bool:
        """Return ``True`` if *metadata* satisfies every condition."""
        if self.is_empty:
            return False
        return all(str(metadata.get(key)) == value for key, value in self.conditions.items())


class Confidence(str, Enum):  # noqa: UP042
    """Coarse answer confidence, derived from the evidence count only."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def from_hit_count(cls, hits: int) -> Confidence:
        if hits >= 3:
            return cls.HIGH
        if hits == 2:
            return cls.MEDIUM
        return cls.LOW


class EvidenceItem(BaseModel):
    """A query-time projection of one search hit."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(description="Original filename of the source document.")
    excerpt: str = Field(description="Chunk text, truncated to 300 characters.")
    page: int = Field(default=0, ge=0, description="Source page number, 0 when unknown.")
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)


class QueryResult(BaseModel):
    """The answer to a user question with its supporting evidence."""

    model_config = ConfigDict(frozen=True)

    query: str
    answer: str
    evidence: list[EvidenceItem] = Field(default_factory=list)
    confidence: Confidence = Confidence.LOW

"""Sales-brain domain models: re-exports all public model classes.

The models are organized across two submodules by domain concern:
    - document.py: Uploaded documents, processing status, persisted chunks
    - rag.py: Segmentation output, index records, search hits, answers

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

from src.models.document import (
    Chunk,
    Document,
    DocumentCategory,
    ProcessingStatus,
    generate_stored_filename,
    utcnow,
)
from src.models.rag import (
    Confidence,
    EvidenceItem,
    ExtractedContent,
    IndexRecord,
    QueryResult,
    ScopeFilter,
    SearchHit,
    Segment,
)

__all__ = [
    "Chunk",
    "Confidence",
    "Document",
    "DocumentCategory",
    "EvidenceItem",
    "ExtractedContent",
    "IndexRecord",
    "ProcessingStatus",
    "QueryResult",
    "ScopeFilter",
    "SearchHit",
    "Segment",
    "generate_stored_filename",
    "utcnow",
]

"""Document ingestion for the sales knowledge base.

Stages run by :class:`IngestionPipeline` for each uploaded document:

1. **Extract** (content_extractor.py / ContentExtractor) -- PDF pages via
   PyMuPDF or UTF-8 text, trimmed.

2. **Segment** (segmenter.py / TextSegmenter) -- ~800-character windows
   with 100 characters of overlap, cut at sentence or word boundaries.

3. **Persist** -- chunk rows written to the document repository in one
   transaction.

4. **Index** (chunk_indexer.py / ChunkIndexer) -- chunks embedded and
   stored in the vector index with the owning user's id as metadata,
   retried with exponential backoff.
"""

from src.services.ingestion.chunk_indexer import ChunkIndexer
from src.services.ingestion.content_extractor import ContentExtractor
from src.services.ingestion.pipeline import IngestionPipeline
from src.services.ingestion.segmenter import TextSegmenter

__all__ = [
    "ChunkIndexer",
    "ContentExtractor",
    "IngestionPipeline",
    "TextSegmenter",
]

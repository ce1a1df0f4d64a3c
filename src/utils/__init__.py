"""Utility modules for the sales-brain RAG core.

- **errors** -- Domain-specific exception hierarchy rooted at SalesBrainError;
  each ingestion/query stage raises its own subclass so callers can handle
  failures granularly without broad ``except Exception`` blocks.
- **concurrency** -- bounded background task runner and semaphore-throttled
  gather used by the ingestion pipeline and CLI.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import BoundedTaskRunner, throttled_gather

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    DocumentNotFoundError,
    ExtractionError,
    IndexingError,
    InvalidStatusTransitionError,
    LLMError,
    PipelineError,
    RAGError,
    RateLimitError,
    RetrievalError,
    SalesBrainError,
    SegmentationError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "BoundedTaskRunner",
    "ConfigurationError",
    "DocumentNotFoundError",
    "ExtractionError",
    "IndexingError",
    "InvalidStatusTransitionError",
    "LLMError",
    "PipelineError",
    "RAGError",
    "RateLimitError",
    "RetrievalError",
    "SalesBrainError",
    "SegmentationError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]

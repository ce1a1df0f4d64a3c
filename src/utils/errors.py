"""Custom exception hierarchy for the sales-brain RAG core.

All application exceptions inherit from :class:`SalesBrainError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by pipeline stage:

    SalesBrainError  (base -- catch-all for any application error)
    +-- ExtractionError              (stage 1: bytes -> plain text)
    +-- SegmentationError            (stage 2: text -> chunks, a defect)
    +-- IndexingError                (stage 4: chunks -> vector index, after retries)
    +-- RAGError                     (raw embedding / vector-store adapter failure)
    +-- LLMError                     (any LLM API call failure)
    +-- RetrievalError               (query path failure surfaced to the caller)
    +-- PipelineError                (orchestration / status transitions)
    |   +-- InvalidStatusTransitionError
    +-- DocumentNotFoundError        (unknown or foreign document id)
    +-- ConfigurationError           (startup / invalid settings)
    +-- RateLimitError               (provider rate-limit exceeded)

Ingestion-stage errors are recorded on the Document and never reach the
uploader.  Query-stage errors (``RetrievalError``) propagate to the caller.
"""


class SalesBrainError(Exception):
    """Base exception for all application errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class ExtractionError(SalesBrainError):
    """Raised when a recognised document format cannot be decoded or parsed.

    Carries the offending ``filename`` and the underlying ``cause`` so the
    pipeline can record a precise message on the Document.  Extraction
    failures are fatal for that document and never retried.
    """

    def __init__(
        self,
        filename: str,
        cause: BaseException | str,
        provider_name: str | None = None,
    ) -> None:
        self._filename = filename
        self._cause = cause
        super().__init__(
            message=f"Failed to extract text from {filename}: {cause}",
            provider_name=provider_name,
        )

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def cause(self) -> BaseException | str:
        return self._cause


class SegmentationError(SalesBrainError):
    """Raised when text segmentation misbehaves (programming defect)."""

    def __init__(
        self,
        message: str = "Text segmentation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexingError(SalesBrainError):
    """Raised when chunks could not be stored in the vector index after retries."""

    def __init__(
        self,
        message: str = "Failed to generate and store embeddings",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class RateLimitError(SalesBrainError):
    """Raised when an API rate limit is exceeded.

    The chunk indexer retries on this (and any other) failure with
    exponential backoff before giving up.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(SalesBrainError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RAGError(SalesBrainError):
    """Raised when an embedding or vector-store operation fails."""

    def __init__(
        self,
        message: str = "RAG pipeline operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RetrievalError(SalesBrainError):
    """Raised when a question cannot be answered because a collaborator failed.

    Wraps :class:`RAGError` (index query) and :class:`LLMError` (answer
    synthesis).  No partial or cached answer is ever substituted.
    """

    def __init__(
        self,
        message: str = "Retrieval query failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / lookup / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(SalesBrainError):
    """Raised when ingestion orchestration fails."""

    def __init__(
        self,
        message: str = "Ingestion pipeline failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidStatusTransitionError(PipelineError):
    """Raised when a Document is asked to move to a status it cannot reach."""

    def __init__(self, current: str, requested: str) -> None:
        self._current = current
        self._requested = requested
        super().__init__(
            message=f"Illegal processing status transition: {current} -> {requested}",
        )

    @property
    def current(self) -> str:
        return self._current

    @property
    def requested(self) -> str:
        return self._requested


class DocumentNotFoundError(SalesBrainError):
    """Raised when a document id is unknown or belongs to another user.

    The two cases are deliberately indistinguishable to the caller.
    """

    def __init__(self, document_id: int) -> None:
        self._document_id = document_id
        super().__init__(message=f"Document not found: {document_id}")

    @property
    def document_id(self) -> int:
        return self._document_id


class ConfigurationError(SalesBrainError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)

"""Public interface definitions for all external collaborators.

Every external service used by the RAG core is accessed exclusively through
the abstract base classes defined in this package.  Concrete adapters live
in ``src/providers/`` and are wired in ``src/main.py`` at startup, so tests
can inject fakes without touching business logic.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    ILLMProvider           →  AnthropicLLMProvider, OpenAILLMProvider,
                              OllamaLLMProvider
    IEmbeddingProvider     →  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    IVectorIndex           →  ChromaDBVectorIndex
    IDocumentRepository    →  SQLiteDocumentRepository
"""

from src.interfaces.document_repository import IDocumentRepository
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_index import IVectorIndex

__all__ = [
    "IDocumentRepository",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IVectorIndex",
]

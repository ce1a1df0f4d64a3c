"""Vector index implementations.

ChromaDB is the sole vector index implementation.  It stores chunk
embeddings on disk and supports cosine-similarity search restricted by
metadata filters.  Data persists at CHROMADB_PERSIST_DIR
(default: ./data/chromadb).

To swap ChromaDB for another vector database, implement IVectorIndex and
register the new class in main.py.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBVectorIndex

__all__ = ["ChromaDBVectorIndex"]

"""Embedding provider implementations.

Embeddings turn chunk text into vectors that the vector index compares.
Selection order in main.py:
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims) or any
       OpenAI-compatible model; requires OPENAI_API_KEY.
    2. NomicEmbeddingProvider  -- nomic-embed-text via Ollama (768 dims);
       free and local.

Switching providers changes the vector dimension; the vector index refuses
to open a collection built with a different one.
"""

from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["NomicEmbeddingProvider", "OpenAIEmbeddingProvider"]

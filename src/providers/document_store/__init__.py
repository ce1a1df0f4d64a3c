"""Document/chunk persistence implementations."""

from src.providers.document_store.sqlite_document_store import SQLiteDocumentRepository

__all__ = ["SQLiteDocumentRepository"]

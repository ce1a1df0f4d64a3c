"""SQLite-backed document and chunk repository.

Persists :class:`Document` rows and their :class:`Chunk` rows to a local
SQLite database (``data/documents.db`` by default) using ``aiosqlite``.
Each operation opens its own short-lived connection, so concurrent
ingestion tasks never share a cursor.

Timestamps are stored as ISO-8601 UTC strings, which sort and compare
lexically in the same order as the instants they represent.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.document_repository import IDocumentRepository
from src.models.document import Chunk, Document, DocumentCategory, ProcessingStatus
from src.utils.errors import InvalidStatusTransitionError, PipelineError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/documents.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    file_name           TEXT    NOT NULL,
    original_file_name  TEXT    NOT NULL,
    content_type        TEXT    NOT NULL,
    file_size           INTEGER NOT NULL DEFAULT 0,
    document_type       TEXT    NOT NULL,
    total_pages         INTEGER,
    total_chunks        INTEGER,
    processing_status   TEXT    NOT NULL,
    error_message       TEXT,
    user_id             TEXT    NOT NULL,
    deal_id             TEXT,
    created_at          TEXT    NOT NULL,
    updated_at          TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS document_chunks (
    id            TEXT    PRIMARY KEY,
    document_id   INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    user_id       TEXT    NOT NULL,
    chunk_index   INTEGER NOT NULL,
    content       TEXT    NOT NULL,
    page_number   INTEGER,
    start_offset  INTEGER NOT NULL,
    end_offset    INTEGER NOT NULL,
    token_count   INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT    NOT NULL,
    UNIQUE(document_id, chunk_index)
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_user ON documents(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_user_status ON documents(user_id, processing_status);",
    "CREATE INDEX IF NOT EXISTS idx_documents_user_deal ON documents(user_id, deal_id);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id);",
]

_DOCUMENT_COLUMNS = (
    "id, file_name, original_file_name, content_type, file_size, document_type, "
    "total_pages, total_chunks, processing_status, error_message, user_id, deal_id, "
    "created_at, updated_at"
)

_INSERT_DOCUMENT_SQL = """\
INSERT INTO documents (
    file_name, original_file_name, content_type, file_size, document_type,
    total_pages, total_chunks, processing_status, error_message, user_id, deal_id,
    created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_DOCUMENT_SQL = """\
UPDATE documents
SET file_name = ?, original_file_name = ?, content_type = ?, file_size = ?,
    document_type = ?, total_pages = ?, total_chunks = ?, processing_status = ?,
    error_message = ?, user_id = ?, deal_id = ?, created_at = ?, updated_at = ?
WHERE id = ?;
"""

_UPDATE_DOCUMENT_IF_STATUS_SQL = _UPDATE_DOCUMENT_SQL.replace(
    "WHERE id = ?;", "WHERE id = ? AND processing_status = ?;"
)

_INSERT_CHUNK_SQL = """\
INSERT INTO document_chunks (
    id, document_id, user_id, chunk_index, content, page_number,
    start_offset, end_offset, token_count, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_CHUNK_COLUMNS = (
    "id, document_id, user_id, chunk_index, content, page_number, "
    "start_offset, end_offset, token_count, created_at"
)


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        id=row["id"],
        file_name=row["file_name"],
        original_file_name=row["original_file_name"],
        content_type=row["content_type"],
        file_size=row["file_size"],
        document_type=DocumentCategory(row["document_type"]),
        total_pages=row["total_pages"],
        total_chunks=row["total_chunks"],
        processing_status=ProcessingStatus(row["processing_status"]),
        error_message=row["error_message"],
        user_id=row["user_id"],
        deal_id=row["deal_id"],
        created_at=_from_iso(row["created_at"]),
        updated_at=_from_iso(row["updated_at"]),
    )


def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        user_id=row["user_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        page_number=row["page_number"],
        start_offset=row["start_offset"],
        end_offset=row["end_offset"],
        token_count=row["token_count"],
        created_at=_from_iso(row["created_at"]),
    )


def _document_params(document: Document) -> tuple[Any, ...]:
    return (
        document.file_name,
        document.original_file_name,
        document.content_type,
        document.file_size,
        document.document_type.value,
        document.total_pages,
        document.total_chunks,
        document.processing_status.value,
        document.error_message,
        document.user_id,
        document.deal_id,
        _to_iso(document.created_at),
        _to_iso(document.updated_at),
    )


class SQLiteDocumentRepository(IDocumentRepository):
    """SQLite-backed document/chunk persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON;")
            yield db

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def save_document(
        self,
        document: Document,
        expected_status: ProcessingStatus | None = None,
    ) -> Document:
        async with self._connect() as db:
            if document.id is None:
                cursor = await db.execute(_INSERT_DOCUMENT_SQL, _document_params(document))
                await db.commit()
                stored = document.model_copy(update={"id": cursor.lastrowid})
                logger.debug("document_inserted", document_id=stored.id, user_id=stored.user_id)
                return stored

            if expected_status is None:
                cursor = await db.execute(
                    _UPDATE_DOCUMENT_SQL, (*_document_params(document), document.id)
                )
            else:
                cursor = await db.execute(
                    _UPDATE_DOCUMENT_IF_STATUS_SQL,
                    (*_document_params(document), document.id, expected_status.value),
                )
            await db.commit()
            if cursor.rowcount == 0:
                status_cursor = await db.execute(
                    "SELECT processing_status FROM documents WHERE id = ?",
                    (document.id,),
                )
                row = await status_cursor.fetchone()
                if row is None:
                    raise PipelineError(
                        message=f"Cannot update unknown document {document.id}",
                        provider_name=self.get_provider_name(),
                    )
                logger.warning(
                    "document_status_conflict",
                    document_id=document.id,
                    expected=expected_status.value if expected_status else None,
                    stored=row["processing_status"],
                )
                raise InvalidStatusTransitionError(
                    current=row["processing_status"],
                    requested=document.processing_status.value,
                )
        logger.debug(
            "document_updated",
            document_id=document.id,
            status=document.processing_status.value,
        )
        return document

    async def get_document(self, document_id: int) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?",  # noqa: S608
                (document_id,),
            )
            row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def get_document_for_user(self, document_id: int, user_id: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ? AND user_id = ?",  # noqa: S608
                (document_id, user_id),
            )
            row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def list_documents(
        self,
        user_id: str,
        status: ProcessingStatus | None = None,
        deal_id: str | None = None,
    ) -> list[Document]:
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]
        if status is not None:
            clauses.append("processing_status = ?")
            params.append(status.value)
        if deal_id is not None:
            clauses.append("deal_id = ?")
            params.append(deal_id)

        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents "  # noqa: S608
                f"WHERE {' AND '.join(clauses)} ORDER BY created_at DESC, id DESC",
                params,
            )
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows]

    async def list_by_status(self, statuses: list[ProcessingStatus]) -> list[Document]:
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in statuses)
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents "  # noqa: S608
                f"WHERE processing_status IN ({placeholders}) ORDER BY id",
                [s.value for s in statuses],
            )
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows]

    async def list_stale(self, older_than: datetime) -> list[Document]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents "  # noqa: S608
                "WHERE processing_status = ? AND updated_at < ? ORDER BY updated_at",
                (ProcessingStatus.PROCESSING.value, _to_iso(older_than)),
            )
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def save_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        """Insert every chunk in one transaction; nothing is kept on failure."""
        if not chunks:
            return []
        rows = [
            (
                c.id,
                c.document_id,
                c.user_id,
                c.chunk_index,
                c.content,
                c.page_number,
                c.start_offset,
                c.end_offset,
                c.token_count,
                _to_iso(c.created_at),
            )
            for c in chunks
        ]
        async with self._connect() as db:
            try:
                await db.executemany(_INSERT_CHUNK_SQL, rows)
                await db.commit()
            except aiosqlite.Error as exc:
                await db.rollback()
                raise PipelineError(
                    message=f"Failed to persist {len(chunks)} chunks: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
        logger.debug("chunks_saved", document_id=chunks[0].document_id, count=len(chunks))
        return list(chunks)

    async def list_chunks(self, document_id: int) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM document_chunks "  # noqa: S608
                "WHERE document_id = ? ORDER BY chunk_index",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows]

    async def count_chunks(self, document_id: int) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) AS n FROM document_chunks WHERE document_id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
        return int(row["n"]) if row else 0

    def get_provider_name(self) -> str:
        return "sqlite"

    def is_available(self) -> bool:
        """Return ``True`` once the database file exists."""
        return self._db_path.exists()

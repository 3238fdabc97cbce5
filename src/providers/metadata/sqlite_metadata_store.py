"""SQLite-backed metadata store.

Persists classrooms, documents, chunks, generated artifacts, and daily usage
counters to a local SQLite database using ``aiosqlite`` for async I/O.

Consistency rules implemented here:

* Document status changes are a single ``UPDATE ... WHERE id = ? AND
  status = ?``; the affected row count tells the caller whether it won.
* Chunk rows are written in the same transaction that flips a document to
  READY, and removed by ``ON DELETE CASCADE`` in the same statement that
  deletes the document.
* Usage increments are an upsert, so concurrent requests never lose an
  update and a new day starts at zero simply because its key is new.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.models.artifacts import GeneratedArtifact
from src.models.document import (
    Chunk,
    Classroom,
    Document,
    DocumentStatus,
    is_legal_transition,
)
from src.models.usage import UsageCounter
from src.utils.errors import DocumentStateError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/studyrag.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS classrooms (
    id          TEXT PRIMARY KEY,
    account_id  TEXT NOT NULL,
    name        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);""",
    """\
CREATE TABLE IF NOT EXISTS documents (
    id              TEXT PRIMARY KEY,
    classroom_id    TEXT NOT NULL REFERENCES classrooms(id) ON DELETE CASCADE,
    filename        TEXT NOT NULL,
    mime_type       TEXT NOT NULL,
    size_bytes      INTEGER NOT NULL,
    storage_key     TEXT NOT NULL,
    status          TEXT NOT NULL,
    extractor_used  TEXT,
    failure_reason  TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);""",
    """\
CREATE TABLE IF NOT EXISTS chunks (
    id            TEXT PRIMARY KEY,
    document_id   TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    ordinal       INTEGER NOT NULL,
    text          TEXT NOT NULL,
    vector_id     TEXT NOT NULL,
    page          INTEGER,
    start_offset  INTEGER NOT NULL DEFAULT 0,
    end_offset    INTEGER NOT NULL DEFAULT 0,
    UNIQUE(document_id, ordinal)
);""",
    """\
CREATE TABLE IF NOT EXISTS artifacts (
    id            TEXT PRIMARY KEY,
    classroom_id  TEXT NOT NULL REFERENCES classrooms(id) ON DELETE CASCADE,
    kind          TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    body          TEXT NOT NULL
);""",
    """\
CREATE TABLE IF NOT EXISTS daily_usage (
    account_id       TEXT NOT NULL,
    day              TEXT NOT NULL,
    weighted_tokens  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (account_id, day)
);""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_classrooms_account ON classrooms(account_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_classroom ON documents(classroom_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, ordinal);",
    "CREATE INDEX IF NOT EXISTS idx_artifacts_classroom ON artifacts(classroom_id, created_at);",
]

_DOCUMENT_COLUMNS = (
    "id, classroom_id, filename, mime_type, size_bytes, storage_key, status, "
    "extractor_used, failure_reason, created_at, updated_at"
)

_CHUNK_COLUMNS = "id, document_id, ordinal, text, vector_id, page, start_offset, end_offset"

_INSERT_CHUNK_SQL = f"INSERT INTO chunks ({_CHUNK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?);"

_TRANSITION_SQL = """\
UPDATE documents
SET status         = ?,
    updated_at     = ?,
    extractor_used = COALESCE(?, extractor_used),
    failure_reason = COALESCE(?, failure_reason)
WHERE id = ? AND status = ?;
"""

_ADD_USAGE_SQL = """\
INSERT INTO daily_usage (account_id, day, weighted_tokens)
VALUES (?, ?, ?)
ON CONFLICT(account_id, day)
DO UPDATE SET weighted_tokens = weighted_tokens + excluded.weighted_tokens;
"""

_STORAGE_SQL = """\
SELECT COALESCE(SUM(d.size_bytes), 0)
FROM documents d JOIN classrooms c ON c.id = d.classroom_id
WHERE c.account_id = ?;
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteMetadataStore(IMetadataStore):
    """SQLite-backed classroom/document/chunk/artifact/usage persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON;")
            yield db

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode = WAL;")
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("metadata_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Classrooms
    # ------------------------------------------------------------------

    async def create_classroom(self, classroom: Classroom) -> Classroom:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO classrooms (id, account_id, name, created_at) VALUES (?, ?, ?, ?)",
                (classroom.id, classroom.account_id, classroom.name, classroom.created_at.isoformat()),
            )
            await db.commit()
        return classroom

    async def get_classroom(self, classroom_id: str) -> Classroom | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, account_id, name, created_at FROM classrooms WHERE id = ?",
                (classroom_id,),
            )
            row = await cursor.fetchone()
        return Classroom(**dict(row)) if row else None

    async def count_classrooms(self, account_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM classrooms WHERE account_id = ?", (account_id,)
            )
            row = await cursor.fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        async with self._connect() as db:
            await db.execute(
                f"INSERT INTO documents ({_DOCUMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    document.id,
                    document.classroom_id,
                    document.filename,
                    document.mime_type,
                    document.size_bytes,
                    document.storage_key,
                    document.status.value,
                    document.extractor_used,
                    document.failure_reason,
                    document.created_at.isoformat(),
                    document.updated_at.isoformat(),
                ),
            )
            await db.commit()
        return document

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
            )
            row = await cursor.fetchone()
        return Document(**dict(row)) if row else None

    async def list_documents(
        self,
        classroom_id: str,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE classroom_id = ?"
        params: tuple = (classroom_id,)
        if status is not None:
            sql += " AND status = ?"
            params = (classroom_id, status.value)
        sql += " ORDER BY created_at, id"
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [Document(**dict(r)) for r in rows]

    async def transition_status(
        self,
        document_id: str,
        expected: DocumentStatus,
        target: DocumentStatus,
        *,
        extractor_used: str | None = None,
        failure_reason: str | None = None,
    ) -> bool:
        if not is_legal_transition(expected, target):
            raise DocumentStateError(
                message=f"Illegal transition {expected.value} -> {target.value}",
                provider_name="sqlite",
            )
        async with self._connect() as db:
            cursor = await db.execute(
                _TRANSITION_SQL,
                (target.value, _now(), extractor_used, failure_reason, document_id, expected.value),
            )
            await db.commit()
            won = cursor.rowcount == 1

        logger.info(
            "document_transition",
            document_id=document_id,
            expected=expected.value,
            target=target.value,
            applied=won,
        )
        return won

    async def complete_ingestion(
        self,
        document_id: str,
        chunks: list[Chunk],
        extractor_used: str,
    ) -> None:
        async with self._connect() as db:
            try:
                cursor = await db.execute(
                    _TRANSITION_SQL,
                    (
                        DocumentStatus.READY.value,
                        _now(),
                        extractor_used,
                        None,
                        document_id,
                        DocumentStatus.PROCESSING.value,
                    ),
                )
                if cursor.rowcount != 1:
                    raise DocumentStateError(
                        message=f"Document {document_id} is no longer PROCESSING",
                        provider_name="sqlite",
                    )
                await db.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
                await db.executemany(_INSERT_CHUNK_SQL, [self._chunk_row(c) for c in chunks])
                await db.commit()
            except BaseException:
                await db.rollback()
                raise

        logger.info("ingestion_committed", document_id=document_id, chunks=len(chunks))

    async def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> list[Chunk]:
        async with self._connect() as db:
            try:
                cursor = await db.execute(
                    "SELECT status FROM documents WHERE id = ?", (document_id,)
                )
                row = await cursor.fetchone()
                if row is None or row["status"] != DocumentStatus.READY.value:
                    raise DocumentStateError(
                        message=f"Document {document_id} is not READY",
                        provider_name="sqlite",
                    )
                cursor = await db.execute(
                    f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY ordinal",
                    (document_id,),
                )
                previous = [Chunk(**dict(r)) for r in await cursor.fetchall()]
                await db.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
                await db.executemany(_INSERT_CHUNK_SQL, [self._chunk_row(c) for c in chunks])
                await db.execute(
                    "UPDATE documents SET updated_at = ? WHERE id = ?", (_now(), document_id)
                )
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
        return previous

    async def delete_document(self, document_id: str) -> Document | None:
        document = await self.get_document(document_id)
        if document is None:
            return None
        async with self._connect() as db:
            await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
        logger.info("document_deleted", document_id=document_id)
        return document

    async def storage_bytes(self, account_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_STORAGE_SQL, (account_id,))
            row = await cursor.fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def list_chunks(self, document_id: str) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY ordinal",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [Chunk(**dict(r)) for r in rows]

    async def get_chunks(self, chunk_ids: list[str]) -> list[Chunk]:
        if not chunk_ids:
            return []
        placeholders = ", ".join("?" for _ in chunk_ids)
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})",
                tuple(chunk_ids),
            )
            rows = await cursor.fetchall()
        return [Chunk(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    async def save_artifact(self, artifact: GeneratedArtifact) -> GeneratedArtifact:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO artifacts (id, classroom_id, kind, created_at, body) VALUES (?, ?, ?, ?, ?)",
                (
                    artifact.id,
                    artifact.classroom_id,
                    artifact.kind.value,
                    artifact.created_at.isoformat(),
                    artifact.model_dump_json(),
                ),
            )
            await db.commit()
        return artifact

    async def get_artifact(self, artifact_id: str) -> GeneratedArtifact | None:
        async with self._connect() as db:
            cursor = await db.execute("SELECT body FROM artifacts WHERE id = ?", (artifact_id,))
            row = await cursor.fetchone()
        return GeneratedArtifact.model_validate_json(row["body"]) if row else None

    async def list_artifacts(self, classroom_id: str) -> list[GeneratedArtifact]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT body FROM artifacts WHERE classroom_id = ? ORDER BY created_at DESC",
                (classroom_id,),
            )
            rows = await cursor.fetchall()
        return [GeneratedArtifact.model_validate_json(r["body"]) for r in rows]

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def get_usage(self, account_id: str, day: date) -> UsageCounter:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT weighted_tokens FROM daily_usage WHERE account_id = ? AND day = ?",
                (account_id, day.isoformat()),
            )
            row = await cursor.fetchone()
            cursor = await db.execute(
                "SELECT COUNT(*) FROM classrooms WHERE account_id = ?", (account_id,)
            )
            classrooms = (await cursor.fetchone())[0]
            cursor = await db.execute(_STORAGE_SQL, (account_id,))
            storage = (await cursor.fetchone())[0]
        return UsageCounter(
            account_id=account_id,
            day=day,
            weighted_tokens=int(row["weighted_tokens"]) if row else 0,
            classroom_count=int(classrooms),
            storage_bytes=int(storage),
        )

    async def add_usage(self, account_id: str, day: date, weighted_tokens: int) -> int:
        async with self._connect() as db:
            await db.execute(_ADD_USAGE_SQL, (account_id, day.isoformat(), weighted_tokens))
            await db.commit()
            cursor = await db.execute(
                "SELECT weighted_tokens FROM daily_usage WHERE account_id = ? AND day = ?",
                (account_id, day.isoformat()),
            )
            row = await cursor.fetchone()
        return int(row["weighted_tokens"])

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _chunk_row(chunk: Chunk) -> tuple:
        return (
            chunk.id,
            chunk.document_id,
            chunk.ordinal,
            chunk.text,
            chunk.vector_id,
            chunk.page,
            chunk.start_offset,
            chunk.end_offset,
        )

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING

from cms_core.errors import RecordNotFoundError, StorageError
from cms_core.models import RECORD_MODELS, Record, RecordType

if TYPE_CHECKING:
    from cms_server.adapters.sqlite_storage import SQLiteNamespace


class SQLiteRecordStore:
    """Stores records of one type as JSON documents in the tenant's ``records`` table."""

    def __init__(self, namespace: SQLiteNamespace, record_type: RecordType) -> None:
        self._namespace = namespace
        self._record_type = record_type
        self._model = RECORD_MODELS[record_type]

    def _load(self, row: sqlite3.Row) -> Record:
        return self._model.model_validate_json(row["document"])

    def _insert(self, record: Record) -> Record:
        with self._namespace.write_lock, self._namespace.connect() as conn:
            conn.execute(
                """
                INSERT INTO records(id, record_type, document, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    self._record_type.value,
                    record.model_dump_json(),
                    record.created_at.isoformat(),
                    record.updated_at.isoformat(),
                ),
            )
        return record

    def _get(self, record_id: str) -> Record | None:
        with self._namespace.connect() as conn:
            row = conn.execute(
                "SELECT document FROM records WHERE id = ? AND record_type = ?",
                (record_id, self._record_type.value),
            ).fetchone()
        return self._load(row) if row else None

    def _rows(self, extra: str = "", params: tuple = ()) -> list[Record]:
        with self._namespace.connect() as conn:
            rows = conn.execute(
                f"SELECT document FROM records WHERE record_type = ?{extra} ORDER BY rowid",
                (self._record_type.value, *params),
            ).fetchall()
        return [self._load(row) for row in rows]

    def _replace(self, record: Record) -> Record:
        with self._namespace.write_lock, self._namespace.connect() as conn:
            cursor = conn.execute(
                "UPDATE records SET document = ?, updated_at = ? WHERE id = ? AND record_type = ?",
                (record.model_dump_json(), record.updated_at.isoformat(), record.id, self._record_type.value),
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"{self._record_type.value} record not found: {record.id}")
        return record

    def _delete(self, record_id: str) -> bool:
        with self._namespace.write_lock, self._namespace.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE id = ? AND record_type = ?", (record_id, self._record_type.value)
            )
            return cursor.rowcount > 0

    def _count(self) -> int:
        with self._namespace.connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM records WHERE record_type = ?", (self._record_type.value,)
            ).fetchone()
        return int(row["total"])

    async def insert(self, record: Record) -> Record:
        return await asyncio.to_thread(self._insert, record)

    async def get(self, record_id: str) -> Record | None:
        return await asyncio.to_thread(self._get, record_id)

    async def list(
        self,
        *,
        sort_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[Record]:
        if sort_by not in self._model.model_fields:
            raise StorageError(f"Cannot sort {self._record_type.value} by {sort_by}")
        records = await asyncio.to_thread(self._rows)
        records.sort(key=lambda record: getattr(record, sort_by), reverse=descending)
        return records[:limit] if limit is not None else records

    async def replace(self, record: Record) -> Record:
        return await asyncio.to_thread(self._replace, record)

    async def delete(self, record_id: str) -> bool:
        return await asyncio.to_thread(self._delete, record_id)

    async def count(self) -> int:
        return await asyncio.to_thread(self._count)

    async def find_referencing(self, blob_id: str) -> list[Record]:
        candidates = await asyncio.to_thread(self._rows, " AND document LIKE ?", (f"%{blob_id}%",))
        return [record for record in candidates if blob_id in record.referenced_blob_ids()]

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator
from datetime import datetime
from typing import TYPE_CHECKING

from cms_core.errors import BlobNotFoundError, BlobWriteError, StorageError
from cms_core.models import BlobMeta, utcnow
from cms_core.services import new_blob_id

if TYPE_CHECKING:
    from cms_server.adapters.sqlite_storage import SQLiteNamespace

logger = logging.getLogger(__name__)


class SQLiteBlobWriter:
    """Buffers up to one chunk and flushes full chunks as they fill.

    The metadata row is written by ``close`` after the last chunk, so a blob
    whose writer never closed is invisible to readers.
    """

    def __init__(self, store: SQLiteBlobStore, filename: str, content_type: str) -> None:
        self._store = store
        self._blob_id = new_blob_id()
        self._filename = filename
        self._content_type = content_type
        self._buffer = bytearray()
        self._next_chunk = 0
        self._length = 0
        self._state = "open"

    @property
    def blob_id(self) -> str:
        return self._blob_id

    def _check_open(self) -> None:
        if self._state != "open":
            raise BlobWriteError(f"Blob {self._blob_id} is {self._state}")

    async def _flush(self, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._store.put_chunk, self._blob_id, self._next_chunk, data)
        except StorageError as exc:
            raise BlobWriteError(f"Writing chunk {self._next_chunk} of blob {self._blob_id} failed: {exc}") from exc
        self._next_chunk += 1

    async def write(self, data: bytes) -> None:
        self._check_open()
        self._buffer.extend(data)
        self._length += len(data)
        size = self._store.chunk_size
        while len(self._buffer) >= size:
            chunk = bytes(self._buffer[:size])
            del self._buffer[:size]
            await self._flush(chunk)

    async def close(self) -> BlobMeta:
        self._check_open()
        if self._buffer:
            await self._flush(bytes(self._buffer))
            self._buffer.clear()
        meta = BlobMeta(
            id=self._blob_id,
            bucket=self._store.bucket,
            filename=self._filename,
            content_type=self._content_type,
            length=self._length,
            chunk_size=self._store.chunk_size,
            created_at=utcnow(),
        )
        try:
            await asyncio.to_thread(self._store.put_meta, meta)
        except StorageError as exc:
            raise BlobWriteError(f"Finalizing blob {self._blob_id} failed: {exc}") from exc
        self._state = "closed"
        logger.info("Stored blob %s (%s, %d bytes) in bucket %s", meta.id, meta.filename, meta.length, meta.bucket)
        return meta

    async def abort(self) -> None:
        if self._state == "aborted":
            return
        self._state = "aborted"
        self._buffer.clear()
        await asyncio.to_thread(self._store.purge, self._blob_id)


class SQLiteBlobStore:
    def __init__(self, namespace: SQLiteNamespace, bucket: str) -> None:
        self._namespace = namespace
        self._bucket = bucket
        self._files = f"{bucket}_files"
        self._chunks = f"{bucket}_chunks"

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def chunk_size(self) -> int:
        return self._namespace.chunk_size

    @staticmethod
    def _meta(row: sqlite3.Row) -> BlobMeta:
        return BlobMeta(
            id=row["id"],
            bucket=row["bucket"],
            filename=row["filename"],
            content_type=row["content_type"],
            length=row["length"],
            chunk_size=row["chunk_size"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _select(self, where: str) -> str:
        return (
            f"SELECT id, ? AS bucket, filename, content_type, length, chunk_size, created_at "
            f"FROM {self._files} WHERE {where}"
        )

    def put_chunk(self, blob_id: str, n: int, data: bytes) -> None:
        with self._namespace.write_lock, self._namespace.connect() as conn:
            conn.execute(f"INSERT INTO {self._chunks}(files_id, n, data) VALUES (?, ?, ?)", (blob_id, n, data))

    def put_meta(self, meta: BlobMeta) -> None:
        with self._namespace.write_lock, self._namespace.connect() as conn:
            conn.execute(
                f"""
                INSERT INTO {self._files}(id, filename, content_type, length, chunk_size, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (meta.id, meta.filename, meta.content_type, meta.length, meta.chunk_size, meta.created_at.isoformat()),
            )

    def purge(self, blob_id: str) -> int:
        with self._namespace.write_lock, self._namespace.connect() as conn:
            conn.execute(f"DELETE FROM {self._chunks} WHERE files_id = ?", (blob_id,))
            return conn.execute(f"DELETE FROM {self._files} WHERE id = ?", (blob_id,)).rowcount

    def _stat(self, blob_id: str) -> BlobMeta | None:
        with self._namespace.connect() as conn:
            row = conn.execute(self._select("id = ?"), (self._bucket, blob_id)).fetchone()
        return self._meta(row) if row else None

    def _find(self, filename: str) -> list[BlobMeta]:
        with self._namespace.connect() as conn:
            rows = conn.execute(
                self._select("filename = ?") + " ORDER BY created_at DESC, rowid DESC",
                (self._bucket, filename),
            ).fetchall()
        return [self._meta(row) for row in rows]

    def _read_chunk(self, blob_id: str, n: int) -> bytes | None:
        with self._namespace.connect() as conn:
            row = conn.execute(
                f"SELECT data FROM {self._chunks} WHERE files_id = ? AND n = ?", (blob_id, n)
            ).fetchone()
        return bytes(row["data"]) if row else None

    def _list_ids(self) -> list[str]:
        with self._namespace.connect() as conn:
            rows = conn.execute(f"SELECT id FROM {self._files} ORDER BY created_at").fetchall()
        return [row["id"] for row in rows]

    def open_write_stream(self, filename: str, content_type: str) -> SQLiteBlobWriter:
        return SQLiteBlobWriter(self, filename, content_type)

    async def open_read_stream(self, blob_id: str) -> AsyncIterator[bytes]:
        meta = await self.stat(blob_id)
        if meta is None:
            raise BlobNotFoundError(blob_id, self._bucket)
        return self._iter_chunks(meta)

    async def _iter_chunks(self, meta: BlobMeta) -> AsyncIterator[bytes]:
        n = 0
        while True:
            chunk = await asyncio.to_thread(self._read_chunk, meta.id, n)
            if chunk is None:
                return
            yield chunk
            n += 1

    async def stat(self, blob_id: str) -> BlobMeta | None:
        return await asyncio.to_thread(self._stat, blob_id)

    async def stat_by_filename(self, filename: str) -> BlobMeta | None:
        matches = await self.find_by_filename(filename)
        return matches[0] if matches else None

    async def find_by_filename(self, filename: str) -> list[BlobMeta]:
        return await asyncio.to_thread(self._find, filename)

    async def delete(self, blob_id: str) -> None:
        removed = await asyncio.to_thread(self.purge, blob_id)
        if not removed:
            raise BlobNotFoundError(blob_id, self._bucket)
        logger.info("Deleted blob %s from bucket %s", blob_id, self._bucket)

    async def list_ids(self) -> list[str]:
        return await asyncio.to_thread(self._list_ids)

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest
from cms_core.errors import BlobNotFoundError, BlobWriteError, RecordNotFoundError
from cms_core.models import BlobMeta, Record, utcnow
from cms_core.services import new_blob_id

BOUNDARY = "test-boundary-7MA4YWxkTrZu0gW"


class MemoryWriter:
    def __init__(self, store: MemoryBlobStore, filename: str, content_type: str) -> None:
        self._store = store
        self._blob_id = new_blob_id()
        self._filename = filename
        self._content_type = content_type
        self._data = bytearray()
        self.aborted = False

    @property
    def blob_id(self) -> str:
        return self._blob_id

    async def write(self, data: bytes) -> None:
        if self._store.fail_on is not None and self._store.fail_on in self._filename:
            raise BlobWriteError(f"disk full while writing {self._filename}")
        self._store.writes_in_flight += 1
        await asyncio.sleep(0)
        self._store.writes_in_flight -= 1
        self._data.extend(data)

    async def close(self) -> BlobMeta:
        if self._store.slow_close is not None and self._store.slow_close in self._filename:
            await asyncio.sleep(0.05)
        meta = BlobMeta(
            id=self._blob_id,
            bucket=self._store.bucket,
            filename=self._filename,
            content_type=self._content_type,
            length=len(self._data),
            chunk_size=self._store.chunk_size,
            created_at=utcnow(),
        )
        self._store.blobs[self._blob_id] = (meta, bytes(self._data))
        return meta

    async def abort(self) -> None:
        self.aborted = True
        self._store.aborted.append(self._blob_id)


class MemoryBlobStore:
    def __init__(self, bucket: str = "events", chunk_size: int = 4) -> None:
        self._bucket = bucket
        self.chunk_size = chunk_size
        self.blobs: dict[str, tuple[BlobMeta, bytes]] = {}
        self.deleted: list[str] = []
        self.aborted: list[str] = []
        self.fail_on: str | None = None
        self.slow_close: str | None = None
        self.writes_in_flight = 0

    @property
    def bucket(self) -> str:
        return self._bucket

    def add(self, filename: str = "seed.bin", data: bytes = b"seed", blob_id: str | None = None) -> str:
        blob_id = blob_id or new_blob_id()
        meta = BlobMeta(
            id=blob_id,
            bucket=self._bucket,
            filename=filename,
            content_type="application/octet-stream",
            length=len(data),
            chunk_size=self.chunk_size,
            created_at=utcnow(),
        )
        self.blobs[blob_id] = (meta, data)
        return blob_id

    def open_write_stream(self, filename: str, content_type: str) -> MemoryWriter:
        return MemoryWriter(self, filename, content_type)

    async def open_read_stream(self, blob_id: str) -> AsyncIterator[bytes]:
        if blob_id not in self.blobs:
            raise BlobNotFoundError(blob_id, self._bucket)
        data = self.blobs[blob_id][1]

        async def _chunks() -> AsyncIterator[bytes]:
            for start in range(0, len(data), self.chunk_size):
                yield data[start : start + self.chunk_size]

        return _chunks()

    async def stat(self, blob_id: str) -> BlobMeta | None:
        entry = self.blobs.get(blob_id)
        return entry[0] if entry else None

    async def stat_by_filename(self, filename: str) -> BlobMeta | None:
        matches = await self.find_by_filename(filename)
        return matches[0] if matches else None

    async def find_by_filename(self, filename: str) -> list[BlobMeta]:
        return [meta for meta, _ in reversed(list(self.blobs.values())) if meta.filename == filename]

    async def delete(self, blob_id: str) -> None:
        self.deleted.append(blob_id)
        if self.blobs.pop(blob_id, None) is None:
            raise BlobNotFoundError(blob_id, self._bucket)

    async def list_ids(self) -> list[str]:
        return list(self.blobs)


class MemoryRecordStore:
    def __init__(self) -> None:
        self.records: dict[str, Record] = {}
        self.fail_writes = False

    async def insert(self, record: Record) -> Record:
        if self.fail_writes:
            raise RuntimeError("record store unavailable")
        self.records[record.id] = record
        return record

    async def get(self, record_id: str) -> Record | None:
        return self.records.get(record_id)

    async def list(self, *, sort_by: str = "created_at", descending: bool = True, limit: int | None = None):
        ordered = sorted(self.records.values(), key=lambda record: getattr(record, sort_by), reverse=descending)
        return ordered[:limit] if limit is not None else ordered

    async def replace(self, record: Record) -> Record:
        if self.fail_writes:
            raise RuntimeError("record store unavailable")
        if record.id not in self.records:
            raise RecordNotFoundError(record.id)
        self.records[record.id] = record
        return record

    async def delete(self, record_id: str) -> bool:
        return self.records.pop(record_id, None) is not None

    async def count(self) -> int:
        return len(self.records)

    async def find_referencing(self, blob_id: str) -> list[Record]:
        return [record for record in self.records.values() if blob_id in record.referenced_blob_ids()]


def encode_multipart(
    fields: dict[str, str] | None = None,
    files: list[tuple[str, str, bytes, str]] | None = None,
) -> tuple[str, bytes]:
    """Build a multipart/form-data body from fields and ``(field, filename, data, type)`` files."""
    lines: list[bytes] = []
    for name, value in (fields or {}).items():
        lines.append(f"--{BOUNDARY}\r\n".encode())
        lines.append(f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode())
        lines.append(value.encode() + b"\r\n")
    for name, filename, data, content_type in files or []:
        lines.append(f"--{BOUNDARY}\r\n".encode())
        lines.append(f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'.encode())
        lines.append(f"Content-Type: {content_type}\r\n\r\n".encode())
        lines.append(data + b"\r\n")
    lines.append(f"--{BOUNDARY}--\r\n".encode())
    return f"multipart/form-data; boundary={BOUNDARY}", b"".join(lines)


async def stream_bytes(body: bytes, size: int = 7) -> AsyncIterator[bytes]:
    for start in range(0, len(body), size):
        yield body[start : start + size]
        await asyncio.sleep(0)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def record_store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def multipart() -> Callable[..., tuple[str, bytes]]:
    return encode_multipart


@pytest.fixture
def chunked() -> Callable[..., AsyncIterator[bytes]]:
    return stream_bytes

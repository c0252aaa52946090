"""Streaming multipart ingestion.

The request body is fed chunk by chunk to ``python-multipart``. Field parts are
buffered; every file part gets its own bounded queue and writer task, so file
bytes flow into the blob store while later parts are still being parsed. The
writer tasks are the completion futures of the upload and are joined only once
the parser has seen the closing boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from typing import Any

from python_multipart import MultipartParser
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header

from cms_core.errors import BlobWriteError, MalformedUploadError, UploadError
from cms_core.models import DEFAULT_CONTENT_TYPE, BlobMeta, IngestOptions, UploadSession
from cms_core.ports import BlobStore, BlobWriter

logger = logging.getLogger(__name__)


def original_basename(filename: str) -> str:
    return filename.replace("\\", "/").rsplit("/", 1)[-1]


def _decode(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def _boundary(content_type: str | None) -> bytes:
    if not content_type:
        raise MalformedUploadError("Missing Content-Type header")
    media_type, params = parse_options_header(content_type)
    if media_type != b"multipart/form-data":
        raise MalformedUploadError(f"Expected multipart/form-data, got {_decode(media_type) or 'nothing'}")
    boundary = params.get(b"boundary")
    if not boundary:
        raise MalformedUploadError("Multipart boundary is missing")
    return boundary


async def _abort(writer: BlobWriter) -> None:
    try:
        await writer.abort()
    except Exception:  # noqa: BLE001
        logger.exception("Aborting blob %s failed", writer.blob_id)


async def _pump(queue: asyncio.Queue[bytes | None], writer: BlobWriter) -> BlobMeta:
    ended = False
    try:
        while True:
            chunk = await queue.get()
            if chunk is None:
                ended = True
                break
            await writer.write(chunk)
        return await writer.close()
    except asyncio.CancelledError:
        await _abort(writer)
        raise
    except Exception as exc:
        await _abort(writer)
        # Keep consuming so the parser never blocks on this part's queue.
        while not ended:
            ended = await queue.get() is None
        if isinstance(exc, BlobWriteError):
            raise
        raise BlobWriteError(f"Writing blob {writer.blob_id} failed: {exc}") from exc


@dataclass
class _FilePart:
    field: str
    queue: asyncio.Queue[bytes | None]
    task: asyncio.Task[BlobMeta]


class _Collector:
    """Records python-multipart callbacks as events for the async side to replay."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self.finished = False
        self._headers: dict[bytes, bytes] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()

    def callbacks(self) -> dict[str, Callable[..., None]]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_end": self.on_end,
        }

    def drain(self) -> list[tuple[str, Any]]:
        events, self.events = self.events, []
        return events

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        self.events.append(("headers", self._headers))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("data", bytes(data[start:end])))

    def on_part_end(self) -> None:
        self.events.append(("end", None))

    def on_end(self) -> None:
        self.finished = True


class _Ingestion:
    def __init__(self, blob_store: BlobStore, options: IngestOptions, clock: Callable[[], float]) -> None:
        self._blobs = blob_store
        self._options = options
        self._clock = clock
        self._fields: dict[str, str] = {}
        self._parts: list[_FilePart] = []
        self._name = ""
        self._state: bytearray | _FilePart | None = None
        self._stored: set[str] = set()

    async def handle(self, events: list[tuple[str, Any]]) -> None:
        for kind, payload in events:
            if kind == "headers":
                self._begin(payload)
            elif kind == "data":
                await self._feed(payload)
            else:
                await self._end()

    def _begin(self, headers: dict[bytes, bytes]) -> None:
        _, params = parse_options_header(headers.get(b"content-disposition", b""))
        name = params.get(b"name")
        if name is None:
            raise MalformedUploadError("Multipart part has no field name")
        self._name = _decode(name)

        filename = params.get(b"filename")
        if filename is None:
            self._state = bytearray()
            return
        original = _decode(filename)
        if not original:
            # An unselected file input; its bytes are dropped.
            self._state = None
            return

        content_type = _decode(headers.get(b"content-type", b"")).strip() or DEFAULT_CONTENT_TYPE
        writer = self._blobs.open_write_stream(self._stored_name(original), content_type)
        queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=self._options.queue_depth)
        part = _FilePart(field=self._name, queue=queue, task=asyncio.create_task(_pump(queue, writer)))
        self._parts.append(part)
        self._state = part

    def _stored_name(self, original: str) -> str:
        """Name a file ``<ms>-<basename>``, unique within this upload."""
        basename = original_basename(original)
        stamp = int(self._clock() * 1000)
        while f"{stamp}-{basename}" in self._stored:
            stamp += 1
        name = f"{stamp}-{basename}"
        self._stored.add(name)
        return name

    async def _feed(self, data: bytes) -> None:
        state = self._state
        if isinstance(state, _FilePart):
            await state.queue.put(data)
        elif isinstance(state, bytearray):
            state.extend(data)
            if len(state) > self._options.max_field_size:
                raise MalformedUploadError(
                    f"Field {self._name} exceeds {self._options.max_field_size} bytes"
                )

    async def _end(self) -> None:
        state = self._state
        if isinstance(state, _FilePart):
            await state.queue.put(None)
        elif isinstance(state, bytearray):
            self._fields[self._name] = _decode(bytes(state))
        self._state = None

    async def finish(self) -> UploadSession:
        results = await asyncio.gather(*(part.task for part in self._parts), return_exceptions=True)
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            raise UploadError(f"{len(failures)} of {len(results)} file uploads failed") from failures[0]

        session = UploadSession(fields=self._fields)
        for part, meta in zip(self._parts, results, strict=True):
            session.files.setdefault(part.field, []).append(meta.id)
            session.filenames[meta.id] = meta.filename
        return session

    async def cancel(self) -> list[str]:
        """Stop unfinished writers and return the IDs of blobs that did complete."""
        for part in self._parts:
            if not part.task.done():
                part.task.cancel()
        results = await asyncio.gather(*(part.task for part in self._parts), return_exceptions=True)
        return [result.id for result in results if isinstance(result, BlobMeta)]


async def ingest_multipart(
    *,
    content_type: str | None,
    body: AsyncIterable[bytes],
    blob_store: BlobStore,
    options: IngestOptions | None = None,
    clock: Callable[[], float] = time.time,
) -> UploadSession:
    boundary = _boundary(content_type)
    collector = _Collector()
    parser = MultipartParser(boundary, collector.callbacks())
    ingestion = _Ingestion(blob_store, options or IngestOptions(), clock)

    try:
        async for chunk in body:
            if not chunk:
                continue
            try:
                parser.write(chunk)
            except MultipartParseError as exc:
                raise MalformedUploadError(f"Malformed multipart body: {exc}") from exc
            await ingestion.handle(collector.drain())
        parser.finalize()
        await ingestion.handle(collector.drain())
        if not collector.finished:
            raise MalformedUploadError("Multipart body ended before the closing boundary")
        return await ingestion.finish()
    except asyncio.CancelledError:
        orphans = await ingestion.cancel()
        _log_orphans(blob_store, orphans, "cancelled")
        raise
    except UploadError as exc:
        orphans = await ingestion.cancel()
        exc.orphaned_blob_ids.extend(orphans)
        _log_orphans(blob_store, orphans, str(exc))
        raise
    except Exception as exc:
        orphans = await ingestion.cancel()
        _log_orphans(blob_store, orphans, str(exc))
        raise UploadError(f"Upload interrupted: {exc}", orphans) from exc


def _log_orphans(blob_store: BlobStore, orphans: list[str], reason: str) -> None:
    if orphans:
        logger.warning(
            "Upload to bucket %s failed (%s); %d completed blobs left orphaned: %s",
            blob_store.bucket,
            reason,
            len(orphans),
            ", ".join(orphans),
        )

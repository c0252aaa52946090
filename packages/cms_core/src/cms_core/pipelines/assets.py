from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from urllib.parse import quote

from cms_core.errors import BlobNotFoundError
from cms_core.models import DEFAULT_CONTENT_TYPE, BlobMeta
from cms_core.ports import BlobStore
from cms_core.services import normalize_blob_id


def _ascii_filename(filename: str) -> str:
    return "".join(char if 32 <= ord(char) < 127 and char not in '"\\' else "_" for char in filename)


def content_disposition(filename: str, disposition: str = "inline") -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"{disposition}; filename=\"{_ascii_filename(filename)}\"; filename*=utf-8''{quoted}"
    return f'{disposition}; filename="{filename}"'


@dataclass
class AssetStream:
    meta: BlobMeta
    chunks: AsyncIterator[bytes]

    @property
    def media_type(self) -> str:
        return self.meta.content_type or DEFAULT_CONTENT_TYPE

    def headers(self) -> dict[str, str]:
        return {
            "Content-Disposition": content_disposition(self.meta.filename),
            "Content-Length": str(self.meta.length),
        }


async def open_asset(*, blob_id: str, blob_store: BlobStore) -> AssetStream:
    blob_id = normalize_blob_id(blob_id)
    meta = await blob_store.stat(blob_id)
    if meta is None:
        raise BlobNotFoundError(blob_id, blob_store.bucket)
    chunks = await blob_store.open_read_stream(blob_id)
    return AssetStream(meta=meta, chunks=chunks)

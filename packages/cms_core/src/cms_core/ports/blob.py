from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from cms_core.models import BlobMeta


class BlobWriter(Protocol):
    @property
    def blob_id(self) -> str: ...

    async def write(self, data: bytes) -> None: ...

    async def close(self) -> BlobMeta: ...

    async def abort(self) -> None: ...


class BlobStore(Protocol):
    @property
    def bucket(self) -> str: ...

    def open_write_stream(self, filename: str, content_type: str) -> BlobWriter: ...

    async def open_read_stream(self, blob_id: str) -> AsyncIterator[bytes]: ...

    async def stat(self, blob_id: str) -> BlobMeta | None: ...

    async def stat_by_filename(self, filename: str) -> BlobMeta | None: ...

    async def find_by_filename(self, filename: str) -> list[BlobMeta]: ...

    async def delete(self, blob_id: str) -> None: ...

    async def list_ids(self) -> list[str]: ...

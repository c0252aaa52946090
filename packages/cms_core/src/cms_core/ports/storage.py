from __future__ import annotations

from typing import Protocol

from cms_core.models import RecordType
from cms_core.ports.blob import BlobStore
from cms_core.ports.record import RecordStore


class Namespace(Protocol):
    @property
    def tenant_key(self) -> str: ...

    def record_store(self, record_type: RecordType) -> RecordStore: ...

    def blob_store(self, bucket: str) -> BlobStore: ...


class StorageClient(Protocol):
    async def open_namespace(self, tenant_key: str) -> Namespace: ...

    async def close(self) -> None: ...

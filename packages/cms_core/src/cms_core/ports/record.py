from __future__ import annotations

from typing import Protocol

from cms_core.models import Record


class RecordStore(Protocol):
    async def insert(self, record: Record) -> Record: ...

    async def get(self, record_id: str) -> Record | None: ...

    async def list(
        self,
        *,
        sort_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[Record]: ...

    async def replace(self, record: Record) -> Record: ...

    async def delete(self, record_id: str) -> bool: ...

    async def count(self) -> int: ...

    async def find_referencing(self, blob_id: str) -> list[Record]: ...

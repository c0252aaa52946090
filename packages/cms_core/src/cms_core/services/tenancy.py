from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from cms_core.errors import TenantError
from cms_core.models import RecordType
from cms_core.ports import BlobStore, Namespace, RecordStore, StorageClient

logger = logging.getLogger(__name__)

_TENANT_KEY = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")


def normalize_tenant_key(raw: str | None) -> str:
    key = (raw or "").strip().lower()
    if not key:
        raise TenantError("Tenant key is required")
    if not _TENANT_KEY.match(key):
        raise TenantError(f"Invalid tenant key: {raw!r}")
    return key


@dataclass(frozen=True)
class TenantBinding:
    tenant_key: str
    record_type: RecordType
    namespace: Namespace
    records: RecordStore
    blobs: BlobStore


class TenantResolver:
    """Maps tenant keys to bound record and blob stores.

    Bindings are created lazily, shared by concurrent first callers and kept for
    the lifetime of the process. Entries are only ever added, so lookups need no
    lock; creation is single-flight per ``(tenant, record_type)``.
    """

    def __init__(self, storage: StorageClient, known_tenants: Iterable[str] | None = None) -> None:
        self._storage = storage
        known = {normalize_tenant_key(tenant) for tenant in known_tenants or ()}
        self._known = known or None
        self._bindings: dict[tuple[str, RecordType], TenantBinding] = {}
        self._pending: dict[tuple[str, RecordType], asyncio.Future[TenantBinding]] = {}

    def check(self, tenant_key: str | None) -> str:
        key = normalize_tenant_key(tenant_key)
        if self._known is not None and key not in self._known:
            raise TenantError(f"Unknown tenant: {key}")
        return key

    async def namespace(self, tenant_key: str | None) -> Namespace:
        return await self._storage.open_namespace(self.check(tenant_key))

    async def resolve(self, tenant_key: str | None, record_type: RecordType) -> TenantBinding:
        key = self.check(tenant_key)
        cache_key = (key, record_type)

        binding = self._bindings.get(cache_key)
        if binding is not None:
            return binding

        pending = self._pending.get(cache_key)
        if pending is None:
            pending = asyncio.ensure_future(self._bind(key, record_type))
            self._pending[cache_key] = pending
        try:
            return await asyncio.shield(pending)
        finally:
            if pending.done():
                self._pending.pop(cache_key, None)

    def bindings(self) -> list[TenantBinding]:
        return list(self._bindings.values())

    async def _bind(self, key: str, record_type: RecordType) -> TenantBinding:
        namespace = await self._storage.open_namespace(key)
        binding = TenantBinding(
            tenant_key=key,
            record_type=record_type,
            namespace=namespace,
            records=namespace.record_store(record_type),
            blobs=namespace.blob_store(record_type.bucket),
        )
        self._bindings[(key, record_type)] = binding
        logger.info("Bound %s records and bucket for tenant %s", record_type.value, key)
        return binding

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TypeVar

from cms_core.errors import BlobNotFoundError, CMSCoreError, InvalidReferenceError, RecordNotFoundError
from cms_core.models import Record
from cms_core.ports import BlobStore, RecordStore

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)


@dataclass
class ReleaseReport:
    deleted: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def replace_singleton(current: str | None, incoming: str | None) -> str | None:
    return incoming or current


def reorder(
    current: list[str],
    explicit_order: list[str] | None = None,
    appended: Iterable[str] = (),
) -> list[str]:
    """Apply a caller-supplied ordering and append new IDs.

    The explicit order may only name IDs already in ``current``; IDs it leaves
    out keep their relative order behind the named ones, so the multiset of
    existing IDs never changes.
    """
    ordered = list(current)
    if explicit_order is not None:
        remaining = list(current)
        seen: set[str] = set()
        for blob_id in explicit_order:
            if blob_id in seen:
                raise InvalidReferenceError(f"Blob {blob_id} appears twice in the requested order")
            if blob_id not in remaining:
                raise InvalidReferenceError(f"Blob {blob_id} is not referenced by this record")
            seen.add(blob_id)
            remaining.remove(blob_id)
        ordered = list(explicit_order) + remaining
    ordered.extend(appended)
    return ordered


class ReferenceManager:
    """Keeps one bucket's blobs in step with the records that point at them."""

    def __init__(self, blob_store: BlobStore) -> None:
        self._blobs = blob_store

    async def release(self, blob_ids: Iterable[str]) -> ReleaseReport:
        report = ReleaseReport()
        for blob_id in dict.fromkeys(blob_ids):
            try:
                await self._blobs.delete(blob_id)
            except BlobNotFoundError:
                logger.warning("Blob %s already gone from bucket %s", blob_id, self._blobs.bucket)
                report.missing.append(blob_id)
            except CMSCoreError as exc:
                logger.error("Could not delete blob %s from bucket %s: %s", blob_id, self._blobs.bucket, exc)
                report.failed.append(blob_id)
            else:
                report.deleted.append(blob_id)
        return report

    async def persist(self, previous: Record | None, updated: R, save: Callable[[R], Awaitable[R]]) -> R:
        # Orphans are deleted only once the save has succeeded.
        saved = await save(updated)
        if previous is not None:
            kept = set(saved.referenced_blob_ids())
            orphans = [blob_id for blob_id in previous.referenced_blob_ids() if blob_id not in kept]
            if orphans:
                await self.release(orphans)
        return saved

    async def cascade_delete(self, record: Record, delete: Callable[[str], Awaitable[bool]]) -> ReleaseReport:
        blob_ids = record.referenced_blob_ids()
        if not await delete(record.id):
            raise RecordNotFoundError(f"Record not found: {record.id}")
        report = await self.release(blob_ids)
        logger.info(
            "Deleted record %s from bucket %s: %d blobs removed, %d missing, %d failed",
            record.id,
            self._blobs.bucket,
            len(report.deleted),
            len(report.missing),
            len(report.failed),
        )
        return report

    async def detach(self, blob_id: str, records: RecordStore) -> int:
        holders = await records.find_referencing(blob_id)
        for holder in holders:
            updated = holder.detach_blob(blob_id)
            if updated is not None:
                await records.replace(updated)
        try:
            await self._blobs.delete(blob_id)
        except BlobNotFoundError:
            if not holders:
                raise
            logger.warning("Detached dangling reference %s from %d records", blob_id, len(holders))
        return len(holders)

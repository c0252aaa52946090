from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Awaitable, Callable

from cms_core.errors import RecordNotFoundError
from cms_core.forms import RecordForm
from cms_core.models import IngestOptions, Record, RecordType, UploadSession
from cms_core.pipelines.ingest import ingest_multipart
from cms_core.ports import BlobStore, RecordStore
from cms_core.services import ReferenceManager, ReleaseReport, normalize_blob_id

logger = logging.getLogger(__name__)

LIST_ORDER: dict[RecordType, tuple[str, bool]] = {
    RecordType.ABOUT: ("created_at", True),
    RecordType.EVENTS: ("start_date", True),
    RecordType.LABS: ("created_at", True),
    RecordType.PROGRAMS: ("created_at", True),
    RecordType.BANNERS: ("order", False),
}


async def _get_or_raise(records: RecordStore, record_type: RecordType, record_id: str) -> Record:
    record = await records.get(record_id)
    if record is None:
        raise RecordNotFoundError(f"{record_type.value} record not found: {record_id}")
    return record


def _guarded(
    save: Callable[[Record], Awaitable[Record]],
    references: ReferenceManager,
    session: UploadSession,
) -> Callable[[Record], Awaitable[Record]]:
    async def _save(record: Record) -> Record:
        try:
            return await save(record)
        except Exception:
            await references.release(session.blob_ids())
            raise

    return _save


async def _release_unused(references: ReferenceManager, session: UploadSession, saved: Record) -> None:
    kept = set(saved.referenced_blob_ids())
    unused = [blob_id for blob_id in session.blob_ids() if blob_id not in kept]
    if unused:
        logger.info("Releasing %d uploaded blobs the saved record does not reference", len(unused))
        await references.release(unused)


async def list_records(*, record_type: RecordType, records: RecordStore) -> list[Record]:
    sort_by, descending = LIST_ORDER[record_type]
    return await records.list(sort_by=sort_by, descending=descending)


async def latest_record(*, records: RecordStore) -> Record | None:
    newest = await records.list(sort_by="created_at", descending=True, limit=1)
    return newest[0] if newest else None


async def count_records(*, records: RecordStore) -> int:
    return await records.count()


async def create_record(
    *,
    form: RecordForm,
    content_type: str | None,
    body: AsyncIterable[bytes],
    blob_store: BlobStore,
    records: RecordStore,
    options: IngestOptions | None = None,
) -> Record:
    session = await ingest_multipart(
        content_type=content_type, body=body, blob_store=blob_store, options=options
    )
    references = ReferenceManager(blob_store)
    try:
        record = form.build(session)
    except Exception:
        await references.release(session.blob_ids())
        raise
    created = await _guarded(records.insert, references, session)(record)
    await _release_unused(references, session, created)
    logger.info("Created %s record %s", form.record_type.value, created.id)
    return created


async def update_record(
    *,
    record_id: str,
    form: RecordForm,
    content_type: str | None,
    body: AsyncIterable[bytes],
    blob_store: BlobStore,
    records: RecordStore,
    options: IngestOptions | None = None,
) -> Record:
    """Apply a partial multipart update and reconcile the record's blobs.

    The record is looked up before the body is read so that an unknown ID never
    leaves uploaded blobs behind. Blobs the record stops referencing are deleted
    only after the new version has been stored.
    """
    previous = await _get_or_raise(records, form.record_type, record_id)
    session = await ingest_multipart(
        content_type=content_type, body=body, blob_store=blob_store, options=options
    )
    references = ReferenceManager(blob_store)
    try:
        updated = form.apply(previous, session)
    except Exception:
        await references.release(session.blob_ids())
        raise
    saved = await references.persist(previous, updated, _guarded(records.replace, references, session))
    await _release_unused(references, session, saved)
    logger.info("Updated %s record %s", form.record_type.value, saved.id)
    return saved


async def delete_record(
    *,
    record_id: str,
    record_type: RecordType,
    blob_store: BlobStore,
    records: RecordStore,
) -> ReleaseReport:
    record = await _get_or_raise(records, record_type, record_id)
    return await ReferenceManager(blob_store).cascade_delete(record, records.delete)


async def remove_blob(*, blob_id: str, blob_store: BlobStore, records: RecordStore) -> int:
    """Delete one blob and strip it from every record of the bucket's type."""
    blob_id = normalize_blob_id(blob_id)
    holders = await ReferenceManager(blob_store).detach(blob_id, records)
    logger.info("Removed blob %s from bucket %s (%d records updated)", blob_id, blob_store.bucket, holders)
    return holders

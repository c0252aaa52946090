from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Iterable

from cms_core.errors import RecordNotFoundError
from cms_core.models import Banner, BlobMeta, IngestOptions
from cms_core.pipelines.ingest import ingest_multipart
from cms_core.ports import BlobStore, RecordStore
from cms_core.services import ReferenceManager, ReleaseReport

logger = logging.getLogger(__name__)


async def _stat(blob_store: BlobStore, banner: Banner) -> BlobMeta | None:
    if banner.image_id:
        return await blob_store.stat(banner.image_id)
    return await blob_store.stat_by_filename(banner.filename)


async def list_banners(*, blob_store: BlobStore, records: RecordStore) -> list[tuple[Banner, BlobMeta | None]]:
    banners = await records.list(sort_by="order", descending=False)
    return [(banner, await _stat(blob_store, banner)) for banner in banners]


async def upload_banners(
    *,
    content_type: str | None,
    body: AsyncIterable[bytes],
    blob_store: BlobStore,
    records: RecordStore,
    options: IngestOptions | None = None,
) -> list[Banner]:
    session = await ingest_multipart(
        content_type=content_type, body=body, blob_store=blob_store, options=options
    )
    highest = await records.list(sort_by="order", descending=True, limit=1)
    next_order = highest[0].order + 1 if highest else 1

    created: list[Banner] = []
    try:
        for blob_id in session.blob_ids():
            banner = Banner(filename=session.filenames[blob_id], order=next_order, image_id=blob_id)
            created.append(await records.insert(banner))
            next_order += 1
    except Exception:
        stored = {banner.image_id for banner in created}
        await ReferenceManager(blob_store).release(
            blob_id for blob_id in session.blob_ids() if blob_id not in stored
        )
        raise
    logger.info("Uploaded %d banners", len(created))
    return created


async def reorder_banners(*, orders: Iterable[tuple[str, int]], records: RecordStore) -> list[Banner]:
    """Set explicit positions; every ID is checked before anything is written."""
    changes: list[tuple[Banner, int]] = []
    for banner_id, order in orders:
        banner = await records.get(banner_id)
        if banner is None:
            raise RecordNotFoundError(f"banners record not found: {banner_id}")
        changes.append((banner, order))

    updated: list[Banner] = []
    for banner, order in changes:
        if banner.order == order:
            updated.append(banner)
            continue
        updated.append(await records.replace(banner.model_copy(update={"order": order})))
    return updated


async def delete_banner(*, banner_id: str, blob_store: BlobStore, records: RecordStore) -> ReleaseReport:
    banner = await records.get(banner_id)
    if banner is None:
        raise RecordNotFoundError(f"banners record not found: {banner_id}")
    references = ReferenceManager(blob_store)
    if banner.image_id:
        return await references.cascade_delete(banner, records.delete)

    if not await records.delete(banner.id):
        raise RecordNotFoundError(f"banners record not found: {banner_id}")
    remaining = await records.list(sort_by="order", descending=False)
    if any(other.filename == banner.filename and not other.image_id for other in remaining):
        logger.warning("Keeping file %s, still named by another banner", banner.filename)
        return ReleaseReport()
    claimed = {other.image_id for other in remaining if other.image_id}
    matches = [meta.id for meta in await blob_store.find_by_filename(banner.filename) if meta.id not in claimed]
    if not matches:
        logger.warning("Banner %s had no stored file named %s", banner.id, banner.filename)
    return await references.release(matches)

from cms_core.pipelines.assets import AssetStream, content_disposition, open_asset
from cms_core.pipelines.banners import delete_banner, list_banners, reorder_banners, upload_banners
from cms_core.pipelines.ingest import ingest_multipart
from cms_core.pipelines.records import (
    count_records,
    create_record,
    delete_record,
    latest_record,
    list_records,
    remove_blob,
    update_record,
)

__all__ = [
    "AssetStream",
    "content_disposition",
    "count_records",
    "create_record",
    "delete_banner",
    "delete_record",
    "ingest_multipart",
    "latest_record",
    "list_banners",
    "list_records",
    "open_asset",
    "remove_blob",
    "reorder_banners",
    "update_record",
]

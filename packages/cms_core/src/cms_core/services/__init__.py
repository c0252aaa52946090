from cms_core.services.ids import is_valid_blob_id, new_blob_id, normalize_blob_id, split_ids
from cms_core.services.references import ReferenceManager, ReleaseReport, reorder, replace_singleton
from cms_core.services.tenancy import TenantBinding, TenantResolver, normalize_tenant_key

__all__ = [
    "ReferenceManager",
    "ReleaseReport",
    "TenantBinding",
    "TenantResolver",
    "is_valid_blob_id",
    "new_blob_id",
    "normalize_blob_id",
    "normalize_tenant_key",
    "reorder",
    "replace_singleton",
    "split_ids",
]

class CMSCoreError(Exception):
    """Base class for domain exceptions."""


class TenantError(CMSCoreError):
    pass


class StorageError(CMSCoreError):
    pass


class BlobNotFoundError(CMSCoreError):
    def __init__(self, blob_id: str, bucket: str | None = None) -> None:
        self.blob_id = blob_id
        self.bucket = bucket
        where = f" in bucket {bucket}" if bucket else ""
        super().__init__(f"Blob not found{where}: {blob_id}")


class BlobWriteError(StorageError):
    pass


class InvalidBlobIdError(CMSCoreError):
    pass


class UploadError(CMSCoreError):
    """Ingestion failed; blobs that did complete are left behind as orphans."""

    def __init__(self, message: str, orphaned_blob_ids: list[str] | None = None) -> None:
        self.orphaned_blob_ids = list(orphaned_blob_ids or [])
        super().__init__(message)


class MalformedUploadError(UploadError):
    pass


class RecordNotFoundError(CMSCoreError):
    pass


class RecordValidationError(CMSCoreError):
    pass


class InvalidReferenceError(CMSCoreError):
    pass

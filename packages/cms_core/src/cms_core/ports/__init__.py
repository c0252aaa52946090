from cms_core.ports.blob import BlobStore, BlobWriter
from cms_core.ports.record import RecordStore
from cms_core.ports.storage import Namespace, StorageClient

__all__ = [
    "BlobStore",
    "BlobWriter",
    "Namespace",
    "RecordStore",
    "StorageClient",
]

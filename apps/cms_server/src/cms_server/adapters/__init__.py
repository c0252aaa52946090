from cms_server.adapters.sqlite_blob_store import SQLiteBlobStore, SQLiteBlobWriter
from cms_server.adapters.sqlite_records import SQLiteRecordStore
from cms_server.adapters.sqlite_storage import SQLiteNamespace, SQLiteStorage

__all__ = [
    "SQLiteBlobStore",
    "SQLiteBlobWriter",
    "SQLiteNamespace",
    "SQLiteRecordStore",
    "SQLiteStorage",
]

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from cms_core.errors import StorageError
from cms_core.models import RecordType
from cms_core.services import normalize_tenant_key

from cms_server.adapters.sqlite_blob_store import SQLiteBlobStore
from cms_server.adapters.sqlite_records import SQLiteRecordStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 255 * 1024
BUCKETS = tuple(record_type.bucket for record_type in RecordType)


class SQLiteNamespace:
    """One tenant's database file: a record table plus a chunked blob bucket per record type."""

    def __init__(self, path: Path, tenant_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._path = path
        self._tenant_key = tenant_key
        self.chunk_size = chunk_size
        self.write_lock = threading.Lock()
        self._closed = False
        self._records: dict[RecordType, SQLiteRecordStore] = {}
        self._blobs: dict[str, SQLiteBlobStore] = {}
        self._init_schema()

    @property
    def tenant_key(self) -> str:
        return self._tenant_key

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StorageError(f"Namespace {self._tenant_key} is closed")
        try:
            conn = sqlite3.connect(self._path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"SQLite error in namespace {self._tenant_key}: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                record_type TEXT NOT NULL,
                document TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_records_type ON records(record_type);
            """
        ]
        for bucket in BUCKETS:
            statements.append(
                f"""
                CREATE TABLE IF NOT EXISTS {bucket}_files (
                    id TEXT PRIMARY KEY,
                    filename TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    length INTEGER NOT NULL,
                    chunk_size INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS {bucket}_chunks (
                    files_id TEXT NOT NULL,
                    n INTEGER NOT NULL,
                    data BLOB NOT NULL,
                    PRIMARY KEY (files_id, n)
                );
                CREATE INDEX IF NOT EXISTS idx_{bucket}_files_filename ON {bucket}_files(filename);
                """
            )
        with self.write_lock, self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript("\n".join(statements))

    def record_store(self, record_type: RecordType) -> SQLiteRecordStore:
        store = self._records.get(record_type)
        if store is None:
            store = self._records.setdefault(record_type, SQLiteRecordStore(self, record_type))
        return store

    def blob_store(self, bucket: str) -> SQLiteBlobStore:
        if bucket not in BUCKETS:
            raise StorageError(f"Unknown bucket: {bucket}")
        store = self._blobs.get(bucket)
        if store is None:
            store = self._blobs.setdefault(bucket, SQLiteBlobStore(self, bucket))
        return store

    def close(self) -> None:
        self._closed = True


class SQLiteStorage:
    """Opens one SQLite file per tenant under ``root_dir``; namespaces are memoized."""

    def __init__(self, root_dir: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._root_dir = Path(root_dir)
        self._root_dir.mkdir(parents=True, exist_ok=True)
        self._chunk_size = chunk_size
        self._namespaces: dict[str, SQLiteNamespace] = {}
        self._lock = threading.Lock()
        self._closed = False

    async def open_namespace(self, tenant_key: str) -> SQLiteNamespace:
        if self._closed:
            raise StorageError("Storage client is closed")
        namespace = self._namespaces.get(tenant_key)
        if namespace is not None:
            return namespace
        return await asyncio.to_thread(self._open, normalize_tenant_key(tenant_key))

    def _open(self, tenant_key: str) -> SQLiteNamespace:
        with self._lock:
            namespace = self._namespaces.get(tenant_key)
            if namespace is None:
                path = self._root_dir / f"{tenant_key}.sqlite3"
                namespace = SQLiteNamespace(path, tenant_key, self._chunk_size)
                self._namespaces[tenant_key] = namespace
                logger.info("Opened namespace for tenant %s at %s", tenant_key, path)
            return namespace

    async def close(self) -> None:
        with self._lock:
            self._closed = True
            for namespace in self._namespaces.values():
                namespace.close()
            self._namespaces.clear()

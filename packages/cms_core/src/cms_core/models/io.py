from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class BlobMeta(BaseModel):
    id: str
    bucket: str
    filename: str
    content_type: str = DEFAULT_CONTENT_TYPE
    length: int
    chunk_size: int
    created_at: datetime


class IngestOptions(BaseModel):
    queue_depth: int = 8
    max_field_size: int = 1024 * 1024


class UploadSession(BaseModel):
    """Request-scoped result of parsing one multipart body."""

    fields: dict[str, str] = Field(default_factory=dict)
    files: dict[str, list[str]] = Field(default_factory=dict)
    filenames: dict[str, str] = Field(default_factory=dict)

    def field(self, name: str) -> str | None:
        value = self.fields.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def first_file(self, name: str) -> str | None:
        ids = self.files.get(name)
        return ids[0] if ids else None

    def file_list(self, name: str) -> list[str]:
        return list(self.files.get(name, []))

    def blob_ids(self) -> list[str]:
        return [blob_id for ids in self.files.values() for blob_id in ids]

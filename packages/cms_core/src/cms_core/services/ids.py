from __future__ import annotations

from uuid import UUID, uuid4

from cms_core.errors import InvalidBlobIdError


def new_blob_id() -> str:
    return str(uuid4())


def is_valid_blob_id(value: str | None) -> bool:
    if not value:
        return False
    try:
        parsed = UUID(value)
    except ValueError:
        return False
    return str(parsed) == value.lower()


def normalize_blob_id(value: str | None) -> str:
    if not is_valid_blob_id(value):
        raise InvalidBlobIdError(f"Invalid blob id: {value!r}")
    return value.lower()


def split_ids(value: str | None) -> list[str] | None:
    """Parse a comma-separated id list; None when the field was not sent."""
    if value is None:
        return None
    return [normalize_blob_id(part.strip()) for part in value.split(",") if part.strip()]

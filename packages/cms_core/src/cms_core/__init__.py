from cms_core.models import (
    About,
    Banner,
    BlobMeta,
    Event,
    Lab,
    Program,
    Record,
    RecordType,
    UploadSession,
)

__all__ = [
    "About",
    "Banner",
    "BlobMeta",
    "Event",
    "Lab",
    "Program",
    "Record",
    "RecordType",
    "UploadSession",
]

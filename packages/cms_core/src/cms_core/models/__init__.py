from cms_core.models.entities import (
    RECORD_MODELS,
    About,
    Banner,
    EquipmentItem,
    Event,
    Lab,
    Program,
    Record,
    RecordType,
    SchemeEntry,
    SeatMatrix,
    StudentCount,
    utcnow,
)
from cms_core.models.io import DEFAULT_CONTENT_TYPE, BlobMeta, IngestOptions, UploadSession

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "RECORD_MODELS",
    "About",
    "Banner",
    "BlobMeta",
    "EquipmentItem",
    "Event",
    "IngestOptions",
    "Lab",
    "Program",
    "Record",
    "RecordType",
    "SchemeEntry",
    "SeatMatrix",
    "StudentCount",
    "UploadSession",
    "utcnow",
]

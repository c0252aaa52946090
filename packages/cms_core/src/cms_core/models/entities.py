from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, ClassVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


class RecordType(str, Enum):
    ABOUT = "about"
    EVENTS = "events"
    LABS = "labs"
    BANNERS = "banners"
    PROGRAMS = "programs"

    @property
    def bucket(self) -> str:
        return self.value


class Record(BaseModel):
    """A structured document owning weak references to blobs.

    Subclasses name the fields that hold blob IDs: ``singleton_fields`` hold at
    most one ID, ``list_fields`` hold an ordered list whose order is the display
    order.
    """

    model_config = ConfigDict(populate_by_name=True)

    singleton_fields: ClassVar[tuple[str, ...]] = ()
    list_fields: ClassVar[tuple[str, ...]] = ()

    id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    def referenced_blob_ids(self) -> list[str]:
        ids: list[str] = []
        for name in self.singleton_fields:
            value = getattr(self, name)
            if value:
                ids.append(value)
        for name in self.list_fields:
            ids.extend(getattr(self, name))
        return ids

    def detach_blob(self, blob_id: str) -> Record | None:
        """Return a copy without any reference to ``blob_id``, or None if it had none."""
        changes: dict[str, Any] = {}
        for name in self.singleton_fields:
            if getattr(self, name) == blob_id:
                changes[name] = None
        for name in self.list_fields:
            current = getattr(self, name)
            if blob_id in current:
                changes[name] = [item for item in current if item != blob_id]
        if not changes:
            return None
        return self.model_copy(update={**changes, "updated_at": utcnow()})

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class About(Record):
    singleton_fields: ClassVar[tuple[str, ...]] = ("hod_image_id",)

    hod_name: str
    hod_message: str
    hod_image_id: str | None = Field(default=None, alias="hod_imageId")


class Event(Record):
    singleton_fields: ClassVar[tuple[str, ...]] = ("banner_id", "brochure_id")
    list_fields: ClassVar[tuple[str, ...]] = ("event_image_ids",)

    title: str
    status: str = "Live"
    category: str
    coordinators: list[str] = Field(default_factory=list)
    start_date: date = Field(alias="startdate")
    last_date: date | None = Field(default=None, alias="lastdate")
    venue: str
    organized_by: str | None = Field(default=None, alias="organizedBy")
    description: str
    banner_id: str | None = Field(default=None, alias="bannerId")
    brochure_id: str | None = Field(default=None, alias="brochureId")
    event_image_ids: list[str] = Field(default_factory=list, alias="eventImageIds")


class EquipmentItem(BaseModel):
    component: str
    specifications: list[str] = Field(default_factory=list)
    quantity: int = 0


class Lab(Record):
    list_fields: ClassVar[tuple[str, ...]] = ("lab_image_ids",)

    name: str
    coordinators: list[str] = Field(default_factory=list)
    technical_staff: list[str] = Field(default_factory=list)
    address: str
    specialization: str
    webpage_url: str = Field(default="", alias="webpageURL")
    description: str
    objectives: list[str] = Field(default_factory=list)
    capacity: int
    hardware_details: list[EquipmentItem] = Field(default_factory=list)
    software_details: list[EquipmentItem] = Field(default_factory=list)
    lab_image_ids: list[str] = Field(default_factory=list, alias="labImageIds")


class Banner(Record):
    """One slide of the homepage carousel.

    ``image_id`` is the owned blob. ``filename`` is kept for display and for
    banners saved before the ID was recorded, which are resolved by name.
    """

    singleton_fields: ClassVar[tuple[str, ...]] = ("image_id",)

    filename: str
    order: int = 0
    image_id: str | None = Field(default=None, alias="imageId")


class SchemeEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    blob_id: str = Field(alias="fileId")
    filename: str
    uploaded_at: datetime = Field(default_factory=utcnow, alias="uploadDate")


class StudentCount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    male: int = Field(alias="Male")
    female: int = Field(alias="Female")


class SeatMatrix(BaseModel):
    josaa: int
    csab: int
    dasa: int


class Program(Record):
    category: str
    title: str
    no_of_students: StudentCount
    no_of_seats: SeatMatrix
    scheme: list[SchemeEntry] = Field(default_factory=list)
    pso: str | None = Field(default=None, alias="PSO")
    peo: str | None = Field(default=None, alias="PEO")
    po: str | None = Field(default=None, alias="PO")

    def referenced_blob_ids(self) -> list[str]:
        return [entry.blob_id for entry in self.scheme]

    def detach_blob(self, blob_id: str) -> Program | None:
        kept = [entry for entry in self.scheme if entry.blob_id != blob_id]
        if len(kept) == len(self.scheme):
            return None
        return self.model_copy(update={"scheme": kept, "updated_at": utcnow()})


RECORD_MODELS: dict[RecordType, type[Record]] = {
    RecordType.ABOUT: About,
    RecordType.EVENTS: Event,
    RecordType.LABS: Lab,
    RecordType.BANNERS: Banner,
    RecordType.PROGRAMS: Program,
}

from __future__ import annotations

import json
import re
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from cms_core.errors import RecordValidationError
from cms_core.models import About, Event, Lab, Program, Record, RecordType, SchemeEntry, UploadSession, utcnow
from cms_core.services import reorder, replace_singleton, split_ids

R = TypeVar("R", bound=Record)

_NESTED_FIELD = re.compile(r"^(no_of_students|no_of_seats)\[(\w+)\]$")
_SCHEME_PART = re.compile(r"^scheme\[(\d+)\]\[(\w+)\]$")


class RecordForm(Protocol):
    record_type: RecordType

    def build(self, session: UploadSession) -> Record: ...

    def apply(self, record: Record, session: UploadSession) -> Record: ...


def _validate(model: type[R], data: dict[str, Any]) -> R:
    try:
        return model.model_validate({key: value for key, value in data.items() if value is not None})
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise RecordValidationError(f"Invalid {model.__name__.lower()}: {problems}") from exc


def _revalidate(record: R, updates: dict[str, Any]) -> R:
    data = record.model_dump()
    data.update({key: value for key, value in updates.items() if value is not None})
    data["updated_at"] = utcnow()
    return _validate(type(record), data)


def _split(value: str | None, sep: str = ",") -> list[str] | None:
    if value is None:
        return None
    return [part.strip() for part in value.split(sep) if part.strip()]


def _date(value: str | None) -> str | None:
    # Browsers may send a full ISO timestamp; only the calendar date is kept.
    if value and len(value) > 10 and value[10] == "T":
        return value[:10]
    return value


def _json_list(session: UploadSession, name: str) -> list[Any] | None:
    raw = session.field(name)
    if raw is None:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RecordValidationError(f"{name} must be a JSON array: {exc}") from exc
    if not isinstance(parsed, list):
        raise RecordValidationError(f"{name} must be a JSON array")
    return parsed


class AboutForm:
    record_type = RecordType.ABOUT

    def build(self, session: UploadSession) -> About:
        return _validate(
            About,
            {
                "hod_name": session.field("hod_name"),
                "hod_message": session.field("hod_message"),
                "hod_image_id": session.first_file("hod_image"),
            },
        )

    def apply(self, record: About, session: UploadSession) -> About:
        return _revalidate(
            record,
            {
                "hod_name": session.field("hod_name"),
                "hod_message": session.field("hod_message"),
                "hod_image_id": replace_singleton(record.hod_image_id, session.first_file("hod_image")),
            },
        )


class EventForm:
    record_type = RecordType.EVENTS

    @staticmethod
    def _fields(session: UploadSession) -> dict[str, Any]:
        return {
            "title": session.field("title"),
            "status": session.field("status"),
            "category": session.field("category"),
            "coordinators": _split(session.field("coordinators")),
            "start_date": _date(session.field("startDate") or session.field("startdate")),
            "last_date": _date(session.field("lastDate") or session.field("lastdate")),
            "venue": session.field("venue"),
            "organized_by": session.field("organizedBy"),
            "description": session.field("description"),
        }

    def build(self, session: UploadSession) -> Event:
        return _validate(
            Event,
            {
                **self._fields(session),
                "banner_id": session.first_file("banner"),
                "brochure_id": session.first_file("brochure"),
                "event_image_ids": session.file_list("eventImages"),
            },
        )

    def apply(self, record: Event, session: UploadSession) -> Event:
        return _revalidate(
            record,
            {
                **self._fields(session),
                "banner_id": replace_singleton(record.banner_id, session.first_file("banner")),
                "brochure_id": replace_singleton(record.brochure_id, session.first_file("brochure")),
                "event_image_ids": reorder(
                    record.event_image_ids,
                    split_ids(session.field("orderedImageIds")),
                    session.file_list("eventImages"),
                ),
            },
        )


class LabForm:
    record_type = RecordType.LABS

    @staticmethod
    def _fields(session: UploadSession) -> dict[str, Any]:
        return {
            "name": session.field("name"),
            "coordinators": _split(session.field("coordinators")),
            "technical_staff": _split(session.field("technical_staff")),
            "address": session.field("address"),
            "specialization": session.field("specialization"),
            "webpage_url": session.field("webpageURL"),
            "description": session.field("description"),
            "objectives": _split(session.field("objectives"), ";"),
            "capacity": session.field("capacity"),
            "hardware_details": _json_list(session, "hardware_details"),
            "software_details": _json_list(session, "software_details"),
        }

    def build(self, session: UploadSession) -> Lab:
        return _validate(Lab, {**self._fields(session), "lab_image_ids": session.file_list("labImages")})

    def apply(self, record: Lab, session: UploadSession) -> Lab:
        return _revalidate(
            record,
            {
                **self._fields(session),
                "lab_image_ids": reorder(
                    record.lab_image_ids,
                    split_ids(session.field("orderedImageIds")),
                    session.file_list("labImages"),
                ),
            },
        )


class ProgramForm:
    record_type = RecordType.PROGRAMS

    @staticmethod
    def _nested(session: UploadSession) -> dict[str, dict[str, str]]:
        groups: dict[str, dict[str, str]] = {}
        for key, value in session.fields.items():
            match = _NESTED_FIELD.match(key)
            if match and value.strip():
                groups.setdefault(match.group(1), {})[match.group(2)] = value.strip()
        return groups

    @staticmethod
    def _new_entries(session: UploadSession) -> list[SchemeEntry]:
        slots: dict[int, dict[str, str]] = {}
        for key, value in session.fields.items():
            match = _SCHEME_PART.match(key)
            if match:
                slots.setdefault(int(match.group(1)), {})[match.group(2)] = value.strip()
        for key, ids in session.files.items():
            match = _SCHEME_PART.match(key)
            if match and match.group(2) == "file" and ids:
                slots.setdefault(int(match.group(1)), {})["file"] = ids[0]

        entries: list[SchemeEntry] = []
        for index in sorted(slots):
            slot = slots[index]
            if "file" not in slot:
                raise RecordValidationError(f"scheme[{index}] has no file")
            if not slot.get("title"):
                raise RecordValidationError(f"scheme[{index}] has no title")
            entries.append(
                SchemeEntry(
                    title=slot["title"],
                    blob_id=slot["file"],
                    filename=session.filenames.get(slot["file"], slot["file"]),
                )
            )
        return entries

    def _fields(self, session: UploadSession) -> dict[str, Any]:
        nested = self._nested(session)
        return {
            "title": session.field("title"),
            "category": session.field("category"),
            "no_of_students": nested.get("no_of_students"),
            "no_of_seats": nested.get("no_of_seats"),
            "pso": session.field("PSO"),
            "peo": session.field("PEO"),
            "po": session.field("PO"),
        }

    def build(self, session: UploadSession) -> Program:
        return _validate(Program, {**self._fields(session), "scheme": self._new_entries(session)})

    def apply(self, record: Program, session: UploadSession) -> Program:
        fields = self._fields(session)
        for group in ("no_of_students", "no_of_seats"):
            if fields[group] is not None:
                fields[group] = {**getattr(record, group).model_dump(by_alias=True), **fields[group]}

        by_id = {entry.blob_id: entry for entry in record.scheme}
        ordered_ids = reorder([entry.blob_id for entry in record.scheme], split_ids(session.field("schemeOrder")))
        scheme = [by_id[blob_id] for blob_id in ordered_ids] + self._new_entries(session)
        return _revalidate(record, {**fields, "scheme": [entry.model_dump() for entry in scheme]})


FORMS: dict[RecordType, RecordForm] = {
    RecordType.ABOUT: AboutForm(),
    RecordType.EVENTS: EventForm(),
    RecordType.LABS: LabForm(),
    RecordType.PROGRAMS: ProgramForm(),
}

from datetime import date

import pytest
from cms_core.errors import InvalidBlobIdError, InvalidReferenceError, RecordValidationError
from cms_core.forms import AboutForm, EventForm, LabForm, ProgramForm
from cms_core.models import UploadSession

A = "0b6f7a1e-4a53-4d1c-9d1f-2f4a6f0a0001"
B = "0b6f7a1e-4a53-4d1c-9d1f-2f4a6f0a0002"
C = "0b6f7a1e-4a53-4d1c-9d1f-2f4a6f0a0003"
D = "0b6f7a1e-4a53-4d1c-9d1f-2f4a6f0a0004"


def _event_session(**extra) -> UploadSession:
    fields = {
        "title": "Hackathon",
        "category": "Technical",
        "coordinators": "Asha, Ravi ,",
        "startDate": "2024-03-01T00:00:00.000Z",
        "venue": "Lab 1",
        "description": "24h coding",
    }
    fields.update(extra.pop("fields", {}))
    return UploadSession(fields=fields, **extra)


def test_about_requires_name_and_message() -> None:
    with pytest.raises(RecordValidationError):
        AboutForm().build(UploadSession(fields={"hod_name": "Dr. Rao"}))

    about = AboutForm().build(
        UploadSession(fields={"hod_name": "Dr. Rao", "hod_message": "Welcome"}, files={"hod_image": [A]})
    )
    assert about.hod_image_id == A
    assert about.to_public()["hod_imageId"] == A


def test_about_update_keeps_image_without_upload() -> None:
    about = AboutForm().build(
        UploadSession(fields={"hod_name": "Dr. Rao", "hod_message": "Welcome"}, files={"hod_image": [A]})
    )

    updated = AboutForm().apply(about, UploadSession(fields={"hod_message": "Hello"}))

    assert updated.hod_image_id == A
    assert updated.hod_name == "Dr. Rao"
    assert updated.hod_message == "Hello"
    assert updated.id == about.id


def test_event_build_parses_lists_and_dates() -> None:
    event = EventForm().build(_event_session(files={"banner": [A, D], "eventImages": [B, C]}))

    assert event.coordinators == ["Asha", "Ravi"]
    assert event.start_date == date(2024, 3, 1)
    assert event.status == "Live"
    assert event.banner_id == A
    assert event.event_image_ids == [B, C]
    assert event.referenced_blob_ids() == [A, B, C]


def test_event_reorder_and_append() -> None:
    event = EventForm().build(_event_session(files={"eventImages": [A, B, C]}))

    updated = EventForm().apply(
        event,
        UploadSession(fields={"orderedImageIds": f"{B},{A},{C}"}, files={"eventImages": [D]}),
    )

    assert updated.event_image_ids == [B, A, C, D]


def test_event_reorder_rejects_foreign_ids() -> None:
    event = EventForm().build(_event_session(files={"eventImages": [A]}))

    with pytest.raises(InvalidReferenceError):
        EventForm().apply(event, UploadSession(fields={"orderedImageIds": f"{A},{D}"}))
    with pytest.raises(InvalidBlobIdError):
        EventForm().apply(event, UploadSession(fields={"orderedImageIds": "not-an-id"}))


def test_lab_build_parses_equipment_and_objectives() -> None:
    lab = LabForm().build(
        UploadSession(
            fields={
                "name": "Networks Lab",
                "address": "Block B",
                "specialization": "Networking",
                "description": "Routers and switches",
                "capacity": "40",
                "objectives": "Teach routing; Run labs",
                "hardware_details": '[{"component": "Router", "specifications": ["8 port"], "quantity": 4}]',
            },
            files={"labImages": [A]},
        )
    )

    assert lab.capacity == 40
    assert lab.objectives == ["Teach routing", "Run labs"]
    assert lab.hardware_details[0].component == "Router"
    assert lab.lab_image_ids == [A]


def test_lab_rejects_bad_capacity_and_json() -> None:
    base = {"name": "L", "address": "A", "specialization": "S", "description": "D"}
    with pytest.raises(RecordValidationError):
        LabForm().build(UploadSession(fields={**base, "capacity": "many"}))
    with pytest.raises(RecordValidationError):
        LabForm().build(UploadSession(fields={**base, "capacity": "3", "software_details": "{oops"}))


def _program_session(**extra) -> UploadSession:
    fields = {
        "title": "B.Tech CSE",
        "category": "UG",
        "no_of_students[Male]": "40",
        "no_of_students[Female]": "20",
        "no_of_seats[josaa]": "50",
        "no_of_seats[csab]": "5",
        "no_of_seats[dasa]": "5",
        "PSO": "Programme outcomes",
    }
    fields.update(extra.pop("fields", {}))
    return UploadSession(fields=fields, **extra)


def test_program_build_collects_scheme_entries() -> None:
    program = ProgramForm().build(
        _program_session(
            fields={"scheme[0][title]": "2021 Scheme", "scheme[1][title]": "2023 Scheme"},
            files={"scheme[0][file]": [A], "scheme[1][file]": [B]},
            filenames={A: "1-s21.pdf", B: "2-s23.pdf"},
        )
    )

    assert program.no_of_students.male == 40
    assert program.no_of_seats.dasa == 5
    assert [entry.title for entry in program.scheme] == ["2021 Scheme", "2023 Scheme"]
    assert program.scheme[1].filename == "2-s23.pdf"
    assert program.referenced_blob_ids() == [A, B]
    assert program.to_public()["scheme"][0]["fileId"] == A


def test_program_scheme_needs_file_and_title() -> None:
    with pytest.raises(RecordValidationError):
        ProgramForm().build(_program_session(fields={"scheme[0][title]": "Orphan title"}))
    with pytest.raises(RecordValidationError):
        ProgramForm().build(_program_session(files={"scheme[0][file]": [A]}))


def test_program_update_merges_counts_and_reorders_scheme() -> None:
    program = ProgramForm().build(
        _program_session(
            fields={"scheme[0][title]": "Old", "scheme[1][title]": "New"},
            files={"scheme[0][file]": [A], "scheme[1][file]": [B]},
        )
    )

    updated = ProgramForm().apply(
        program,
        UploadSession(
            fields={
                "no_of_students[Female]": "25",
                "schemeOrder": f"{B},{A}",
                "scheme[0][title]": "Newest",
            },
            files={"scheme[0][file]": [C]},
        ),
    )

    assert updated.no_of_students.male == 40
    assert updated.no_of_students.female == 25
    assert [entry.blob_id for entry in updated.scheme] == [B, A, C]
    assert updated.title == "B.Tech CSE"

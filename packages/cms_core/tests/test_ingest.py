import asyncio

import pytest
from cms_core.errors import MalformedUploadError, UploadError
from cms_core.models import IngestOptions
from cms_core.pipelines import ingest_multipart


def _ingest(blob_store, content_type, body, chunked, **kwargs):
    return asyncio.run(
        ingest_multipart(
            content_type=content_type,
            body=chunked(body),
            blob_store=blob_store,
            clock=lambda: 1700000000.123,
            **kwargs,
        )
    )


def test_fields_and_files_are_grouped_in_arrival_order(blob_store, multipart, chunked) -> None:
    content_type, body = multipart(
        {"title": "Hackathon", "venue": " Main Hall "},
        [
            ("eventImages", "one.png", b"first-image-bytes", "image/png"),
            ("banner", "banner.jpg", b"banner", "image/jpeg"),
            ("eventImages", "two.png", b"second", "image/png"),
        ],
    )

    session = _ingest(blob_store, content_type, body, chunked)

    assert session.fields["title"] == "Hackathon"
    assert session.field("venue") == "Main Hall"
    images = session.file_list("eventImages")
    assert len(images) == 2
    assert [session.filenames[blob_id] for blob_id in images] == [
        "1700000000123-one.png",
        "1700000000123-two.png",
    ]
    assert blob_store.blobs[images[0]][1] == b"first-image-bytes"
    assert blob_store.blobs[session.first_file("banner")][0].content_type == "image/jpeg"


def test_single_file_still_yields_a_list(blob_store, multipart, chunked) -> None:
    content_type, body = multipart({}, [("eventImages", "only.png", b"x", "image/png")])

    session = _ingest(blob_store, content_type, body, chunked)

    assert len(session.file_list("eventImages")) == 1


def test_request_without_files_resolves_fields(blob_store, multipart, chunked) -> None:
    content_type, body = multipart({"hod_name": "Dr. Rao"})

    session = _ingest(blob_store, content_type, body, chunked)

    assert session.fields == {"hod_name": "Dr. Rao"}
    assert session.files == {}
    assert blob_store.blobs == {}


def test_repeated_field_last_write_wins(blob_store, chunked) -> None:
    boundary = "xyz"
    body = (
        b"--xyz\r\nContent-Disposition: form-data; name=\"status\"\r\n\r\nDraft\r\n"
        b"--xyz\r\nContent-Disposition: form-data; name=\"status\"\r\n\r\nLive\r\n"
        b"--xyz--\r\n"
    )

    session = _ingest(blob_store, f"multipart/form-data; boundary={boundary}", body, chunked)

    assert session.fields["status"] == "Live"


def test_unselected_file_input_is_discarded(blob_store, multipart, chunked) -> None:
    content_type, body = multipart({"title": "x"}, [("brochure", "", b"", "application/octet-stream")])

    session = _ingest(blob_store, content_type, body, chunked)

    assert session.files == {}
    assert blob_store.blobs == {}


def test_missing_content_type_defaults_to_octet_stream(blob_store, chunked) -> None:
    body = (
        b"--b1\r\nContent-Disposition: form-data; name=\"brochure\"; filename=\"notes.bin\"\r\n\r\n"
        b"payload\r\n--b1--\r\n"
    )

    session = _ingest(blob_store, "multipart/form-data; boundary=b1", body, chunked)

    meta = blob_store.blobs[session.first_file("brochure")][0]
    assert meta.content_type == "application/octet-stream"


def test_same_filename_twice_gets_distinct_stored_names(blob_store, multipart, chunked) -> None:
    content_type, body = multipart(
        {},
        [
            ("labImages", "photo.jpg", b"a", "image/jpeg"),
            ("labImages", "photo.jpg", b"b", "image/jpeg"),
        ],
    )

    session = _ingest(blob_store, content_type, body, chunked)

    names = [session.filenames[blob_id] for blob_id in session.file_list("labImages")]
    assert names == ["1700000000123-photo.jpg", "1700000000124-photo.jpg"]


def test_path_components_are_stripped_from_filenames(blob_store, multipart, chunked) -> None:
    content_type, body = multipart({}, [("banner", "photos/2024/poster.png", b"p", "image/png")])

    session = _ingest(blob_store, content_type, body, chunked)

    assert session.filenames[session.first_file("banner")] == "1700000000123-poster.png"


def test_completion_order_does_not_change_file_order(blob_store, multipart, chunked) -> None:
    blob_store.slow_close = "slow"
    content_type, body = multipart(
        {},
        [
            ("eventImages", "slow.png", b"1", "image/png"),
            ("eventImages", "fast.png", b"2", "image/png"),
        ],
    )

    session = _ingest(blob_store, content_type, body, chunked)

    names = [session.filenames[blob_id] for blob_id in session.file_list("eventImages")]
    assert names[0].endswith("slow.png")
    assert names[1].endswith("fast.png")


@pytest.mark.parametrize(
    "content_type",
    [None, "application/json", "multipart/form-data"],
)
def test_rejects_non_multipart_requests(blob_store, chunked, content_type) -> None:
    with pytest.raises(MalformedUploadError):
        _ingest(blob_store, content_type, b"{}", chunked)


def test_truncated_body_is_malformed_and_leaves_no_untracked_blobs(blob_store, multipart, chunked) -> None:
    content_type, body = multipart(
        {},
        [
            ("eventImages", "complete.png", b"complete-bytes", "image/png"),
            ("eventImages", "partial.png", b"partial-bytes-that-never-end", "image/png"),
        ],
    )
    truncated = body[: body.index(b"partial-bytes") + 7]

    with pytest.raises(MalformedUploadError) as excinfo:
        _ingest(blob_store, content_type, truncated, chunked)

    assert set(excinfo.value.orphaned_blob_ids) == set(blob_store.blobs)
    assert len(blob_store.aborted) + len(blob_store.blobs) == 2


def test_failed_writer_reports_completed_siblings_as_orphans(blob_store, multipart, chunked) -> None:
    blob_store.fail_on = "bad"
    content_type, body = multipart(
        {"title": "x"},
        [
            ("eventImages", "good.png", b"good-bytes", "image/png"),
            ("eventImages", "bad.png", b"bad-bytes", "image/png"),
            ("eventImages", "also-good.png", b"more-good-bytes", "image/png"),
        ],
    )

    with pytest.raises(UploadError) as excinfo:
        _ingest(blob_store, content_type, body, chunked)

    assert not isinstance(excinfo.value, MalformedUploadError)
    assert sorted(excinfo.value.orphaned_blob_ids) == sorted(blob_store.blobs)
    assert len(blob_store.blobs) == 2
    assert len(blob_store.aborted) == 1


def test_oversized_field_is_rejected(blob_store, multipart, chunked) -> None:
    content_type, body = multipart({"description": "x" * 64})

    with pytest.raises(MalformedUploadError):
        _ingest(blob_store, content_type, body, chunked, options=IngestOptions(max_field_size=16))


def test_small_queue_still_streams_large_files(blob_store, multipart, chunked) -> None:
    payload = bytes(range(256)) * 20
    content_type, body = multipart({}, [("brochure", "big.pdf", payload, "application/pdf")])

    session = _ingest(blob_store, content_type, body, chunked, options=IngestOptions(queue_depth=1))

    assert blob_store.blobs[session.first_file("brochure")][1] == payload


def test_cancellation_aborts_in_flight_writers(blob_store, multipart) -> None:
    content_type, body = multipart({}, [("eventImages", "stalled.png", b"0123456789" * 10, "image/png")])
    head = body[: body.index(b"0123456789") + 20]

    async def _stalled():
        yield head
        await asyncio.Event().wait()

    async def _run() -> None:
        task = asyncio.create_task(
            ingest_multipart(content_type=content_type, body=_stalled(), blob_store=blob_store)
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(_run())

    assert len(blob_store.aborted) == 1
    assert blob_store.blobs == {}

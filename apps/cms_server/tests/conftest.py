from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest
from cms_server.config import Settings
from cms_server.http import create_app
from fastapi.testclient import TestClient

TOKENS = {"tok-cse": "CSE", "tok-ece": "ECE"}
BOUNDARY = "cms-test-boundary"


def auth(token: str = "tok-cse") -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def form_request(
    fields: dict[str, str] | None = None,
    files: list[tuple[str, str, bytes, str]] | None = None,
    token: str = "tok-cse",
) -> dict:
    """Keyword arguments for a multipart TestClient call, even when no file is attached."""
    parts: list[bytes] = []
    for name, value in (fields or {}).items():
        parts.append(
            f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        )
    for name, filename, data, content_type in files or []:
        parts.append(
            f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n".encode()
            + data
            + b"\r\n"
        )
    parts.append(f"--{BOUNDARY}--\r\n".encode())
    headers = {**auth(token), "Content-Type": f"multipart/form-data; boundary={BOUNDARY}"}
    return {"content": b"".join(parts), "headers": headers}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        app_data_dir=str(tmp_path),
        tenant_tokens=TOKENS,
        allowed_origins=["https://cse.example.edu"],
        blob_chunk_size=8,
    )


@pytest.fixture
def client(settings) -> Iterator[TestClient]:
    with TestClient(create_app(settings=settings)) as test_client:
        yield test_client


@pytest.fixture
def form() -> Callable[..., dict]:
    return form_request


@pytest.fixture
def headers() -> Callable[..., dict[str, str]]:
    return auth

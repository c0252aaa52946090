from __future__ import annotations

import logging

from cms_core.errors import (
    BlobNotFoundError,
    CMSCoreError,
    InvalidBlobIdError,
    InvalidReferenceError,
    MalformedUploadError,
    RecordNotFoundError,
    RecordValidationError,
    TenantError,
)
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[CMSCoreError], int]] = [
    (RecordNotFoundError, 404),
    (BlobNotFoundError, 404),
    (TenantError, 400),
    (RecordValidationError, 400),
    (MalformedUploadError, 400),
    (InvalidBlobIdError, 400),
    (InvalidReferenceError, 400),
]


def status_for(exc: Exception) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _is_asset_request(request: Request) -> bool:
    return "/assets/" in request.url.path


def render_error(
    request: Request,
    status_code: int,
    message: str,
    headers: dict[str, str] | None = None,
) -> Response:
    if _is_asset_request(request):
        return PlainTextResponse(message, status_code=status_code, headers=headers)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def error_response(request: Request, exc: Exception) -> Response:
    status_code = status_for(exc)
    message = str(exc) if isinstance(exc, CMSCoreError) else "Internal Server Error"
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    if _is_asset_request(request) and isinstance(exc, BlobNotFoundError):
        message = "File not found"
    return render_error(request, status_code, message)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg", "Invalid request")


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> Response:
        return render_error(request, exc.status_code, str(exc.detail), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> Response:
        return render_error(request, 400, _validation_message(exc))

    @app.exception_handler(CMSCoreError)
    async def handle_core_error(request: Request, exc: CMSCoreError) -> Response:
        return error_response(request, exc)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> Response:
        return error_response(request, exc)

from __future__ import annotations

from typing import Any

from cms_core.models import RecordType
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from cms_server.http.api import asset_response, bind, list_payload
from cms_server.http.auth import public_department
from cms_server.http.context import AppContext
from cms_server.http.errors import install_error_handlers

PUBLISHED = (
    RecordType.ABOUT,
    RecordType.BANNERS,
    RecordType.EVENTS,
    RecordType.LABS,
    RecordType.PROGRAMS,
)


def _add_list_route(router: APIRouter, record_type: RecordType) -> None:
    @router.get(f"/{record_type.value}", name=f"public_{record_type.value}")
    async def list_route(request: Request, department: str = Depends(public_department)) -> Any:
        binding = await bind(request, department, record_type)
        return await list_payload(binding)


def build_public_router() -> APIRouter:
    router = APIRouter(dependencies=[Depends(public_department)])
    for record_type in PUBLISHED:
        _add_list_route(router, record_type)

    @router.get("/assets/{record_type}/{blob_id}", response_model=None)
    async def get_asset(
        record_type: RecordType,
        blob_id: str,
        request: Request,
        department: str = Depends(public_department),
    ) -> StreamingResponse:
        binding = await bind(request, department, record_type)
        return await asset_response(binding, blob_id)

    return router


def create_public_app(ctx: AppContext) -> FastAPI:
    """Read-only endpoints for department websites, scoped by the ``x-department`` header."""
    app = FastAPI(title="CMS Public API", version="0.1.0")
    app.state.ctx = ctx
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ctx.settings.allowed_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "x-department"],
    )
    install_error_handlers(app)
    app.include_router(build_public_router())
    return app

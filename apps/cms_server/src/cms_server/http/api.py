from __future__ import annotations

from typing import Any

from cms_core.errors import RecordValidationError
from cms_core.forms import FORMS
from cms_core.models import RecordType
from cms_core.pipelines import (
    count_records,
    create_record,
    delete_banner,
    delete_record,
    latest_record,
    list_banners,
    list_records,
    open_asset,
    remove_blob,
    reorder_banners,
    update_record,
    upload_banners,
)
from cms_core.services import TenantBinding
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from cms_server.http.auth import require_session
from cms_server.http.schemas import BannerOrder, CountResponse, DeleteReport, Envelope

COUNTED = (RecordType.EVENTS, RecordType.LABS, RecordType.PROGRAMS)
LABELS = {
    RecordType.ABOUT: "About",
    RecordType.EVENTS: "Event",
    RecordType.LABS: "Lab",
    RecordType.PROGRAMS: "Program",
    RecordType.BANNERS: "Banner",
}


async def bind(request: Request, department: str, record_type: RecordType) -> TenantBinding:
    return await request.app.state.ctx.resolver.resolve(department, record_type)


def _require_id(record_id: str | None) -> str:
    if not record_id or not record_id.strip():
        raise RecordValidationError("ID required")
    return record_id.strip()


async def list_payload(binding: TenantBinding) -> Any:
    if binding.record_type is RecordType.ABOUT:
        record = await latest_record(records=binding.records)
        return record.to_public() if record else None
    if binding.record_type is RecordType.BANNERS:
        return [
            {**banner.to_public(), "imageId": meta.id if meta else None}
            for banner, meta in await list_banners(blob_store=binding.blobs, records=binding.records)
        ]
    records = await list_records(record_type=binding.record_type, records=binding.records)
    return [record.to_public() for record in records]


async def asset_response(binding: TenantBinding, blob_id: str) -> StreamingResponse:
    asset = await open_asset(blob_id=blob_id, blob_store=binding.blobs)
    return StreamingResponse(asset.chunks, media_type=asset.media_type, headers=asset.headers())


def _add_record_routes(router: APIRouter, record_type: RecordType) -> None:
    form = FORMS[record_type]
    label = LABELS[record_type]
    path = f"/{record_type.value}"

    @router.get(path, response_model=Envelope, name=f"list_{record_type.value}")
    async def list_route(request: Request, department: str = Depends(require_session)) -> Envelope:
        binding = await bind(request, department, record_type)
        return Envelope(data=await list_payload(binding))

    @router.post(path, response_model=Envelope, status_code=201, name=f"create_{record_type.value}")
    async def create_route(request: Request, department: str = Depends(require_session)) -> Envelope:
        ctx = request.app.state.ctx
        binding = await bind(request, department, record_type)
        record = await create_record(
            form=form,
            content_type=request.headers.get("content-type"),
            body=request.stream(),
            blob_store=binding.blobs,
            records=binding.records,
            options=ctx.ingest_options,
        )
        return Envelope(message=f"{label} created", data=record.to_public())

    @router.patch(path, response_model=Envelope, name=f"update_{record_type.value}")
    async def update_route(
        request: Request,
        record_id: str | None = Query(default=None, alias="id"),
        department: str = Depends(require_session),
    ) -> Envelope:
        ctx = request.app.state.ctx
        binding = await bind(request, department, record_type)
        record = await update_record(
            record_id=_require_id(record_id),
            form=form,
            content_type=request.headers.get("content-type"),
            body=request.stream(),
            blob_store=binding.blobs,
            records=binding.records,
            options=ctx.ingest_options,
        )
        return Envelope(message=f"{label} updated", data=record.to_public())

    @router.delete(path, response_model=Envelope, name=f"delete_{record_type.value}")
    async def delete_route(
        request: Request,
        record_id: str | None = Query(default=None, alias="id"),
        department: str = Depends(require_session),
    ) -> Envelope:
        binding = await bind(request, department, record_type)
        report = await delete_record(
            record_id=_require_id(record_id),
            record_type=record_type,
            blob_store=binding.blobs,
            records=binding.records,
        )
        return Envelope(message=f"{label} deleted", data=DeleteReport(**vars(report)))

    @router.delete(f"{path}/image", response_model=Envelope, name=f"delete_{record_type.value}_image")
    async def delete_image_route(
        request: Request,
        blob_id: str | None = Query(default=None, alias="id"),
        department: str = Depends(require_session),
    ) -> Envelope:
        binding = await bind(request, department, record_type)
        updated = await remove_blob(blob_id=_require_id(blob_id), blob_store=binding.blobs, records=binding.records)
        return Envelope(message="Image deleted", data={"updatedRecords": updated})

    if record_type in COUNTED:

        @router.get(f"{path}/count", response_model=CountResponse, name=f"count_{record_type.value}")
        async def count_route(request: Request, department: str = Depends(require_session)) -> CountResponse:
            binding = await bind(request, department, record_type)
            return CountResponse(count=await count_records(records=binding.records))


def _add_banner_routes(router: APIRouter) -> None:
    @router.get("/banners", response_model=Envelope)
    async def list_banners_route(request: Request, department: str = Depends(require_session)) -> Envelope:
        binding = await bind(request, department, RecordType.BANNERS)
        return Envelope(data=await list_payload(binding))

    @router.post("/banners", response_model=Envelope, status_code=201)
    async def upload_banners_route(request: Request, department: str = Depends(require_session)) -> Envelope:
        ctx = request.app.state.ctx
        binding = await bind(request, department, RecordType.BANNERS)
        banners = await upload_banners(
            content_type=request.headers.get("content-type"),
            body=request.stream(),
            blob_store=binding.blobs,
            records=binding.records,
            options=ctx.ingest_options,
        )
        return Envelope(message="Uploaded banners successfully", data=[banner.to_public() for banner in banners])

    @router.patch("/banners", response_model=Envelope)
    async def reorder_banners_route(
        payload: list[BannerOrder],
        request: Request,
        department: str = Depends(require_session),
    ) -> Envelope:
        binding = await bind(request, department, RecordType.BANNERS)
        banners = await reorder_banners(
            orders=[(item.id, item.order) for item in payload],
            records=binding.records,
        )
        return Envelope(message="Order updated successfully", data=[banner.to_public() for banner in banners])

    @router.delete("/banners", response_model=Envelope)
    async def delete_banner_route(
        request: Request,
        banner_id: str | None = Query(default=None, alias="id"),
        department: str = Depends(require_session),
    ) -> Envelope:
        binding = await bind(request, department, RecordType.BANNERS)
        report = await delete_banner(
            banner_id=_require_id(banner_id),
            blob_store=binding.blobs,
            records=binding.records,
        )
        return Envelope(message="Deleted", data=DeleteReport(**vars(report)))


def build_api_router() -> APIRouter:
    router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_session)])

    for record_type in (RecordType.ABOUT, RecordType.EVENTS, RecordType.LABS, RecordType.PROGRAMS):
        _add_record_routes(router, record_type)
    _add_banner_routes(router)

    @router.get("/assets/{record_type}/{blob_id}", response_model=None)
    async def get_asset(
        record_type: RecordType,
        blob_id: str,
        request: Request,
        department: str = Depends(require_session),
    ) -> StreamingResponse:
        binding = await bind(request, department, record_type)
        return await asset_response(binding, blob_id)

    return router

from __future__ import annotations

import logging

from cms_core.models import IngestOptions
from cms_core.services import TenantResolver
from fastapi import FastAPI

from cms_server.adapters import SQLiteStorage
from cms_server.config import Settings
from cms_server.http.api import build_api_router
from cms_server.http.context import AppContext
from cms_server.http.errors import install_error_handlers
from cms_server.http.public import create_public_app

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    cfg = settings or Settings()
    cfg.ensure_dirs()

    storage = SQLiteStorage(str(cfg.tenants_path), chunk_size=cfg.blob_chunk_size)
    ctx = AppContext(
        settings=cfg,
        storage=storage,
        resolver=TenantResolver(storage, known_tenants=cfg.known_tenants()),
        ingest_options=IngestOptions(
            queue_depth=cfg.upload_queue_depth,
            max_field_size=cfg.max_field_size,
        ),
    )

    app = FastAPI(title="Department CMS", version="0.1.0")
    app.state.ctx = ctx
    install_error_handlers(app)
    app.include_router(build_api_router())
    app.mount("/api/v1/public", create_public_app(ctx))

    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Serving tenant data from %s", cfg.tenants_path)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.ctx.storage.close()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app

"""
HTTP surface for catalog imports and store syncs.

Endpoints:
- POST /catalog/verify            check a remote store
- POST /catalog/import-stream     run an import, streamed as server-sent events
- POST /catalog/check-duplicates  pre-import duplicate report
- POST /stores/sync-all           sync every active store
- GET  /health
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import pydantic
from fastapi import APIRouter, Body, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from . import __version__
from .catalog.duplicates import check_duplicates
from .catalog.importer import BatchImportEngine
from .catalog.platforms import platform_registry
from .catalog.stream import ImportProgressStream
from .exceptions import ValidationError
from .models import DuplicateCandidate, SyncMode
from .storage.base import CatalogStore
from .sync.orchestrator import MultiStoreSyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


# =================================================================
# Catalog import
# =================================================================


@router.post("/catalog/verify", tags=["Catalog"])
async def verify_store(body: Optional[Dict[str, Any]] = Body(default=None)):
    body = body or {}
    url = body.get("url")
    if not url or not isinstance(url, str):
        raise ValidationError("url is required")

    adapter = platform_registry.create(body.get("platform") or "shopify")
    try:
        compatible = await adapter.verify_compatible(url)
    finally:
        await adapter.close()
    return {"success": True, "compatible": compatible}


@router.post("/catalog/import-stream", tags=["Catalog"])
async def import_stream(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    engine: BatchImportEngine = request.app.state.import_engine
    # Validates before the response starts
    stream = ImportProgressStream(engine, body or {})
    logger.info(
        f"Import stream started for {stream.request.store_url} "
        f"pages {stream.request.start_page}-{stream.request.end_page}"
    )
    return StreamingResponse(
        stream.sse(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/catalog/check-duplicates", tags=["Catalog"])
async def check_duplicates_endpoint(
    request: Request, body: Optional[Dict[str, Any]] = Body(default=None)
):
    products = (body or {}).get("products")
    if not isinstance(products, list):
        raise ValidationError("Products array is required")

    try:
        candidates = [
            DuplicateCandidate.model_validate(p) for p in products if isinstance(p, dict)
        ]
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid products entry: {e}") from e
    store: CatalogStore = request.app.state.catalog_store
    duplicates = await check_duplicates(store, candidates)
    return {
        "success": True,
        "data": {
            "duplicates": [d.to_dict() for d in duplicates],
            "totalChecked": len(products),
            "duplicatesFound": len(duplicates),
        },
    }


# =================================================================
# Store sync
# =================================================================


@router.post("/stores/sync-all", tags=["Stores"])
async def sync_all_stores(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    body = body or {}
    orchestrator: MultiStoreSyncOrchestrator = request.app.state.orchestrator
    mode = SyncMode.MODIFIED_ONLY if body.get("modifiedOnly") is True else SyncMode.FULL

    result = await orchestrator.sync_all(
        mode=mode,
        options={"pageSize": body.get("pageSize"), "maxPages": body.get("maxPages")},
    )

    summary = result.summary
    if summary.total_stores == 0:
        message = "No active stores found"
    else:
        message = f"Sync completed for {summary.successful_stores}/{summary.total_stores} stores"
    return {"success": True, "data": result.to_dict(), "message": message}


@router.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "version": __version__}


# =================================================================
# Application
# =================================================================


def create_app(
    catalog_store: CatalogStore,
    import_engine: BatchImportEngine,
    orchestrator: MultiStoreSyncOrchestrator,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await orchestrator.close()
        await import_engine.close()

    app = FastAPI(title="catalogsync", version=__version__, lifespan=lifespan)
    app.state.catalog_store = catalog_store
    app.state.import_engine = import_engine
    app.state.orchestrator = orchestrator

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, "VALIDATION_ERROR", str(exc))

    app.include_router(router)
    return app


__all__ = ["create_app", "router"]

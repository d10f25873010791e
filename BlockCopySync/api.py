#!/usr/bin/env python3
"""
Block Copy Sync REST API

This module provides a FastAPI-based REST API for copying content blocks
between sites. It supports:

- Resolving local asset IDs to public URLs (the control endpoint the
  "copy block" action calls)
- Running the export rewrite server-side
- Saving content, which imports any embedded remote images
- Serving assets held by the local asset store

API Flow:
1. Source site: POST /api/v1/export - Block markup in, portable markup out
   (or the client calls POST /api/v1/resolve-attachments and rewrites itself)
2. Destination site: PUT /api/v1/content/{content_id} - Save pasted markup;
   remote images are downloaded, uploaded and re-linked to local IDs
3. GET /api/v1/content/{content_id} - Read the stored (rewritten) markup

Usage:
    # Start the API server
    uvicorn api:app --host 0.0.0.0 --port 8000

    # Or programmatically
    from api import create_app
    app = create_app()
"""

from __future__ import annotations

import hmac
import io
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from asset_store import AssetStore, get_asset_store
from blockcopy_core import __version__
from blockcopy_core.config.settings import SyncConfig, configure_logging, load_config
from blockcopy_core.constants import SENTINEL_END, SENTINEL_START
from blockcopy_core.errors import AssetStoreError, ContentStoreError, ResolutionError
from blockcopy_core.mapping import BlockExporter, LocatorResolver
from blockcopy_core.scanning import ReferenceScanner
from blockcopy_core.sync import (
    AssetFetcher,
    AssetSyncPipeline,
    ContentSaveHook,
    ReentrancyGuard,
    ResolutionCache,
    SyncResult,
    create_cache,
)
from content_store import ContentStore, get_content_store

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

class APIConfig:
    """API Configuration settings."""

    # Shared secret callers present in X-Block-Copy-Token to act as an editor.
    # Unset means every caller may edit (development mode).
    EDIT_TOKEN: Optional[str] = os.environ.get("BLOCKCOPY_EDIT_TOKEN") or None

    # Optional JSON/YAML config file; environment variables otherwise
    CONFIG_PATH: Optional[str] = os.environ.get("BLOCKCOPY_CONFIG") or None

    @classmethod
    def load_sync_config(cls) -> SyncConfig:
        if cls.CONFIG_PATH:
            return load_config(Path(cls.CONFIG_PATH))
        return SyncConfig.from_env()


# ============================================================================
# SERVICES
# ============================================================================

class BlockCopyServices:
    """
    Wires the stores, cache, fetcher and pipeline together.

    Anything not passed in is created on first use from the configuration,
    so importing the module does not touch the filesystem or MongoDB.
    """

    def __init__(self,
                 config: Optional[SyncConfig] = None,
                 asset_store: Optional[AssetStore] = None,
                 content_store: Optional[ContentStore] = None,
                 cache: Optional[ResolutionCache] = None,
                 fetcher: Optional[AssetFetcher] = None):
        self._config = config
        self._asset_store = asset_store
        self._content_store = content_store
        self._cache = cache
        self._fetcher = fetcher
        self._pipeline: Optional[AssetSyncPipeline] = None
        self._hook_registered = False
        self.guard = ReentrancyGuard()

    @property
    def config(self) -> SyncConfig:
        if self._config is None:
            self._config = APIConfig.load_sync_config()
        return self._config

    @property
    def asset_store(self) -> AssetStore:
        if self._asset_store is None:
            self._asset_store = get_asset_store(self.config.store)
        return self._asset_store

    @property
    def cache(self) -> ResolutionCache:
        if self._cache is None:
            self._cache = create_cache(self.config.cache)
        return self._cache

    @property
    def fetcher(self) -> AssetFetcher:
        if self._fetcher is None:
            self._fetcher = AssetFetcher.from_config(self.config.fetch)
        return self._fetcher

    @property
    def pipeline(self) -> AssetSyncPipeline:
        if self._pipeline is None:
            self._pipeline = AssetSyncPipeline(
                fetcher=self.fetcher,
                asset_store=self.asset_store,
                cache=self.cache,
                content_store=self._content_store,
                guard=self.guard,
                config=self.config,
            )
        return self._pipeline

    @property
    def content_store(self) -> ContentStore:
        if self._content_store is None:
            self._content_store = get_content_store()
        if not self._hook_registered:
            self.pipeline.content_store = self._content_store
            self._content_store.add_save_listener(ContentSaveHook(self.pipeline, self.guard))
            self._hook_registered = True
        return self._content_store

    def exporter(self) -> BlockExporter:
        return BlockExporter(self.asset_store, ReferenceScanner(self.config.scanner.max_depth))


# ============================================================================
# MODELS
# ============================================================================

class ExportRequest(BaseModel):
    """Block markup to turn into its portable form."""
    content: str = Field(..., description="Serialized block markup")


class ExportResponse(BaseModel):
    success: bool = True
    content: str
    resolved: Dict[str, str] = Field(default_factory=dict)
    unresolved: List[int] = Field(default_factory=list)
    substitutions: int = 0


class ContentRequest(BaseModel):
    """Content to save."""
    content: str = Field(..., description="Serialized block markup")
    is_autosave: bool = Field(default=False, description="Autosaves do not import images")
    is_revision: bool = Field(default=False, description="Revisions do not import images")


class ContentResponse(BaseModel):
    content_id: str
    content: str
    revision: int
    updated_at: Optional[str] = None
    sync: Optional[Dict[str, Any]] = None


def _resolve_failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "urls": {}},
    )


def _valid_attachment_ids(value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    return all(isinstance(i, int) and not isinstance(i, bool) and i > 0 for i in value)


# ============================================================================
# DEPENDENCIES
# ============================================================================

async def require_edit_capability(
    x_block_copy_token: Optional[str] = Header(default=None, alias="X-Block-Copy-Token"),
):
    """Only editors may resolve IDs or save content."""
    expected = APIConfig.EDIT_TOKEN
    if not expected:
        return
    if not x_block_copy_token or not hmac.compare_digest(x_block_copy_token, expected):
        raise HTTPException(status_code=403, detail="Sorry, you are not allowed to do that.")


def create_app(services: Optional[BlockCopyServices] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    services = services or BlockCopyServices()

    app = FastAPI(
        title="Block Copy Sync API",
        description="""
REST API for copying content blocks, images included, between sites.

## Workflow

1. **Copy**: `POST /api/v1/export` - Local image IDs become portable URL sentinels
2. **Paste & Save**: `PUT /api/v1/content/{content_id}` - Remote images are
   imported into the local asset store and sentinels become local IDs again

`POST /api/v1/resolve-attachments` is the lookup used by clients that do the
export rewrite themselves.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        configure_logging(services.config.log_level)

        if not APIConfig.EDIT_TOKEN:
            logger.warning("BLOCKCOPY_EDIT_TOKEN is not set - edit endpoints are open to every caller")

        if services.asset_store.is_connected():
            logger.info(f"Asset store initialized: {type(services.asset_store).__name__}")
        else:
            logger.warning("Asset store failed to initialize - image import will fail")

        # First access registers the save hook
        content_store = services.content_store
        logger.info(f"Content store ready: {type(content_store).__name__}")

    # ========================================================================
    # BLOCK COPY ENDPOINTS
    # ========================================================================

    @app.post("/api/v1/resolve-attachments", tags=["Block Copy"],
              dependencies=[Depends(require_edit_capability)])
    async def resolve_attachments(request: Request):
        """Resolve local asset IDs to public URLs. Unknown IDs are left out."""
        try:
            payload = await request.json()
        except ValueError:
            return _resolve_failure(400, "Request body must be JSON")

        attachment_ids = payload.get("attachment_ids") if isinstance(payload, dict) else None
        if not attachment_ids:
            return _resolve_failure(400, "No attachment IDs provided")
        if not _valid_attachment_ids(attachment_ids):
            return _resolve_failure(400, "Attachment IDs must be positive integers")

        try:
            report = LocatorResolver(services.asset_store).resolve_with_report(attachment_ids)
        except ResolutionError as e:
            logger.error(f"[Block Copy] Attachment lookup failed: {e}")
            return _resolve_failure(502, "Asset store unavailable")

        return {
            "success": True,
            "urls": {str(asset_id): url for asset_id, url in report.resolved.items()},
        }

    @app.post("/api/v1/export", response_model=ExportResponse, tags=["Block Copy"],
              dependencies=[Depends(require_edit_capability)])
    def export_content(request: ExportRequest):
        """Rewrite local asset IDs in block markup to portable URL sentinels."""
        try:
            result = services.exporter().export(request.content)
        except ResolutionError as e:
            raise HTTPException(status_code=502, detail=f"Asset lookup failed: {e}")

        return ExportResponse(
            content=result.content,
            resolved={str(k): v for k, v in result.resolved.items()},
            unresolved=result.unresolved,
            substitutions=result.substitutions,
        )

    # ========================================================================
    # CONTENT ENDPOINTS
    # ========================================================================

    @app.put("/api/v1/content/{content_id}", response_model=ContentResponse, tags=["Content"],
             dependencies=[Depends(require_edit_capability)])
    def save_content(content_id: str, request: ContentRequest):
        """Save content; embedded remote images are imported before this returns."""
        try:
            outcome = services.content_store.save_content(
                content_id,
                request.content,
                is_autosave=request.is_autosave,
                is_revision=request.is_revision,
            )
        except ContentStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))

        sync_results = [r for r in outcome.listener_results if isinstance(r, SyncResult)]
        document = outcome.document
        return ContentResponse(
            content_id=document.content_id,
            content=document.content,
            revision=document.revision,
            updated_at=document.updated_at.isoformat() if document.updated_at else None,
            sync=sync_results[0].to_dict() if sync_results else None,
        )

    @app.get("/api/v1/content/{content_id}", response_model=ContentResponse, tags=["Content"])
    def get_content(content_id: str):
        """Get stored content."""
        try:
            document = services.content_store.get_content(content_id)
        except ContentStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))

        if document is None:
            raise HTTPException(status_code=404, detail="Content not found")

        return ContentResponse(
            content_id=document.content_id,
            content=document.content,
            revision=document.revision,
            updated_at=document.updated_at.isoformat() if document.updated_at else None,
        )

    # ========================================================================
    # ASSET ENDPOINTS
    # ========================================================================

    @app.get("/api/v1/assets/{asset_id}", tags=["Assets"])
    @app.get("/api/v1/assets/{asset_id}/{filename}", tags=["Assets"])
    def download_asset(asset_id: int, filename: Optional[str] = None):
        """Download an asset's bytes."""
        store = services.asset_store
        try:
            record = store.get(asset_id)
            data = store.download(asset_id) if record else None
        except AssetStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))

        if record is None or data is None:
            raise HTTPException(status_code=404, detail="Asset not found")
        if filename is not None and filename != record.filename:
            raise HTTPException(status_code=404, detail="Asset not found")

        return StreamingResponse(
            io.BytesIO(data),
            media_type=record.content_type,
            headers={
                "Content-Disposition": f'inline; filename="{record.filename}"',
                "Content-Length": str(len(data)),
            }
        )

    # ========================================================================
    # SYSTEM ENDPOINTS
    # ========================================================================

    @app.get("/api/v1/health", tags=["System"])
    def health_check():
        """Health check endpoint."""
        asset_status = "connected" if services.asset_store.is_connected() else "disconnected"

        return {
            "status": "healthy" if asset_status == "connected" else "degraded",
            "timestamp": datetime.now().isoformat(),
            "asset_store_backend": services.config.store.backend,
            "asset_store_status": asset_status,
            "content_store": type(services.content_store).__name__,
            "cache_backend": services.config.cache.backend,
        }

    @app.get("/api/v1/info", tags=["System"])
    def get_info():
        """Get API configuration and capabilities."""
        config = services.config
        return {
            "name": "Block Copy Sync API",
            "version": __version__,
            "config": {
                "max_depth": config.scanner.max_depth,
                "fetch_timeout_seconds": config.fetch.timeout_seconds,
                "max_workers": config.fetch.max_workers,
                "cache_ttl_seconds": config.cache.ttl_seconds,
                "edit_token_required": bool(APIConfig.EDIT_TOKEN),
            },
            "sentinel": {
                "start": SENTINEL_START,
                "end": SENTINEL_END,
            },
            "workflow": {
                "export": "Local image IDs -> portable URL sentinels",
                "import": "URL sentinels -> downloaded, uploaded, local image IDs",
            },
        }

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

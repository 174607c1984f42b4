"""
FastAPI application entry point for SippSearcher.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from sippsearcher.config import Settings, get_settings
from sippsearcher.db import DbClient, StorageError
from sippsearcher.dependencies import build_photo_storage, open_db_client
from sippsearcher.flavors import load_flavors
from sippsearcher.routes import router, site_router
from sippsearcher.storage import PhotoStorage

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    db: Optional[DbClient] = None,
    photos: Optional[PhotoStorage] = None,
) -> FastAPI:
    """
    Build the app. ``db`` and ``photos`` override the clients chosen from
    settings at startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.flavors = load_flavors(settings.flavors_path)
        if photos is None:
            os.makedirs(settings.upload_dir, exist_ok=True)
            app.state.photos = build_photo_storage(settings)
        else:
            app.state.photos = photos
        app.state.db = db if db is not None else await open_db_client(settings)
        logger.info("Storage backend: %s", app.state.db.kind)
        try:
            yield
        finally:
            await app.state.db.close()

    app = FastAPI(title="SippSearcher API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.exception("Storage error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(site_router)
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name="uploads",
    )
    return app
